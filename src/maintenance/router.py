from fastapi import APIRouter, Depends
from src.database import Database, get_db
from src.maintenance.schemas import FinalizedCounts, FinalizedPreview, StoreStats
from src.maintenance.service import MaintenanceService

router = APIRouter(prefix="/admin", tags=["maintenance"])


@router.get("/protocols/finalized/preview", response_model=FinalizedPreview)
async def preview_finalized(db: Database = Depends(get_db)):
    service = MaintenanceService(db)
    return await service.preview_finalized()


@router.delete("/protocols/finalized", response_model=FinalizedCounts)
async def purge_finalized(db: Database = Depends(get_db)):
    service = MaintenanceService(db)
    return await service.purge_finalized()


@router.get("/stats", response_model=StoreStats)
async def store_stats(db: Database = Depends(get_db)):
    service = MaintenanceService(db)
    return await service.store_stats()
