from typing import List
from fastapi import APIRouter, Depends
from src.database import Database, get_db
from src.protocols.schemas import (
    Actor,
    BulkMoveRequest,
    MoveRequest,
    ProtocolCreate,
    ProtocolResponse,
    ProtocolUpdate,
    ResubmitRequest,
    ReturnRequest,
    UpdateResult,
)
from src.protocols.service import ProtocolService

router = APIRouter(prefix="/protocols", tags=["protocols"])


@router.get("", response_model=List[ProtocolResponse])
async def list_protocols(db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.list_protocols()


@router.post("", response_model=ProtocolResponse)
async def create_protocol(protocol: ProtocolCreate, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.create_protocol(
        protocol,
        created_by=protocol.created_by,
        created_by_email=protocol.created_by_email,
        is_distribution=protocol.is_distribution,
        is_resubmission=protocol.is_resubmission,
        previous_assignee=protocol.previous_assignee,
    )


@router.post("/move", response_model=UpdateResult)
async def move_protocols(request: BulkMoveRequest, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.move_many(
        request.ids, request.assigned_to, request.performed_by, request.performed_by_id
    )


@router.get("/queues/automated", response_model=List[ProtocolResponse])
async def list_automated_queue(db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.list_queue(None)


@router.get("/queues/{assignee}", response_model=List[ProtocolResponse])
async def list_queue(assignee: str, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.list_queue(assignee)


@router.get("/{protocol_id}", response_model=ProtocolResponse)
async def get_protocol(protocol_id: str, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.get_protocol(protocol_id)


@router.put("/{protocol_id}", response_model=UpdateResult)
async def update_protocol(protocol_id: str, changes: ProtocolUpdate, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.update_protocol(protocol_id, changes)


@router.delete("/{protocol_id}", response_model=UpdateResult)
async def delete_protocol(protocol_id: str, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.delete_protocol(protocol_id)


@router.post("/{protocol_id}/move", response_model=UpdateResult)
async def move_protocol(protocol_id: str, request: MoveRequest, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.move_to_queue(
        protocol_id, request.assigned_to, request.performed_by, request.performed_by_id
    )


@router.post("/{protocol_id}/return", response_model=UpdateResult)
async def return_protocol(protocol_id: str, request: ReturnRequest, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.return_protocol(
        protocol_id,
        request.reason,
        request.performed_by,
        request.performed_by_id,
        from_automated_lane=request.from_automated_lane,
    )


@router.post("/{protocol_id}/resubmit", response_model=UpdateResult)
async def resubmit_protocol(protocol_id: str, request: ResubmitRequest, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.resubmit_protocol(
        protocol_id, request.corrections, request.performed_by, request.performed_by_id
    )


@router.post("/{protocol_id}/cancel", response_model=UpdateResult)
async def cancel_protocol(protocol_id: str, request: Actor, db: Database = Depends(get_db)):
    service = ProtocolService(db)
    return await service.cancel_protocol(protocol_id, request.performed_by, request.performed_by_id)
