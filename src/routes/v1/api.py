from fastapi import APIRouter

from src.protocols.router import router as protocols_router
from src.maintenance.router import router as maintenance_router

api_router = APIRouter()

api_router.include_router(protocols_router)
api_router.include_router(maintenance_router)
