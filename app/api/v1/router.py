from fastapi import APIRouter

from app.api.v1.endpoints import needs

api_router = APIRouter()

api_router.include_router(needs.router, prefix="/needs", tags=["needs"])
