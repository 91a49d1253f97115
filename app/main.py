import logging

from fastapi import FastAPI

from app.api.v1.router import api_router
from app.core.db import SessionLocal
from app.services.needs_coordinator import NeedsRunCoordinator


logger = logging.getLogger(__name__)

app = FastAPI(title="Matrix Replenishment Needs")
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def _startup_event() -> None:
    app.state.needs_coordinator = NeedsRunCoordinator.from_session_factory(SessionLocal)
    logger.info("Needs run coordinator ready")


@app.get("/")
def root():
    return {"status": "ok", "message": "Matrix needs engine running"}
