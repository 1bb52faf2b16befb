"""FastAPI application factory.

Run with:
    uvicorn fieldsync.api.main:create_app --factory --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from fieldsync.api.routes import sync as sync_routes
from fieldsync.sync.service import SyncService, build_service


def create_app(service: Optional[SyncService] = None, manage_lifecycle: bool = True) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        service: SyncService to expose. Built from settings if omitted.
        manage_lifecycle: Initialize the service on startup and shut it
            down on exit.
    """
    service = service or build_service()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await service.initialize()
        yield
        if manage_lifecycle:
            await service.shutdown()

    app = FastAPI(
        title="Field Sync API",
        description="Offline mutation queue synchronization status and controls",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.sync_service = service

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app
