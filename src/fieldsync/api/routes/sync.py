"""Sync trigger and status routes."""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from fieldsync.models.sync import NetworkState, SyncResult
from fieldsync.sync.errors import NoConnectivityError, SyncAlreadyRunningError
from fieldsync.sync.service import SyncService

router = APIRouter()


class NetworkStateResponse(BaseModel):
    is_connected: bool
    is_internet_reachable: Optional[bool]
    type: str


class SyncStatusResponse(BaseModel):
    is_running: bool
    sync_in_progress: bool
    network_state: NetworkStateResponse
    pending_items: int
    failed_items: int
    batch_size: int
    sync_interval_minutes: float
    max_retries: int


class SyncStatisticsResponse(BaseModel):
    total_pending: int
    total_failed: int
    total_completed: int
    by_table: Dict[str, Dict[str, int]]


class SyncItemErrorResponse(BaseModel):
    item_id: Optional[int]
    table_name: str
    record_id: str
    operation: str
    attempts: int
    error: str


class SyncResultResponse(BaseModel):
    success: bool
    total_items: int
    success_count: int
    failed_count: int
    duration_ms: int
    errors: List[SyncItemErrorResponse]


class DeltaSyncRequest(BaseModel):
    since: datetime


class CleanupResponse(BaseModel):
    removed: int


def get_service(request: Request) -> SyncService:
    return request.app.state.sync_service


def _network_response(state: NetworkState) -> NetworkStateResponse:
    return NetworkStateResponse(
        is_connected=state.is_connected,
        is_internet_reachable=state.is_internet_reachable,
        type=state.type,
    )


def _result_response(result: SyncResult) -> SyncResultResponse:
    return SyncResultResponse(
        success=result.success,
        total_items=result.total_items,
        success_count=result.success_count,
        failed_count=result.failed_count,
        duration_ms=result.duration_ms,
        errors=[
            SyncItemErrorResponse(
                item_id=e.item.id,
                table_name=e.item.table_name,
                record_id=e.item.record_id,
                operation=e.item.operation,
                attempts=e.item.attempts,
                error=e.error,
            )
            for e in result.errors
        ],
    )


async def _run(coro) -> SyncResultResponse:
    """Await a pass, mapping hard failures to HTTP errors."""
    try:
        result = await coro
    except SyncAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except NoConnectivityError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return _result_response(result)


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(service: SyncService = Depends(get_service)):
    """Return timer, network and queue status."""
    status = await service.get_status()
    return SyncStatusResponse(
        is_running=status.is_running,
        sync_in_progress=status.sync_in_progress,
        network_state=_network_response(status.network_state),
        pending_items=status.pending_items,
        failed_items=status.failed_items,
        batch_size=status.config.batch_size,
        sync_interval_minutes=status.config.sync_interval_minutes,
        max_retries=status.config.max_retries,
    )


@router.get("/statistics", response_model=SyncStatisticsResponse)
def sync_statistics(service: SyncService = Depends(get_service)):
    stats = service.get_statistics()
    return SyncStatisticsResponse(
        total_pending=stats.total_pending,
        total_failed=stats.total_failed,
        total_completed=stats.total_completed,
        by_table=stats.by_table,
    )


@router.get("/network", response_model=NetworkStateResponse)
def network_state(service: SyncService = Depends(get_service)):
    return _network_response(service.get_network_state())


@router.post("/trigger", response_model=SyncResultResponse)
async def trigger_sync(service: SyncService = Depends(get_service)):
    """
    Run a full sync pass and return its result.
    409 if a pass is already running, 503 if offline.
    """
    return await _run(service.sync_all())


@router.post("/delta", response_model=SyncResultResponse)
async def trigger_delta_sync(
    request: DeltaSyncRequest, service: SyncService = Depends(get_service)
):
    return await _run(service.sync_delta(request.since))


@router.post("/retry-failed", response_model=SyncResultResponse)
async def retry_failed(service: SyncService = Depends(get_service)):
    """Reset failed items to pending and run a pass."""
    return await _run(service.retry_failed())


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_completed(service: SyncService = Depends(get_service)):
    return CleanupResponse(removed=service.cleanup_completed())
