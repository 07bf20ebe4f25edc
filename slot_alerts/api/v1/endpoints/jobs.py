"""Job trigger endpoints called by the external scheduler."""

from fastapi import APIRouter, Depends, Query, status
from structlog import get_logger

from slot_alerts.dependencies import Engine, rate_limit, verify_admin_secret
from slot_alerts.schemas.notifications import BatchResult, MaintenanceResult, SweepResult

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(verify_admin_secret)])


@router.post(
    "/process-queue",
    response_model=BatchResult,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(rate_limit("process-queue"))],
    summary="Process one batch of the notification queue",
)
async def process_queue(
    engine: Engine,
    max_items: int | None = Query(default=None, ge=1, le=100),
) -> BatchResult:
    """
    Process up to ``max_items`` pending queue entries.

    Requires the X-Admin-Secret header.
    """
    result = await engine.process_queue_batch(max_items)
    logger.info("job_process_queue_completed", processed=result.processed, failed=result.failed)
    return result


@router.post(
    "/sweep-retries",
    response_model=SweepResult,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(rate_limit("sweep-retries"))],
    summary="Replay due push retries",
)
async def sweep_retries(
    engine: Engine,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> SweepResult:
    """
    Replay up to ``limit`` due retries.

    Requires the X-Admin-Secret header.
    """
    result = await engine.sweep_retries(limit)
    logger.info("job_sweep_retries_completed", attempted=result.attempted)
    return result


@router.post(
    "/maintenance",
    response_model=MaintenanceResult,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(rate_limit("maintenance"))],
    summary="Run cleanup jobs",
)
async def run_maintenance(engine: Engine) -> MaintenanceResult:
    """
    Run all cleanup jobs.

    Requires the X-Admin-Secret header.
    """
    result = await engine.run_maintenance()
    logger.info("job_maintenance_completed", errors=len(result.errors))
    return result
