"""
Scheduled task endpoints - triggered by an external cron with an API key.

Same work as the in-process fallback sweeper; useful when workers are
disabled or a sweep is needed immediately.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.api.auth import require_scheduled_tasks_key
from leadrouter.database import get_db
from leadrouter.schemas.api_responses import FallbackSweepResponse
from leadrouter.services.reassignment import run_fallback_sweep

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/scheduled-tasks",
    tags=["scheduled-tasks"],
    dependencies=[Depends(require_scheduled_tasks_key)],
)


@router.post("/assign-fallback-leads", response_model=FallbackSweepResponse)
async def assign_fallback_leads(db: AsyncSession = Depends(get_db)):
    """Reassign priority leads whose window expired to their fallback businesses."""
    result = await run_fallback_sweep(db)
    logger.info(
        "Scheduled fallback sweep: processed=%d assigned=%d",
        result.processed_count, result.assigned_count,
    )
    return FallbackSweepResponse(
        processed_count=result.processed_count,
        assigned_count=result.assigned_count,
        failed_count=len(result.errors),
    )
