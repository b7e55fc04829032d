"""
Conflict monitor REST API endpoints: conflict summary, scheduler status,
manual tick and recent in-app notifications.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.dependencies import get_engine, verify_api_key
from app.models.api_response import TickReport, ToastMessage
from app.models.conflict import ConflictSummary
from app.services.automation_engine import AutomationEngine
from app.services.notification_sinks import ToastSink

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/monitor", tags=["monitor"])


@router.get("/conflicts", response_model=ConflictSummary)
async def get_conflict_summary(engine: AutomationEngine = Depends(get_engine)) -> ConflictSummary:
    """Aggregate conflict statistics over active pull requests."""
    try:
        return await engine.conflict_summary()
    except Exception as e:
        logger.error(f"Error building conflict summary: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/status")
async def get_monitor_status(engine: AutomationEngine = Depends(get_engine)) -> Dict[str, Any]:
    scheduler = engine.scheduler
    last_report = engine.last_report
    return {
        "running": scheduler.running,
        "interval_minutes": scheduler.interval_minutes,
        "tick_count": scheduler.tick_count,
        "pending_notifications": engine.pending_notifications,
        "last_tick": last_report.model_dump(mode="json") if last_report else None,
    }


@router.post("/tick", response_model=TickReport, dependencies=[Depends(verify_api_key)])
async def run_tick(engine: AutomationEngine = Depends(get_engine)) -> TickReport:
    """
    Run one evaluation pass immediately, independent of the schedule.
    """
    try:
        logger.info("Manual tick requested")
        return await engine.tick()
    except Exception as e:
        logger.error(f"Manual tick failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/toasts", response_model=List[ToastMessage])
async def list_toasts(
    limit: int = Query(20, ge=1, le=100),
    engine: AutomationEngine = Depends(get_engine)
) -> List[ToastMessage]:
    """Most recent in-app notifications, newest first."""
    sink = engine.dispatcher.get_sink(ToastSink.name)
    if not isinstance(sink, ToastSink):
        return []
    return sink.recent(limit)
