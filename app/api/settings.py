"""
Automation settings REST API endpoints.

Request bodies are validated against the settings models, so values out of
range are rejected with 422 before the engine sees them.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import get_engine, verify_api_key
from app.models.automation import AutomationSettings, ConflictMonitorConfig, EngineConfig
from app.services.automation_engine import AutomationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=EngineConfig)
async def get_settings(engine: AutomationEngine = Depends(get_engine)) -> EngineConfig:
    """Current automation policy and monitor configuration."""
    return engine.config


@router.put("/automation", response_model=EngineConfig, dependencies=[Depends(verify_api_key)])
async def update_automation(
    automation: AutomationSettings,
    engine: AutomationEngine = Depends(get_engine)
) -> EngineConfig:
    """
    Replace the automation policy.

    Takes effect from the next tick.
    """
    logger.info(f"Updating automation settings: {automation.model_dump(mode='json')}")
    return await engine.update_automation(automation)


@router.put("/conflict-monitor", response_model=EngineConfig, dependencies=[Depends(verify_api_key)])
async def update_conflict_monitor(
    conflict_monitor: ConflictMonitorConfig,
    engine: AutomationEngine = Depends(get_engine)
) -> EngineConfig:
    """
    Replace the monitor configuration, restarting the schedule when the
    interval or enabled flag changes.
    """
    logger.info(f"Updating conflict monitor settings: {conflict_monitor.model_dump(mode='json')}")
    return await engine.update_conflict_monitor(conflict_monitor)
