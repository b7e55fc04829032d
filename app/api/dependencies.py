"""
Shared FastAPI dependencies.
"""

import logging

from fastapi import Header, HTTPException, Request

from app.config import settings
from app.services.automation_engine import AutomationEngine

logger = logging.getLogger(__name__)


async def verify_api_key(x_api_key: str = Header(None)) -> None:
    """
    Verify API key for admin endpoints.

    Args:
        x_api_key: API key from request header

    Raises:
        HTTPException: If API key is invalid or missing
    """
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if not settings.admin_api_key or x_api_key != settings.admin_api_key:
        logger.warning("Rejected admin request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_engine(request: Request) -> AutomationEngine:
    """
    Return the engine created at application startup.

    Raises:
        HTTPException: 503 until the engine has been initialized
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None or not engine.initialized:
        raise HTTPException(status_code=503, detail="Automation engine not initialized")
    return engine
