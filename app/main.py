"""
FastAPI application entry point.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.api import monitor, pull_requests, settings as settings_api
from app.services.engine_factory import build_engine
from app.utils.logging import setup_logging, get_logger

# Configure structured logging
setup_logging(settings.log_level)

logger = get_logger(__name__)

# Create FastAPI application
app = FastAPI(
    title="PR Automation Engine",
    description="Pull request review automation and merge conflict monitoring",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    engine = getattr(app.state, "engine", None)
    return {
        "status": "healthy",
        "version": "0.1.0",
        "engine_initialized": bool(engine and engine.initialized),
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "PR Automation Engine API",
        "version": "0.1.0",
        "docs": "/docs"
    }


# Include API routers
app.include_router(pull_requests.router)
app.include_router(settings_api.router)
app.include_router(monitor.router)


@app.on_event("startup")
async def startup_event():
    """Build and start the automation engine."""
    logger.info("Starting PR Automation Engine API")

    engine = build_engine(settings)
    await engine.init(settings.engine_config())
    app.state.engine = engine
    logger.info("Automation engine started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the engine and release its connections."""
    logger.info("Shutting down PR Automation Engine API")

    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.shutdown()
        app.state.engine = None
    logger.info("Automation engine stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
