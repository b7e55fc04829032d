"""
Standalone monitor process.

Runs the automation engine's periodic tick without the HTTP API and
shuts down gracefully on SIGTERM/SIGINT: the tick in progress and any
in-flight notifications are allowed to finish.
"""

import asyncio
import signal
import sys
from typing import Optional

from app.config import Settings, settings
from app.services.automation_engine import AutomationEngine
from app.services.engine_factory import build_engine
from app.utils.logging import setup_logging, get_logger

# Configure structured logging
setup_logging(settings.log_level.upper())
logger = get_logger(__name__)


class Worker:
    """Hosts an engine and keeps the process alive until told to stop."""

    def __init__(self, app_settings: Optional[Settings] = None, engine: Optional[AutomationEngine] = None):
        self.settings = app_settings or settings
        self.engine = engine or build_engine(self.settings)
        self.running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """
        Initialize the engine, run a first tick and wait for shutdown.
        """
        logger.info("Starting monitor worker...")

        try:
            config = self.settings.engine_config()
            # The worker's only job is the schedule.
            if not config.conflict_monitor.enabled:
                logger.warning("Conflict monitor disabled in settings; enabling it for the worker")
                config = config.model_copy(update={
                    "conflict_monitor": config.conflict_monitor.model_copy(update={"enabled": True})
                })

            await self.engine.init(config)
            self.running = True
            self._register_signal_handlers()
            logger.info("Monitor worker started successfully")

            report = await self.engine.tick()
            logger.info(f"Initial tick evaluated {report.prs_evaluated} pull requests")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Failed to start worker: {e}", exc_info=True)
            raise

    async def stop(self) -> None:
        """Stop the schedule, letting the current tick finish."""
        if not self.running:
            return
        logger.info("Stopping monitor worker...")
        self.running = False
        await self.engine.shutdown()
        self._shutdown_event.set()
        logger.info("Monitor worker stopped")

    def _register_signal_handlers(self) -> None:
        """Register signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received signal {signal_name}, initiating graceful shutdown...")
            asyncio.create_task(self.stop())

        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, signal_handler, signum)

        logger.info("Signal handlers registered (SIGTERM, SIGINT)")


async def main():
    """Main entry point for worker process."""
    logger.info("Worker process starting...")

    worker = Worker()

    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Worker process failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
