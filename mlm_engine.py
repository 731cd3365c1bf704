# mlm_engine.py
"""
MLM compensation engine - main entry point.
Prepares the database and runs the periodic cycles until signalled.
"""
import asyncio
import logging
import signal
import sys

from config import Config, ConfigurationError
from core.db import setup_database, get_db_session_ctx, dispose_engine
from background.mlm_scheduler import MLMScheduler
from mlm_system.services.package_service import PackageService
from mlm_system.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configure root logging from Config (stdout plus optional file)."""
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = Config.get(Config.LOG_FILE)
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, Config.get(Config.LOG_LEVEL, "INFO"), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


async def initialize_engine() -> MLMScheduler:
    """Load config, prepare tables and defaults, build the scheduler."""
    Config.initialize_from_env()
    setup_logging()
    Config.validate_critical_keys()

    setup_database()

    with get_db_session_ctx() as session:
        settings_added = SettingsService(session).initializeDefaultSettings()
        packages_added = PackageService(session).initializeDefaultPackages()
    logger.info(f"Defaults ready (settings added={settings_added}, packages added={packages_added})")

    Config.set(Config.SYSTEM_READY, True)
    return MLMScheduler()


def setup_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.warning(f"Signal handler for {sig} not available on this platform")


async def main():
    """Main entry point."""
    scheduler = None
    try:
        scheduler = await initialize_engine()

        stop_event = asyncio.Event()
        setup_signal_handlers(asyncio.get_running_loop(), stop_event)

        await scheduler.start()
        logger.info("MLM engine running, waiting for shutdown signal")
        await stop_event.wait()

    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if scheduler is not None:
            await scheduler.stop()
        dispose_engine()
        logger.info("MLM engine shutdown complete")


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("MLM engine stopped")


if __name__ == '__main__':
    run()
