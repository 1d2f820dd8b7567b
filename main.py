"""Application entry point."""
import asyncio
import logging
import os
from dm_monitor import config
from dm_monitor.config import validate_config
from dm_monitor.health import HealthServer
from dm_monitor.monitor import create_monitors
from dm_monitor.notifier import NotificationService
from dm_monitor.resource_guard import StackBaseline
from dm_monitor.supervisor import run_forever


def setup_logging():
    """Set up logging configuration."""
    log_level = logging.DEBUG if config.DEBUG else logging.INFO

    log_dir = config.LOG_DIR
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Log to console
            logging.FileHandler(f'{log_dir}/dm_monitor.log')  # Log to file
        ]
    )


def main():
    """Main entry point for the application."""
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Initializing DM monitor")

    try:
        validate_config(config)

        # Shallow point of the worker thread that will run every monitor
        baseline = StackBaseline.capture()

        notifier = NotificationService(config)
        monitors = create_monitors(config, notifier, baseline)

        health_server = HealthServer(config, monitors)
        health_server.start()

        asyncio.run(run_forever(monitors))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except Exception as e:
        logger.error("Monitor supervisor stopped: %s", e)
        raise


if __name__ == "__main__":
    main()
