"""Main entry point for running the RouteForge service."""

import os

import uvicorn
from loguru import logger

from src.api.main import app
from src.core.config import get_settings
from src.core.logging import setup_logging


def main() -> None:
    """Run the RouteForge service with uvicorn."""
    settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    # Container platforms set PORT to the port the service should listen on
    port = int(os.environ.get("PORT", settings.api_port))

    # Route uvicorn's own loggers through loguru
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {
                "class": "src.core.logging.InterceptHandler",
            },
        },
        "loggers": {
            name: {"handlers": ["default"], "level": "INFO", "propagate": False}
            for name in ("uvicorn", "uvicorn.error", "uvicorn.access")
        },
    }

    logger.info(
        "Serving routes from {} under {}",
        settings.routes_config.routes_directory,
        settings.routes_config.mount_prefix,
    )

    # Auto-reload needs the app as an import string; route modules have
    # their own reload through the admin API
    if settings.debug:
        logger.info(
            f"Starting Uvicorn on http://{settings.api_host}:{port} "
            "(development mode with auto-reload)"
        )
        uvicorn.run(
            "src.api.main:app",
            host=settings.api_host,
            port=port,
            reload=True,
            log_config=log_config,
        )
    else:
        logger.info(
            f"Starting Uvicorn on http://{settings.api_host}:{port} (production mode)"
        )
        uvicorn.run(
            app,
            host=settings.api_host,
            port=port,
            reload=False,
            log_config=log_config,
        )


if __name__ == "__main__":
    main()
