"""
Luminax API entry point.

    luminax            # console script
    python -m luminax.main
"""

from __future__ import annotations

import uvicorn

from luminax.api.app import create_app
from luminax.core.config.config import Config
from luminax.core.logging.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


def run() -> None:
    logger.info(
        "Starting Luminax API",
        extra={"host": Config.HOST, "port": Config.PORT, "environment": Config.ENVIRONMENT},
    )
    try:
        # Logging is configured by luminax.core.logging; keep uvicorn from replacing it
        uvicorn.run(create_app(), host=Config.HOST, port=Config.PORT, log_config=None)
    finally:
        shutdown_logging()


if __name__ == "__main__":
    run()
