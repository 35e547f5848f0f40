from __future__ import annotations

import logging
import os

import uvicorn

from streamcal.config_manager import ConfigManager
from streamcal.errors import ConfigError
from streamcal.web_admin import AppContext, create_app


LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def main() -> None:
    config_manager = ConfigManager(os.getenv("STREAMCAL_CONFIG_PATH", "config.yaml"))
    try:
        config = config_manager.load()
        configure_logging(config.logging.level)
        config.validate()
    except ConfigError as exc:
        configure_logging("INFO")
        logger.error("%s", exc)
        raise SystemExit(2) from exc

    host = os.getenv("STREAMCAL_HOST", "0.0.0.0")
    port = int(os.getenv("STREAMCAL_PORT", "8080"))
    app = create_app(AppContext(config_manager, config))
    uvicorn.run(app, host=host, port=port, reload=False, log_config=None)


if __name__ == "__main__":
    main()
