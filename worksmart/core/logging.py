import logging
import sys
from typing import Optional

import structlog
from pythonjsonlogger import jsonlogger

from ..config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None):
    """Structured logging setup shared by the API and the import scripts"""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level, logging.INFO)

    json_formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    # Re-running setup (tests, reload) must not stack handlers
    for handler in list(root.handlers):
        if getattr(handler, "_worksmart", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(json_formatter)
    handler._worksmart = True
    root.addHandler(handler)
    root.setLevel(level)

    return structlog.get_logger("worksmart")
