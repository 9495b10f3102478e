"""Logging setup driven by application settings."""

import logging

import structlog

from app.core.config import LogFormatEnum, Settings

SIMPLE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _json_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Render stdlib records as one JSON object per line."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(current: Settings) -> None:
    """Configure the root logger from ``LOG_LEVEL`` and ``LOG_FORMAT``."""
    level = getattr(logging, current.log_level.value, logging.INFO)
    if current.log_format == LogFormatEnum.json:
        handler = logging.StreamHandler()
        handler.setFormatter(_json_formatter())
        logging.basicConfig(level=level, handlers=[handler], force=True)
    else:
        logging.basicConfig(level=level, format=SIMPLE_FORMAT, force=True)

    # SQL echo is noisy even at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if current.debug else logging.WARNING
    )
