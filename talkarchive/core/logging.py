"""
Structured logging setup.

Log calls use an event name plus key/value context:

    logger = get_logger(__name__)
    logger.info("video_ingested", video_id="abc123", source="extractor")

`LOG_FORMAT=json` renders one JSON object per line (production),
`LOG_FORMAT=text` renders colourised console output (development).
"""

import logging
import sys

import structlog

from talkarchive.core.config import settings


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure stdlib logging and structlog processors."""
    level = level or settings.LOG_LEVEL
    log_format = log_format or settings.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    # Third-party clients are chatty at INFO
    for noisy in ("httpx", "googleapiclient.discovery_cache", "sentence_transformers"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
