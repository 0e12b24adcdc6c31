import logging
import os
import sys
from typing import Iterable

from pythonjsonlogger.json import JsonFormatter

REQUEST_FIELDS = (
    "request_id",
    "method",
    "target",
    "decision",
    "http_status",
    "duration_ms",
)


class _DefaultFieldsFilter(logging.Filter):
    def __init__(self, fields: Iterable[str]) -> None:
        super().__init__()
        self._fields = list(fields)

    def filter(self, record: logging.LogRecord) -> bool:
        for field in self._fields:
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


def configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger = logging.getLogger()
    logger.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s "
        + " ".join(f"%({field})s" for field in REQUEST_FIELDS),
        rename_fields={"asctime": "ts", "levelname": "level"},
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handler.setFormatter(formatter)
    handler.addFilter(_DefaultFieldsFilter(REQUEST_FIELDS))

    logger.handlers = [handler]
