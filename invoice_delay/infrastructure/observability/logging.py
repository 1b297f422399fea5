"""Structured JSON logging for the job and its HTTP surface"""

import logging
import sys
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from invoice_delay.utils.date_utils import DISPLAY_FORMAT, resolve_timezone

LOG_FILE_PREFIX = "invoice-delay"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping business-timezone time and service metadata"""

    def __init__(self, *args, service_name: str = "invoice-delay-gateway", tz: Optional[tzinfo] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name
        self.tz = tz or timezone.utc

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc).astimezone(self.tz)
        log_record["timestamp"] = created.strftime(DISPLAY_FORMAT)
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def log_file_path(logs_dir: Path, tz: tzinfo, now: Optional[datetime] = None) -> Path:
    """Daily JSON-lines file, named by the business date"""
    day = (now or datetime.now(timezone.utc)).astimezone(tz).strftime("%Y-%m-%d")
    return Path(logs_dir) / f"{LOG_FILE_PREFIX}-{day}.log"


def setup_logging(
    level: str = "INFO",
    logs_dir: Optional[Path] = None,
    timezone_name: Optional[str] = None,
    service_name: str = "invoice-delay-gateway",
) -> None:
    """Configure structured JSON logging to stdout and, optionally, a daily file"""
    tz = resolve_timezone(timezone_name) if timezone_name else timezone.utc

    logger = logging.getLogger()
    logger.setLevel(level.upper())

    # Remove existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
        tz=tz,
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if logs_dir is not None:
        path = log_file_path(logs_dir, tz)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
