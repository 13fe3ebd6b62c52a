"""
tokensale - Structured Logging Configuration

Configures structured JSON logging for sale operators and tooling:
- JSON format so sale event logs can be shipped and replayed
- Log rotation to prevent disk space issues
- Console and file handlers

Usage:
    from tokensale.core.logging_config import setup_logging

    logger = setup_logging(name="tokensale", log_file="/var/log/tokensale/sales.json")
    logger.info("Sale ended", extra={"event": "sale.ended", "sale": "0xabc..."})
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

DEFAULT_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SaleJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that stamps every record with timestamp, level,
    environment and source location.
    """

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        environment: Optional[str] = None,
        service_name: str = "tokensale",
    ):
        super().__init__(fmt=fmt)
        self.environment = environment or "development"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()

        log_record["environment"] = self.environment
        log_record["service"] = self.service_name
        log_record["source"] = {
            "function": record.funcName,
            "module": record.module,
            "line": record.lineno,
        }


def setup_logging(
    name: str = "tokensale",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = "development",
    json_format: bool = True,
    enable_console: bool = True,
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Setup logging for the tokensale package.

    Args:
        name: Logger name (the package root configures every module logger)
        log_file: Path to a rotating log file (optional)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Environment identifier stamped on JSON records
        json_format: Emit JSON records instead of plain text
        enable_console: Whether to log to stderr
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    if json_format:
        formatter: logging.Formatter = SaleJsonFormatter(
            environment=environment,
            service_name=name.split(".")[0],
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning("Could not create file handler for %s: %s", log_file, e)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def get_logger(name: str, log_file: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    """Get a logger, configuring it with the standard handlers on first use."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        return setup_logging(name=name, log_file=log_file, level=level)
    return logger
