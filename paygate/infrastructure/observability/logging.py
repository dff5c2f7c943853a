"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "paygate"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_micro_deposits_initiated(
    request_id: str,
    user_id: str,
    depository_id: str,
    count: int,
    ledger_error: str | None,
    duration_ms: float,
) -> None:
    """Log structured initiation outcome"""
    logging.info(
        "Micro-deposits initiated",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "depository_id": depository_id,
            "step": "micro_deposits_initiated",
            "micro_deposit_count": count,
            "ledger_outcome": "failed" if ledger_error else "ok",
            "duration_ms": duration_ms,
        },
    )


def log_confirmation(request_id: str, user_id: str, depository_id: str, outcome: str) -> None:
    """Log structured confirmation outcome (never the guessed amounts)"""
    logging.info(
        "Micro-deposit confirmation",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "depository_id": depository_id,
            "step": "micro_deposits_confirmed",
            "confirmation_outcome": outcome,
        },
    )
