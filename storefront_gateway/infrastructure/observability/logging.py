"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter

from storefront_gateway.config import settings


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


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


def log_transition(
    payment_id: str,
    to_status: str,
    actor_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> None:
    """Log a committed payment state transition"""
    logging.getLogger("storefront_gateway.payments").info(
        "Payment transitioned",
        extra={
            "payment_id": payment_id,
            "step": "payment_transition",
            "to_status": to_status,
            "actor_id": actor_id,
            "reason": reason,
        },
    )


def log_risk_fail_open(stage: str, user_id: str, error: Exception) -> None:
    """Log a risk check that failed and defaulted to approval"""
    logging.getLogger("storefront_gateway.risk").error(
        f"Risk {stage} assessment failed open: {error}",
        exc_info=error,
        extra={
            "user_id": user_id,
            "step": f"risk_{stage}",
            "risk_fail_open": True,
        },
    )
