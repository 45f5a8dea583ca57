"""Structured JSON logging for production observability"""

import logging
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from pythonjsonlogger import jsonlogger

from invest_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
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


class LogThrottle:
    """
    Rate-limits repetitive warnings per channel.

    Each channel (e.g. "chain.tron") remembers when it last emitted; a message
    on that channel is dropped until ``interval_seconds`` have passed.
    """

    def __init__(self, interval_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.log_throttle_seconds
        self._clock = clock
        self._last_logged_at: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_log(self, channel: str) -> bool:
        now = self._clock()
        with self._lock:
            last = self._last_logged_at.get(channel)
            if last is not None and now - last < self.interval_seconds:
                return False
            self._last_logged_at[channel] = now
            return True

    def warning(self, logger: logging.Logger, channel: str, message: str, **extra: Any) -> bool:
        """Log ``message`` at WARNING unless the channel is throttled; returns whether it was emitted"""
        if not self.should_log(channel):
            return False
        logger.warning(message, extra={"channel": channel, **extra})
        return True


def log_withdrawal_request(
    user_id: str,
    reference: str,
    amount: str,
    reserved_rows: int,
    split: bool,
) -> None:
    """Log structured withdrawal reservation outcome for audit"""
    logging.info(
        "Withdrawal reserved",
        extra={
            "user_id": user_id,
            "step": "withdrawal_reserved",
            "reference": reference,
            "amount": amount,
            "reserved_rows": reserved_rows,
            "split": split,
        },
    )


def log_accrual_run(kind: str, start_day: str, end_day: str, created: int, skipped: int, failures: int) -> None:
    """Log accrual sweep/backfill totals"""
    logging.info(
        "Accrual run completed",
        extra={
            "step": "accrual_complete",
            "kind": kind,
            "start_day": start_day,
            "end_day": end_day,
            "created": created,
            "skipped": skipped,
            "failures": failures,
        },
    )
