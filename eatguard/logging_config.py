"""
Logging configuration for eatguard.

Structured JSON logging plus an audit logger for authorization events:
token decisions, batch outcomes, registry and emergency-mode changes.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import List, Optional

# Context variable for per-call id tracking
call_id_var: ContextVar[str] = ContextVar('call_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per record, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        call_id = call_id_var.get()
        if call_id:
            log_data["call_id"] = call_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for authorization audit events.

    Every token decision, batch outcome and administrative change goes
    through one of the typed methods below.
    """

    def __init__(self, name: str = "eatguard.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "call_id": call_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def token_verified(self, target: str, caller: str, selector: str, issuer: str, expiry: int) -> None:
        """Log an accepted Access Token."""
        self._log(
            logging.INFO,
            "TOKEN_VERIFIED",
            target=target,
            caller=caller,
            selector=selector,
            issuer=issuer,
            expiry=expiry,
            message=f"Access token from {issuer} accepted for {caller}"
        )

    def token_rejected(self, target: str, caller: str, selector: str, reason: str) -> None:
        """Log a rejected Access Token."""
        self._log(
            logging.WARNING,
            "TOKEN_REJECTED",
            target=target,
            caller=caller,
            selector=selector,
            reason=reason,
            message=f"Access token rejected: {reason}"
        )

    def batch_executed(self, target: str, caller: str, calls: int, value: int) -> None:
        self._log(
            logging.INFO,
            "BATCH_EXECUTED",
            target=target,
            caller=caller,
            calls=calls,
            value=value,
            message=f"Batch of {calls} calls executed"
        )

    def batch_reverted(self, target: str, caller: str, index: int, reason: str) -> None:
        """Log a batch rolled back by a failing sub-call."""
        self._log(
            logging.WARNING,
            "BATCH_REVERTED",
            target=target,
            caller=caller,
            index=index,
            reason=reason,
            message=f"Batch reverted at call {index}: {reason}"
        )

    def registry_changed(self, action: str, caller: str, addresses: List[str], version: int) -> None:
        """Log an issuer registry mutation."""
        self._log(
            logging.INFO,
            "REGISTRY_CHANGED",
            action=action,
            caller=caller,
            addresses=addresses,
            version=version,
            message=f"Issuer registry {action} by {caller}"
        )

    def emergency_mode_changed(self, contract: str, owner: str, enabled: bool) -> None:
        """Log an emergency flag change."""
        self._log(
            logging.WARNING,
            "EMERGENCY_MODE_CHANGED",
            contract=contract,
            owner=owner,
            enabled=enabled,
            message=f"Emergency mode {'enabled' if enabled else 'disabled'} on {contract}"
        )

    def credential_route_used(self, contract: str, caller: str, operation: str) -> None:
        self._log(
            logging.INFO,
            "CREDENTIAL_ROUTE_USED",
            contract=contract,
            caller=caller,
            operation=operation,
            message=f"{operation} authorized by identity credential"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_call_id(call_id: Optional[str] = None) -> str:
    """
    Set the call id for the current context.

    Args:
        call_id: Id to set, or None to generate one

    Returns:
        The id that was set
    """
    if call_id is None:
        call_id = str(uuid.uuid4())
    call_id_var.set(call_id)
    return call_id


def get_call_id() -> str:
    return call_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
