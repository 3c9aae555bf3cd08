"""
Logging for the editorial workflow service.

The console gets one readable line per record. The rotating files under
``settings.logs_dir`` get one JSON document per line. Manuscript transitions,
review events and DOI deposit attempts go to the ``workflow`` logger so the
editorial audit trail can be shipped apart from request logs.
"""

import json
import logging
import logging.handlers
import sys
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from editorial.core.config import settings

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)
operation_var: ContextVar[Optional[str]] = ContextVar('operation', default=None)

MB = 1024 * 1024

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_WORKFLOW_FIELDS = ("manuscript_id", "event", "from_status", "to_status", "actor_id", "attempt")

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "motor": logging.WARNING,
    "pymongo": logging.WARNING,
    "apscheduler": logging.WARNING,
    "boto3": logging.WARNING,
    "botocore": logging.WARNING,
    "httpx": logging.WARNING,
}


def current_context() -> Dict[str, str]:
    """Request id, acting user and operation bound to the running task."""
    context = {
        "request_id": request_id_var.get(),
        "user_id": user_id_var.get(),
        "operation": operation_var.get(),
    }
    return {key: value for key, value in context.items() if value}


def _exception_payload(record: logging.LogRecord) -> Optional[Dict[str, Any]]:
    if not record.exc_info or record.exc_info[0] is None:
        return None
    exc_type, exc, tb = record.exc_info
    return {
        "type": exc_type.__name__,
        "message": str(exc),
        "traceback": traceback.format_exception(exc_type, exc, tb),
    }


def _utc_stamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


class ConsoleFormatter(logging.Formatter):
    """``12:00:01 INFO  [op:publish_issue, req:1a2b3c4d] issue_service: message``"""

    def format(self, record: logging.LogRecord) -> str:
        context = current_context()
        tags = []
        if "operation" in context:
            tags.append(f"op:{context['operation']}")
        if "request_id" in context:
            tags.append(f"req:{context['request_id']}")
        if "user_id" in context:
            tags.append(f"user:{context['user_id'][-6:]}")
        tag_str = f"[{', '.join(tags)}] " if tags else ""

        line = (
            f"{datetime.now():%H:%M:%S} {record.levelname:<5} {tag_str}"
            f"{record.name.rsplit('.', 1)[-1]}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with the logging context and any extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_stamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            **current_context(),
        }
        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra
        exception = _exception_payload(record)
        if exception:
            entry["exception"] = exception
        return json.dumps(entry, default=str, ensure_ascii=False)


class WorkflowFormatter(logging.Formatter):
    """Audit-trail records: which manuscript moved, how, and who moved it."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_stamp(),
            "type": "workflow",
            "level": record.levelname,
            "message": record.getMessage(),
        }
        entry.update({field: getattr(record, field, None) for field in _WORKFLOW_FIELDS})
        metadata = getattr(record, "metadata", None)
        if metadata:
            entry["metadata"] = metadata
        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id
        exception = _exception_payload(record)
        if exception:
            entry["exception"] = exception
        return json.dumps(entry, default=str, ensure_ascii=False)


def _file_handler(path: Path, max_bytes: int, backups: int, level: int,
                  formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> None:
    """Install console and file handlers; safe to call more than once."""
    logs_dir = Path(settings.logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    base_level = logging.DEBUG if settings.debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(base_level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)
    root.addHandler(_file_handler(logs_dir / "application.log", 10 * MB, 5, base_level, JsonFormatter()))
    root.addHandler(_file_handler(logs_dir / "errors.log", 10 * MB, 10, logging.ERROR, JsonFormatter()))

    # The workflow trail still propagates to the console and application.log.
    workflow = logging.getLogger("workflow")
    workflow.handlers.clear()
    workflow.addHandler(_file_handler(logs_dir / "workflow.log", 20 * MB, 5, logging.INFO, WorkflowFormatter()))

    security = logging.getLogger("security")
    security.handlers.clear()
    security.addHandler(_file_handler(logs_dir / "security.log", 5 * MB, 10, logging.WARNING, JsonFormatter()))
    security.propagate = False

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    logging.getLogger(__name__).info(
        f"Logging to {logs_dir} (debug={settings.debug})",
        extra={"handlers": len(root.handlers)}
    )


def set_request_context(request_id: str = None, user_id: str = None, operation: str = None) -> None:
    """Bind whichever of the values are given; the others keep their current value."""
    for var, value in ((request_id_var, request_id), (user_id_var, user_id), (operation_var, operation)):
        if value:
            var.set(value)


def clear_request_context() -> None:
    for var in (request_id_var, user_id_var, operation_var):
        var.set(None)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


class LoggingContext:
    """
    Brackets a long-running operation (issue publication, bulk DOI retry) with
    start and finish records and binds the operation name to every record
    logged inside the block.

    The previous context is restored on exit, so an operation started inside a
    request keeps the request's id afterwards.
    """

    def __init__(self, operation: str, user_id: str = None, **fields):
        self.operation = operation
        self.user_id = user_id
        self.fields = fields
        self.logger = logging.getLogger(f"operation.{operation}")
        self._tokens = []
        self._started = 0.0

    def __enter__(self):
        self._tokens = [operation_var.set(self.operation)]
        if self.user_id:
            self._tokens.append(user_id_var.set(self.user_id))
        if request_id_var.get() is None:
            self._tokens.append(request_id_var.set(generate_request_id()))
        self._started = time.perf_counter()
        self.logger.info(f"Started {self.operation}", extra=self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed_ms = round((time.perf_counter() - self._started) * 1000, 1)
        if exc_type is None:
            self.logger.info(f"Finished {self.operation} in {elapsed_ms}ms",
                             extra={"duration_ms": elapsed_ms, **self.fields})
        else:
            self.logger.error(f"{self.operation} failed after {elapsed_ms}ms: {exc_val}",
                              extra={"duration_ms": elapsed_ms, **self.fields},
                              exc_info=(exc_type, exc_val, exc_tb))
        for token in reversed(self._tokens):
            token.var.reset(token)
        return False


class WorkflowLogger:
    """Writes the editorial audit trail to the ``workflow`` logger."""

    def __init__(self):
        self.logger = logging.getLogger("workflow")

    def log_transition(self, manuscript_id: str, event: str, from_status: Optional[str],
                       to_status: Optional[str], actor_id: Optional[str] = None, **metadata):
        self.logger.info(f"{event}: {manuscript_id} {from_status} -> {to_status}", extra={
            "manuscript_id": manuscript_id,
            "event": event,
            "from_status": from_status,
            "to_status": to_status,
            "actor_id": actor_id,
            "metadata": metadata,
        })

    def log_review_event(self, manuscript_id: str, review_id: str, event: str,
                         actor_id: Optional[str] = None, **metadata):
        self.logger.info(f"Review {review_id} on {manuscript_id}: {event}", extra={
            "manuscript_id": manuscript_id,
            "event": f"review_{event}",
            "actor_id": actor_id,
            "metadata": {"review_id": review_id, **metadata},
        })

    def log_deposit_attempt(self, manuscript_id: str, attempt: int, status: str,
                            doi: Optional[str] = None, error: Optional[str] = None):
        level = logging.INFO if status == "success" else logging.WARNING
        self.logger.log(level, f"DOI deposit #{attempt} for {manuscript_id}: {status}", extra={
            "manuscript_id": manuscript_id,
            "event": "doi_deposit",
            "attempt": attempt,
            "metadata": {"status": status, "doi": doi, "error": error},
        })

    def log_bulk_retry(self, processed: int, succeeded: int, failed: int, duration_ms: float):
        self.logger.info(f"DOI retry run: {processed} processed, {succeeded} deposited, {failed} failed", extra={
            "event": "doi_bulk_retry",
            "metadata": {"processed": processed, "success": succeeded, "failed": failed,
                         "duration_ms": duration_ms},
        })


class SecurityLogger:

    def __init__(self):
        self.logger = logging.getLogger("security")

    def log_unauthorized_access(self, user_id: str, resource: str, action: str, ip_address: str = None):
        self.logger.warning(f"User {user_id} denied {action} on {resource}", extra={
            "event_type": "unauthorized_access",
            "user_id": user_id,
            "resource": resource,
            "action": action,
            "ip_address": ip_address,
        })


workflow_logger = WorkflowLogger()
security_logger = SecurityLogger()
