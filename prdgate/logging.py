"""
prdgate Structured Logging

Event-style log records carrying the project, task and LLM tier they concern.
Fields set through log_context() propagate to every record emitted inside the
block; JsonFormatter redacts secrets and URL credentials before writing.
"""

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from urllib.parse import urlsplit, urlunsplit
from typing import TYPE_CHECKING, Any, Dict, Generator, Optional

if TYPE_CHECKING:
    from prdgate.config import Config


STANDARD_FIELDS = ("request_id", "project_id", "task_id", "tier")

TEXT_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(message)s "
    "req=%(request_id)s project=%(project_id)s task=%(task_id)s tier=%(tier)s"
)

_RESERVED_LOG_RECORD_ATTRS = set(
    logging.LogRecord(
        name="",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="",
        args=(),
        exc_info=None,
    ).__dict__.keys()
)
_RESERVED_LOG_RECORD_ATTRS.update({"asctime", "message"})

_REDACTED = "[REDACTED]"
_SECRET_KEY_MARKERS = (
    "token", "secret", "password", "api_key", "apikey",
    "private_key", "bearer", "credential", "authorization",
)


def _is_secret_key(key: str) -> bool:
    lower = (key or "").lower()
    return any(marker in lower for marker in _SECRET_KEY_MARKERS)


def _without_credentials(url: str) -> str:
    """Drop a user:pass@ prefix from a URL; other text is returned unchanged."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit(parts._replace(netloc=host))


def _redact(key: str, value: Any) -> Any:
    if _is_secret_key(key):
        return _REDACTED
    if isinstance(value, str):
        return _without_credentials(value)
    if isinstance(value, dict):
        return {k: _redact(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(key, v) for v in value]
    return value


_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("PRDGATE_LOG_CONTEXT", default={})


def get_log_context() -> Dict[str, Any]:
    """Copy of the fields currently bound by log_context()."""
    return dict(_LOG_CONTEXT.get())


@contextmanager
def log_context(**fields: Any) -> Generator[None, None, None]:
    """
    Bind fields to every record logged inside the block.

    Nested blocks add to the outer fields; None values are ignored.

    Example:
        with log_context(project_id="proj-1", tier="prdAnalysis"):
            await gateway.call(...)
    """
    token = _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **log_extra(**fields)})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


class ContextFieldFilter(logging.Filter):
    """
    Copies bound context fields onto each record and fills the standard
    fields with "-" so text formats can always reference them.

    Fields passed explicitly through ``extra=`` are left alone.
    """

    def __init__(self, defaults: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self.defaults = dict.fromkeys(STANDARD_FIELDS, "-")
        self.defaults.update(log_extra(**(defaults or {})))

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if key not in _RESERVED_LOG_RECORD_ATTRS and not hasattr(record, key):
                setattr(record, key, value)
        for key, default in self.defaults.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: base fields, standard fields, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STANDARD_FIELDS:
            data[field] = getattr(record, field, "-")
        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_RECORD_ATTRS and key not in data:
                data[key] = value
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps({k: _redact(k, v) for k, v in data.items()}, default=str)


def setup_logging(
    config: Optional["Config"] = None,
    *,
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
) -> logging.Logger:
    """
    Install a single stream handler on the root logger.

    Args:
        config: Source of log_level / log_json (default: get_config())
        level: Overrides config.log_level
        json_output: Overrides config.log_json

    Returns:
        The "prdgate" logger
    """
    if level is None or json_output is None:
        if config is None:
            from prdgate.config import get_config

            config = get_config()
        level = level or config.log_level
        json_output = config.log_json if json_output is None else json_output

    handler = logging.StreamHandler()
    handler.addFilter(ContextFieldFilter())
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    return logging.getLogger("prdgate")


def get_logger(name: str = "prdgate") -> logging.Logger:
    return logging.getLogger(name)


def log_extra(**fields: Any) -> Dict[str, Any]:
    """
    Build an ``extra=`` dict, dropping None values so filter defaults still apply.

    Example:
        logger.info("files_committed", extra=log_extra(project_id="p1", task_id="T-1", count=3))
    """
    return {k: v for k, v in fields.items() if v is not None}
