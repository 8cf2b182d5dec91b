"""Session logging for pkgsmith commands.

One JSON object per line is written to ``<log_dir>/<session_id>/pkgsmith.jsonl``.
Records travel through a queue to a listener thread so git and build steps never
wait on file I/O. ``correlation_scope`` attaches the session, package and repo
being worked on, and every string is scrubbed of clone-URL credentials before it
reaches disk. Engine events emitted with ``structlog`` are rendered into the
same stdlib pipeline.
"""

from __future__ import annotations

import contextvars
import copy
import json
import logging
import logging.handlers
import queue
import re
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED: Final[str] = "***REDACTED***"
_CORRELATION_KEYS: Final[tuple[str, ...]] = ("session_id", "package", "repo")
_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "authorization",
    "credential",
)
_URL_CREDENTIALS: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b([a-z][a-z0-9+.-]*://)([^/\s:@]+(?::[^/\s@]*)?)@"
)
_SECRET_ASSIGNMENT: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    logging.makeLogRecord({}).__dict__
) | {"message", "asctime", "correlation"}

_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "pkgsmith_correlation", default={}
)
_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how one command session logs."""

    session_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = "pkgsmith"
    level: int | str = "INFO"
    log_filename: str = "pkgsmith.jsonl"
    log_to_stdout: bool = False
    redactor: LogRedactor | None = None


class _SessionQueueHandler(logging.handlers.QueueHandler):
    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        context = get_correlation_context()
        if context:
            record.correlation = context
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)

        # Message args and live tracebacks are rendered here; the listener thread only sees text.
        prepared = copy.copy(record)
        prepared.msg = record.getMessage()
        prepared.args = None
        prepared.exc_info = None
        return prepared


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, *, redactor: LogRedactor, session_id: str) -> None:
        super().__init__()
        self._redactor = redactor
        self._session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_text(record.getMessage()),
        }
        event.update(sorted(_record_correlation(record, self._session_id).items()))

        extras = {
            key: _to_json(value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
            and key not in _CORRELATION_KEYS
            and not key.startswith("_")
        }
        if extras:
            event["fields"] = self._redactor(extras)

        exception_text = (
            self.formatException(record.exc_info) if record.exc_info else record.exc_text
        )
        if exception_text:
            event["exception"] = redact_text(exception_text)

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """Live logging session; ``shutdown`` drains the queue and closes the sinks."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        session_id: str,
        log_path: Path,
        queue_handler: logging.Handler,
        sinks: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.session_id = session_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._sinks = sinks
        self._listener = listener
        self._lock = threading.Lock()
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def shutdown(self) -> None:
        with self._lock:
            if self._is_shutdown:
                return
            # stop() processes everything already queued before joining the thread.
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()
            self._is_shutdown = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Start logging for one session, replacing any session still active."""

    shutdown_logging()

    session_id = _non_empty("session_id", config.session_id)
    logger_name = _non_empty("logger_name", config.logger_name)
    log_filename = _non_empty("log_filename", config.log_filename)
    if Path(log_filename).name != log_filename:
        raise ValueError("log_filename must not include path separators")
    level = _parse_level(config.level)

    log_path = Path(config.base_log_dir) / session_id / log_filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = _JsonLineFormatter(
        redactor=config.redactor or default_log_redactor, session_id=session_id
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    queue_handler = _SessionQueueHandler(log_queue)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        session_id=session_id,
        log_path=log_path,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
    )
    global _active
    with _active_lock:
        _active = handle

    configure_structlog()
    return handle


def configure_structlog() -> None:
    """Route ``structlog`` events into the stdlib logger tree as records with extras."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Stop ``handle`` (default: the active session). Safe to call repeatedly."""

    global _active
    with _active_lock:
        resolved = handle if handle is not None else _active
        if resolved is None:
            return
        if _active is resolved:
            _active = None
    resolved.shutdown()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for records logged in scope; ``None`` unbinds a key."""

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        else:
            state[key] = _non_empty(f"correlation field {key}", value)
    token = _correlation.set(state)
    try:
        yield
    finally:
        _correlation.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask values under sensitive keys and strip credentials from strings, recursively."""

    return _redact(value, key=None)


def redact_text(text: str) -> str:
    """Strip credentials from clone URLs and ``key=value`` secrets in free text."""

    redacted = _URL_CREDENTIALS.sub(lambda match: f"{match.group(1)}{_REDACTED}@", text)
    return _SECRET_ASSIGNMENT.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED}", redacted
    )


def _record_correlation(record: logging.LogRecord, session_id: str) -> dict[str, str]:
    merged = {"session_id": session_id}
    snapshot = getattr(record, "correlation", None)
    if isinstance(snapshot, Mapping):
        merged.update(snapshot)
    # structlog key/values for the correlation keys win over the ambient scope.
    for key in _CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, str) and value.strip():
            merged[key] = value.strip()
    return merged


def _non_empty(label: str, value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty string")
    return value.strip()


def _parse_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(str(value).strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(item) for item in value), key=str)
    if isinstance(value, Path):
        return value.as_posix()
    return str(value)


def _redact(value: JSONValue, *, key: str | None) -> JSONValue:
    if key is not None and any(term in key.lower() for term in _SENSITIVE_KEY_TERMS):
        return _REDACTED
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, list):
        return [_redact(item, key=None) for item in value]
    if isinstance(value, dict):
        return {name: _redact(item, key=name) for name, item in value.items()}
    return value


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "redact_text",
    "setup_structured_logging",
    "shutdown_logging",
]
