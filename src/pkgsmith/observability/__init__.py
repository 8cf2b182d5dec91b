"""Public observability primitives: structured logging and correlation context."""

from pkgsmith.observability.logging import (
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    redact_text,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
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
