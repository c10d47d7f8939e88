"""Public observability primitives: structured, stage-correlated logging."""

from ort_builder.observability.logging import (
    LOG_FILENAME,
    LoggingConfig,
    LoggingHandle,
    correlation_scope,
    flush_logging,
    get_active_logging_handle,
    get_correlation_context,
    new_run_id,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LOG_FILENAME",
    "LoggingConfig",
    "LoggingHandle",
    "correlation_scope",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "new_run_id",
    "setup_structured_logging",
    "shutdown_logging",
]
