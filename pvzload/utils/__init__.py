"""
Utilidades del Sistema

Módulo que exporta todas las utilidades:
- Logger: Logging estructurado con contexto por VU
- Errors: Jerarquía de errores y registro por categoría
"""

# Logger
from pvzload.utils.logger import (
    get_logger,
    setup_logging,
    configure_from_settings,
    new_run_id,
    get_run_id,
    LogContext,
    log_exception,
)

# Errors
from pvzload.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    LoadTestError,
    DependencyMissing,
    CheckFailed,
    TransportError,
    RunCancelled,
    ConfigurationError,
    ThresholdSyntaxError,
    PreflightError,
    wrap_transport_error,
    ErrorRegistry,
)

__all__ = [
    # Logger
    "get_logger",
    "setup_logging",
    "configure_from_settings",
    "new_run_id",
    "get_run_id",
    "LogContext",
    "log_exception",
    # Errors
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorContext",
    "LoadTestError",
    "DependencyMissing",
    "CheckFailed",
    "TransportError",
    "RunCancelled",
    "ConfigurationError",
    "ThresholdSyntaxError",
    "PreflightError",
    "wrap_transport_error",
    "ErrorRegistry",
]
