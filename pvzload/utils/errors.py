"""
Sistema Centralizado de Manejo de Errores

Proporciona:
- Tipos de error categorizados (LoadTestError, DependencyMissing, etc.)
- Contexto del error (VU, iteración, paso, grupo)
- Conversión de excepciones de httpx a TransportError
- Registro thread-safe de errores para el reporte final

Los errores de ejecución (dependencia, check, transporte, cancelación)
se recuperan localmente en el VU; solo los thresholds marcan la corrida
como fallida.
"""

import threading
import uuid
from enum import Enum
from typing import Optional, Any, Dict, List
from dataclasses import dataclass

from pvzload.utils.logger import get_logger, get_run_id

logger = get_logger(__name__)


# ============================================================================
# ERROR CATEGORIES
# ============================================================================

class ErrorCategory(str, Enum):
    """Categorías de error para clasificación."""
    DEPENDENCY = "DEPENDENCY"
    CHECK = "CHECK"
    TRANSPORT = "TRANSPORT"
    CANCELLED = "CANCELLED"
    CONFIGURATION = "CONFIGURATION"
    INTERNAL = "INTERNAL"


class ErrorSeverity(str, Enum):
    """Severidad del error para priorización."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ============================================================================
# ERROR CONTEXT
# ============================================================================

@dataclass
class ErrorContext:
    """Contexto adicional para un error."""
    vu_id: Optional[int] = None
    iteration: Optional[int] = None
    step: Optional[str] = None
    group: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================

class LoadTestError(Exception):
    """
    Excepción base del generador de carga.

    Incluye categoría, severidad y contexto de ejecución.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[ErrorContext] = None,
        original_error: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.original_error = original_error
        self.error_id = str(uuid.uuid4())
        self.run_id = get_run_id()

    def to_dict(self) -> Dict[str, Any]:
        """Convierte el error a diccionario para logging."""
        return {
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "error_id": self.error_id,
            "run_id": self.run_id,
            "context": {
                "vu_id": self.context.vu_id,
                "iteration": self.context.iteration,
                "step": self.context.step,
                "group": self.context.group,
                "extra": self.context.extra,
            },
            "original_error": str(self.original_error) if self.original_error else None,
        }


class DependencyMissing(LoadTestError):
    """Un paso requiere un valor que un paso anterior no produjo."""

    def __init__(self, message: str, slot: Optional[str] = None, **kwargs):
        self.slot = slot
        super().__init__(
            message=message,
            category=ErrorCategory.DEPENDENCY,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class CheckFailed(LoadTestError):
    """Un check no se cumplió. Se registra, nunca se lanza."""

    def __init__(self, message: str, check_name: Optional[str] = None, **kwargs):
        self.check_name = check_name
        super().__init__(
            message=message,
            category=ErrorCategory.CHECK,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class TransportError(LoadTestError):
    """Timeout o fallo de conexión al ejecutar un request."""

    def __init__(self, message: str, sample: Any = None, **kwargs):
        self.sample = sample
        super().__init__(
            message=message,
            category=ErrorCategory.TRANSPORT,
            severity=ErrorSeverity.MEDIUM,
            **kwargs
        )


class RunCancelled(LoadTestError):
    """Iteración cancelada a la fuerza al vencer el período de gracia."""

    def __init__(self, message: str = "Iteración cancelada por el scheduler", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.CANCELLED,
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class ConfigurationError(LoadTestError):
    """Opciones de ejecución inválidas. Se lanza antes de generar carga."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        self.field = field
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )


class ThresholdSyntaxError(ConfigurationError):
    """Expresión de threshold mal formada o no aplicable a la métrica."""

    def __init__(self, message: str, metric: Optional[str] = None,
                 expression: Optional[str] = None, **kwargs):
        self.metric = metric
        self.expression = expression
        super().__init__(message=message, field="thresholds", **kwargs)


class PreflightError(ConfigurationError):
    """El servicio objetivo no respondió al health check requerido."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        self.status_code = status_code
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        super().__init__(message=message, field="preflight", **kwargs)


# ============================================================================
# ERROR CONVERSION UTILITIES
# ============================================================================

def wrap_transport_error(
    error: BaseException,
    step: Optional[str] = None,
    sample: Any = None,
    context: Optional[ErrorContext] = None
) -> TransportError:
    """Envuelve una excepción de httpx en TransportError."""
    context = context or ErrorContext()
    if step and not context.step:
        context.step = step
    detail = str(error) or type(error).__name__
    return TransportError(
        message=f"Error de transporte en {step or 'request'}: {detail}",
        sample=sample,
        original_error=error,
        context=context
    )


# ============================================================================
# ERROR REGISTRY (para métricas)
# ============================================================================

class ErrorRegistry:
    """
    Registro de errores para métricas y análisis.

    Cuenta errores por categoría y guarda los más recientes. Es
    thread-safe: lo escriben todos los VUs a la vez.
    """

    def __init__(self, max_recent: int = 100):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
        self._recent_errors: List[Dict[str, Any]] = []
        self._max_recent = max_recent

    def record(self, error: LoadTestError) -> None:
        """Registra un error en el registry."""
        entry = {
            "error_id": error.error_id,
            "category": error.category.value,
            "step": error.context.step,
            "message": error.message[:100],
        }
        with self._lock:
            key = error.category.value
            self._counts[key] = self._counts.get(key, 0) + 1
            self._recent_errors.append(entry)
            if len(self._recent_errors) > self._max_recent:
                self._recent_errors.pop(0)

    def get_counts(self) -> Dict[str, int]:
        """Obtiene conteo de errores por categoría."""
        with self._lock:
            return self._counts.copy()

    def get_recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Obtiene los errores más recientes."""
        with self._lock:
            return self._recent_errors[-limit:]

    def reset(self) -> None:
        """Resetea los contadores."""
        with self._lock:
            self._counts.clear()
            self._recent_errors.clear()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    # Categories & Severity
    "ErrorCategory",
    "ErrorSeverity",
    # Exceptions
    "LoadTestError",
    "DependencyMissing",
    "CheckFailed",
    "TransportError",
    "RunCancelled",
    "ConfigurationError",
    "ThresholdSyntaxError",
    "PreflightError",
    "ErrorContext",
    # Utilities
    "wrap_transport_error",
    # Registry
    "ErrorRegistry",
]
