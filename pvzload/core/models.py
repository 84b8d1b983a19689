"""
Modelos de datos de la corrida

Registros inmutables que fluyen de los VUs hacia el agregador.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import time


class IterationOutcome(str, Enum):
    """Resultado de una iteración del escenario."""
    COMPLETE = "complete"        # Todos los pasos ejecutados
    INCOMPLETE = "incomplete"    # Cortada por dependencia o abort
    FAILED = "failed"            # Error de transporte o interno
    CANCELLED = "cancelled"      # Cancelada tras el período de gracia


@dataclass(frozen=True)
class RequestSample:
    """
    Medición de un request HTTP.

    status 0 significa que no hubo respuesta (timeout o conexión fallida).
    """
    name: str
    method: str
    url: str
    status: int
    duration_ms: float
    group: Optional[str] = None
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def failed(self) -> bool:
        """Fallido = error de transporte o status >= 400."""
        return self.status == 0 or self.status >= 400


@dataclass(frozen=True)
class CheckResult:
    """Resultado de evaluar un check contra una respuesta."""
    name: str
    passed: bool
    group: Optional[str] = None
