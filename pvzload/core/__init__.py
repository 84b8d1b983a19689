"""
Core

Modelos de la corrida, opciones inmutables y contexto de iteración.
"""

from pvzload.core.models import IterationOutcome, RequestSample, CheckResult
from pvzload.core.options import RunOptions, Stage, parse_duration
from pvzload.core.context import IterationContext

__all__ = [
    "IterationOutcome",
    "RequestSample",
    "CheckResult",
    "RunOptions",
    "Stage",
    "parse_duration",
    "IterationContext",
]
