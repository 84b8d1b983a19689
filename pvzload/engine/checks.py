"""
Check Engine

Evalúa aserciones con nombre contra una respuesta HTTP. Un check que
lanza una excepción cuenta como fallido; la excepción nunca sale del
motor. La evaluación es pura: la misma respuesta produce siempre los
mismos resultados.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

import httpx

from pvzload.core.models import CheckResult
from pvzload.utils.logger import get_logger

logger = get_logger(__name__)


Predicate = Callable[[httpx.Response], bool]


@dataclass(frozen=True)
class Check:
    """Aserción con nombre sobre una respuesta."""
    name: str
    predicate: Predicate

    def evaluate(self, response: Optional[httpx.Response], group: Optional[str] = None) -> CheckResult:
        if response is None:
            return CheckResult(name=self.name, passed=False, group=group)
        try:
            passed = bool(self.predicate(response))
        except Exception as e:
            logger.debug(f"Check '{self.name}' lanzó {type(e).__name__}: {e}")
            passed = False
        return CheckResult(name=self.name, passed=passed, group=group)


def evaluate_checks(
    checks: Iterable[Check],
    response: Optional[httpx.Response],
    group: Optional[str] = None
) -> List[CheckResult]:
    """
    Evalúa todos los checks contra una respuesta.

    Args:
        checks: Checks a evaluar
        response: Respuesta HTTP; None cuando no hubo respuesta
            (error de transporte), en cuyo caso todos fallan
        group: Grupo al que pertenece el paso

    Returns:
        Un CheckResult por check, en el mismo orden
    """
    return [check.evaluate(response, group) for check in checks]


# ============================================================================
# HELPERS
# ============================================================================

def _json_field(response: httpx.Response, field: str) -> Any:
    """Campo del body JSON; admite rutas con puntos ("data.id")."""
    value: Any = response.json()
    for part in field.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def status_is(name: str, code: int) -> Check:
    """Check: el status de la respuesta es exactamente code."""
    return Check(name=name, predicate=lambda r: r.status_code == code)


def status_in(name: str, codes: Iterable[int]) -> Check:
    allowed = frozenset(codes)
    return Check(name=name, predicate=lambda r: r.status_code in allowed)


def json_has(name: str, field: str) -> Check:
    """Check: el body JSON contiene field con un valor no nulo."""
    return Check(name=name, predicate=lambda r: _json_field(r, field) is not None)
