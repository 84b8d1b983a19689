"""
Thresholds

Parseo y evaluación de thresholds con la sintaxis de k6:

    "http_req_duration": ["p(95)<100"]
    "http_req_duration{name:/pvz (create)}": ["avg<=200"]
    "checks": ["rate>0.9999"]

Cada threshold se evalúa de forma independiente al final de la corrida.
Los errores de sintaxis se detectan al construir las opciones, antes de
generar carga.
"""

import operator
import re
from enum import Enum
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from pvzload.utils.errors import ThresholdSyntaxError


# ============================================================================
# METRIC CATALOG
# ============================================================================

class MetricKind(str, Enum):
    """Tipos de métrica (como en k6)."""
    TREND = "trend"
    COUNTER = "counter"
    RATE = "rate"
    GAUGE = "gauge"


METRIC_KINDS: Dict[str, MetricKind] = {
    "http_req_duration": MetricKind.TREND,
    "http_reqs": MetricKind.COUNTER,
    "http_req_failed": MetricKind.RATE,
    "checks": MetricKind.RATE,
    "iterations": MetricKind.COUNTER,
    "iterations_complete": MetricKind.COUNTER,
    "iterations_incomplete": MetricKind.COUNTER,
    "iterations_failed": MetricKind.COUNTER,
    "iterations_cancelled": MetricKind.COUNTER,
    "iteration_duration": MetricKind.TREND,
    "vus": MetricKind.GAUGE,
    "vus_max": MetricKind.GAUGE,
}

AGGREGATIONS: Dict[MetricKind, Tuple[str, ...]] = {
    MetricKind.TREND: ("avg", "min", "med", "max", "p"),
    MetricKind.COUNTER: ("count", "rate"),
    MetricKind.RATE: ("rate",),
    MetricKind.GAUGE: ("value",),
}

# Tags por los que se puede filtrar cada métrica
METRIC_TAGS: Dict[str, Tuple[str, ...]] = {
    "http_req_duration": ("name", "group"),
    "http_reqs": ("name", "group"),
    "http_req_failed": ("name", "group"),
    "checks": ("check", "group"),
}

OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_METRIC_RE = re.compile(r"^\s*(?P<metric>[a-z_]+)\s*(?:\{(?P<tag>[a-z_]+):(?P<value>[^}]+)\})?\s*$")
_EXPRESSION_RE = re.compile(
    r"^\s*(?P<agg>avg|min|med|max|count|rate|value|p\((?P<pct>\d+(?:\.\d+)?)\))"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*"
    r"(?P<bound>-?\d+(?:\.\d+)?)\s*$"
)


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class Threshold:
    """Threshold ya parseado."""
    metric: str
    expression: str
    aggregation: str
    operator: str
    bound: float
    percentile: Optional[float] = None
    tag: Optional[Tuple[str, str]] = None

    @property
    def metric_key(self) -> str:
        """Nombre de la métrica con su selector, tal como se escribió."""
        if self.tag:
            return f"{self.metric}{{{self.tag[0]}:{self.tag[1]}}}"
        return self.metric

    @property
    def aggregation_key(self) -> str:
        """'p(95)', 'avg', 'rate'..."""
        if self.aggregation == "p":
            return f"p({_format_number(self.percentile)})"
        return self.aggregation

    def evaluate(self, actual: float) -> bool:
        return OPERATORS[self.operator](actual, self.bound)

    def __str__(self) -> str:
        return f"{self.metric_key}: {self.expression}"


@dataclass(frozen=True)
class ThresholdResult:
    """Resultado de evaluar un threshold."""
    threshold: Threshold
    actual: float
    passed: bool


# ============================================================================
# PARSING
# ============================================================================

def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def parse_threshold(metric_spec: str, expression: str) -> Threshold:
    """
    Parsea un threshold.

    Args:
        metric_spec: Métrica con selector opcional, p.ej. "http_req_duration{name:/pvz (create)}"
        expression: Expresión, p.ej. "p(95)<100"

    Returns:
        Threshold parseado

    Raises:
        ThresholdSyntaxError: Métrica desconocida, agregación inválida
            para el tipo de métrica o expresión mal formada
    """
    metric_match = _METRIC_RE.match(metric_spec)
    if not metric_match:
        raise ThresholdSyntaxError(
            f"Métrica mal formada: '{metric_spec}'",
            metric=metric_spec, expression=expression
        )

    metric = metric_match.group("metric")
    kind = METRIC_KINDS.get(metric)
    if kind is None:
        raise ThresholdSyntaxError(
            f"Métrica desconocida: '{metric}'. Disponibles: {sorted(METRIC_KINDS)}",
            metric=metric_spec, expression=expression
        )

    tag = None
    if metric_match.group("tag"):
        tag_key = metric_match.group("tag")
        if tag_key not in METRIC_TAGS.get(metric, ()):
            raise ThresholdSyntaxError(
                f"La métrica '{metric}' no admite el tag '{tag_key}'",
                metric=metric_spec, expression=expression
            )
        tag = (tag_key, metric_match.group("value").strip())

    expr_match = _EXPRESSION_RE.match(expression)
    if not expr_match:
        raise ThresholdSyntaxError(
            f"Expresión mal formada: '{expression}'",
            metric=metric_spec, expression=expression
        )

    aggregation = expr_match.group("agg")
    percentile = None
    if expr_match.group("pct") is not None:
        aggregation = "p"
        percentile = float(expr_match.group("pct"))
        if not 0 <= percentile <= 100:
            raise ThresholdSyntaxError(
                f"Percentil fuera de rango en '{expression}'",
                metric=metric_spec, expression=expression
            )

    if aggregation not in AGGREGATIONS[kind]:
        raise ThresholdSyntaxError(
            f"Agregación '{aggregation}' no válida para {metric} ({kind.value})",
            metric=metric_spec, expression=expression
        )

    return Threshold(
        metric=metric,
        expression=expression.strip(),
        aggregation=aggregation,
        operator=expr_match.group("op"),
        bound=float(expr_match.group("bound")),
        percentile=percentile,
        tag=tag,
    )


def parse_thresholds(
    spec: Mapping[str, Union[str, Iterable[str]]]
) -> Tuple[Threshold, ...]:
    """
    Parsea un diccionario {métrica: [expresiones]}.

    Una expresión suelta (str) equivale a una lista de un elemento.
    """
    parsed = []
    for metric_spec, expressions in spec.items():
        if isinstance(expressions, str):
            expressions = (expressions,)
        for expression in expressions:
            parsed.append(parse_threshold(metric_spec, expression))
    return tuple(parsed)


# ============================================================================
# EVALUATION
# ============================================================================

def evaluate_thresholds(
    thresholds: Iterable[Threshold],
    value_of: Callable[[Threshold], float]
) -> Tuple[ThresholdResult, ...]:
    """
    Evalúa cada threshold de forma independiente.

    Args:
        thresholds: Thresholds a evaluar
        value_of: Función que devuelve el valor agregado real de un threshold
    """
    results = []
    for threshold in thresholds:
        actual = value_of(threshold)
        results.append(ThresholdResult(
            threshold=threshold,
            actual=actual,
            passed=threshold.evaluate(actual),
        ))
    return tuple(results)
