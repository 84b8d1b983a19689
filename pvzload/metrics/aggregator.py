"""
Metrics Aggregator

Acumula las muestras de todos los VUs (requests, checks, iteraciones,
VUs activos) y al final de la corrida construye el RunResult inmutable
evaluando los thresholds.

Es el único escritor de las métricas acumuladas. Todas las escrituras
pasan por un threading.Lock, así que se puede alimentar desde muchas
tareas asyncio y desde varios hilos a la vez.
"""

import math
import random
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pvzload.core.models import CheckResult, IterationOutcome, RequestSample
from pvzload.metrics.thresholds import (
    METRIC_KINDS,
    MetricKind,
    Threshold,
    ThresholdResult,
    evaluate_thresholds,
)
from pvzload.utils.errors import ErrorRegistry, LoadTestError
from pvzload.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# AGGREGATION HELPERS
# ============================================================================

DEFAULT_MAX_SAMPLES = 50_000


def _sorted_percentile(sorted_data: List[float], pct: float) -> float:
    if not sorted_data:
        return 0.0
    k = (len(sorted_data) - 1) * (pct / 100.0)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_data[int(k)]
    return sorted_data[f] * (c - k) + sorted_data[c] * (k - f)


def percentile(data: List[float], pct: float) -> float:
    """
    Percentil con interpolación lineal entre los rangos más cercanos.

    Lista vacía → 0.0.
    """
    return _sorted_percentile(sorted(data), pct)


def trend_value(data: List[float], aggregation: str, pct: Optional[float] = None) -> float:
    """Agrega una serie de tiempos (ms). Serie vacía → 0.0."""
    series = TrendSeries(max_samples=max(len(data), 1))
    for value in data:
        series.add(value)
    return series.value(aggregation, pct)


def _rate(passes: int, total: int) -> float:
    return passes / total if total else 0.0


class TrendSeries:
    """
    Serie de tiempos (ms) con memoria acotada.

    count, avg, min y max son exactos. Los percentiles salen de un
    reservorio de hasta max_samples valores elegidos de forma uniforme
    (algoritmo R): exactos mientras count <= max_samples, estimados
    después. La copia ordenada se reutiliza hasta la próxima muestra.

    No usa lock propio; MetricsAggregator la protege con el suyo.
    """

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES, rng: Optional[random.Random] = None):
        if max_samples < 1:
            raise ValueError("max_samples debe ser al menos 1")
        self.max_samples = max_samples
        self._rng = rng or random.Random()
        self._samples: List[float] = []
        self._sorted: Optional[List[float]] = None
        self.count = 0
        self.total = 0.0
        self.min = 0.0
        self.max = 0.0

    def __len__(self) -> int:
        """Muestras retenidas (nunca más de max_samples)."""
        return len(self._samples)

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.count == 1:
            self.min = self.max = value
        else:
            self.min = min(self.min, value)
            self.max = max(self.max, value)

        if len(self._samples) < self.max_samples:
            self._samples.append(value)
        else:
            slot = self._rng.randrange(self.count)
            if slot >= self.max_samples:
                return
            self._samples[slot] = value
        self._sorted = None

    def sorted_samples(self) -> List[float]:
        if self._sorted is None:
            self._sorted = sorted(self._samples)
        return self._sorted

    def value(self, aggregation: str, pct: Optional[float] = None) -> float:
        """Valor agregado (avg, min, med, max o p). Serie vacía → 0.0."""
        if aggregation not in ("avg", "min", "med", "max", "p"):
            raise ValueError(f"Agregación de trend desconocida: {aggregation}")
        if not self.count:
            return 0.0
        if aggregation == "avg":
            return self.total / self.count
        if aggregation == "min":
            return self.min
        if aggregation == "max":
            return self.max
        if aggregation == "med":
            return _sorted_percentile(self.sorted_samples(), 50)
        return _sorted_percentile(self.sorted_samples(), pct if pct is not None else 50)

    def summary(self) -> "TrendSummary":
        return TrendSummary(
            count=self.count,
            avg=self.value("avg"),
            min=self.min,
            med=self.value("med"),
            max=self.max,
            p90=self.value("p", 90),
            p95=self.value("p", 95),
            p99=self.value("p", 99),
        )


# ============================================================================
# RESULT DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class TrendSummary:
    """Resumen de una serie de tiempos en ms."""
    count: int = 0
    avg: float = 0.0
    min: float = 0.0
    med: float = 0.0
    max: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": round(self.avg, 3),
            "min": round(self.min, 3),
            "med": round(self.med, 3),
            "max": round(self.max, 3),
            "p(90)": round(self.p90, 3),
            "p(95)": round(self.p95, 3),
            "p(99)": round(self.p99, 3),
        }


@dataclass(frozen=True)
class EndpointSummary:
    """Latencia y errores de un endpoint (tag name)."""
    name: str
    requests: int
    failed: int
    duration: TrendSummary

    @property
    def failed_rate(self) -> float:
        return _rate(self.failed, self.requests)


@dataclass(frozen=True)
class CheckSummary:
    """Pasadas y fallos de un check por nombre."""
    name: str
    passes: int
    fails: int

    @property
    def rate(self) -> float:
        return _rate(self.passes, self.passes + self.fails)


@dataclass(frozen=True)
class RunResult:
    """
    Resultado inmutable de una corrida.

    passed es True solo si todos los thresholds se cumplieron.
    """
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    http_req_duration: TrendSummary
    http_reqs: int
    http_req_failed: int
    endpoints: Mapping[str, EndpointSummary]
    checks: Mapping[str, CheckSummary]
    checks_passes: int
    checks_fails: int
    iterations: Mapping[str, int]
    iteration_duration: TrendSummary
    errors: Mapping[str, int]
    vus_max: int
    thresholds: Tuple[ThresholdResult, ...] = ()
    recent_errors: Tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    tags: Tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.thresholds)

    @property
    def checks_rate(self) -> float:
        return _rate(self.checks_passes, self.checks_passes + self.checks_fails)

    @property
    def http_req_failed_rate(self) -> float:
        return _rate(self.http_req_failed, self.http_reqs)

    @property
    def failed_thresholds(self) -> List[ThresholdResult]:
        return [result for result in self.thresholds if not result.passed]

    def to_dict(self) -> Dict[str, Any]:
        """Convierte el resultado a diccionario (exportación JSON)."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "passed": self.passed,
            "tags": list(self.tags),
            "metrics": {
                "http_req_duration": self.http_req_duration.to_dict(),
                "http_reqs": {"count": self.http_reqs},
                "http_req_failed": {
                    "rate": self.http_req_failed_rate,
                    "fails": self.http_req_failed,
                },
                "checks": {
                    "rate": self.checks_rate,
                    "passes": self.checks_passes,
                    "fails": self.checks_fails,
                },
                "iterations": dict(self.iterations),
                "iteration_duration": self.iteration_duration.to_dict(),
                "vus_max": {"value": self.vus_max},
            },
            "endpoints": {
                name: {
                    "requests": summary.requests,
                    "failed": summary.failed,
                    "duration": summary.duration.to_dict(),
                }
                for name, summary in self.endpoints.items()
            },
            "checks": {
                name: {"passes": summary.passes, "fails": summary.fails}
                for name, summary in self.checks.items()
            },
            "errors": dict(self.errors),
            "thresholds": {
                str(result.threshold): {
                    "actual": result.actual,
                    "ok": result.passed,
                }
                for result in self.thresholds
            },
        }


# ============================================================================
# AGGREGATOR
# ============================================================================

TagKey = Tuple[str, str]


class MetricsAggregator:
    """
    Acumulador de métricas de la corrida.

    Uso:
        aggregator = MetricsAggregator()
        aggregator.start()
        aggregator.record_request(sample)
        aggregator.record_checks(results)
        aggregator.record_iteration(IterationOutcome.COMPLETE, 1520.0)
        aggregator.stop()
        result = aggregator.build_result(options.thresholds)

    Cada serie de tiempos retiene como máximo max_samples valores
    (ver TrendSeries).
    """

    def __init__(
        self,
        error_registry: Optional[ErrorRegistry] = None,
        max_samples: int = DEFAULT_MAX_SAMPLES,
        rng: Optional[random.Random] = None
    ):
        self._lock = Lock()
        self.errors = error_registry or ErrorRegistry()
        self._rng = rng or random.Random()
        self._max_samples = max_samples

        # Requests
        self._durations = self._new_series()
        self._durations_by_tag: Dict[TagKey, TrendSeries] = defaultdict(self._new_series)
        self._reqs = 0
        self._reqs_by_tag: Dict[TagKey, int] = defaultdict(int)
        self._failed = 0
        self._failed_by_tag: Dict[TagKey, int] = defaultdict(int)

        # Checks
        self._check_passes = 0
        self._check_fails = 0
        self._check_passes_by_tag: Dict[TagKey, int] = defaultdict(int)
        self._check_fails_by_tag: Dict[TagKey, int] = defaultdict(int)
        self._check_names: List[str] = []

        # Iteraciones
        self._iterations: Dict[IterationOutcome, int] = {outcome: 0 for outcome in IterationOutcome}
        self._iteration_durations = self._new_series()

        # VUs
        self._vus = 0
        self._vus_max = 0

        # Tiempos
        self._started_monotonic: Optional[float] = None
        self._stopped_monotonic: Optional[float] = None
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None

    def _new_series(self) -> TrendSeries:
        return TrendSeries(self._max_samples, self._rng)

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Marca el inicio de la corrida."""
        with self._lock:
            self._started_monotonic = time.monotonic()
            self.started_at = datetime.now(timezone.utc)

    def stop(self) -> None:
        """Marca el final de la corrida."""
        with self._lock:
            self._stopped_monotonic = time.monotonic()
            self.finished_at = datetime.now(timezone.utc)

    def elapsed_seconds(self) -> float:
        """Segundos desde start() hasta stop() (o hasta ahora)."""
        if self._started_monotonic is None:
            return 0.0
        end = self._stopped_monotonic if self._stopped_monotonic is not None else time.monotonic()
        return max(end - self._started_monotonic, 0.0)

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    @staticmethod
    def _request_tags(sample: RequestSample) -> List[TagKey]:
        tags = [("name", sample.name)]
        if sample.group:
            tags.append(("group", sample.group))
        return tags

    def record_request(self, sample: RequestSample) -> None:
        """Registra una muestra de request (http_req_duration, http_reqs, http_req_failed)."""
        tags = self._request_tags(sample)
        failed = sample.failed
        with self._lock:
            self._reqs += 1
            self._durations.add(sample.duration_ms)
            if failed:
                self._failed += 1
            for tag in tags:
                self._reqs_by_tag[tag] += 1
                self._durations_by_tag[tag].add(sample.duration_ms)
                if failed:
                    self._failed_by_tag[tag] += 1

    def record_checks(self, results: Iterable[CheckResult]) -> None:
        """Registra resultados de checks (métrica checks)."""
        results = list(results)
        with self._lock:
            for result in results:
                tags: List[TagKey] = [("check", result.name)]
                if result.group:
                    tags.append(("group", result.group))
                if result.name not in self._check_names:
                    self._check_names.append(result.name)
                if result.passed:
                    self._check_passes += 1
                    for tag in tags:
                        self._check_passes_by_tag[tag] += 1
                else:
                    self._check_fails += 1
                    for tag in tags:
                        self._check_fails_by_tag[tag] += 1

    def record_iteration(self, outcome: IterationOutcome, duration_ms: float) -> None:
        """Registra el final de una iteración."""
        with self._lock:
            self._iterations[outcome] += 1
            self._iteration_durations.add(duration_ms)

    def record_error(self, error: LoadTestError) -> None:
        """Registra un error en el registry por categoría."""
        self.errors.record(error)

    def record_vus(self, vus: int) -> None:
        """Registra el número actual de VUs (gauges vus y vus_max)."""
        with self._lock:
            self._vus = vus
            if vus > self._vus_max:
                self._vus_max = vus

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------

    @property
    def total_requests(self) -> int:
        with self._lock:
            return self._reqs

    @property
    def vus(self) -> int:
        with self._lock:
            return self._vus

    @property
    def vus_max(self) -> int:
        with self._lock:
            return self._vus_max

    def iteration_count(self, outcome: Optional[IterationOutcome] = None) -> int:
        with self._lock:
            if outcome is None:
                return sum(self._iterations.values())
            return self._iterations[outcome]

    def metric_value(
        self,
        metric: str,
        aggregation: str,
        tag: Optional[TagKey] = None,
        percentile_value: Optional[float] = None
    ) -> float:
        """
        Valor agregado de una métrica.

        Args:
            metric: Nombre k6 de la métrica (http_req_duration, checks...)
            aggregation: avg, min, med, max, p, count, rate o value
            tag: Selector opcional (tag, valor), p.ej. ("name", "/pvz (create)")
            percentile_value: Percentil cuando aggregation == "p"
        """
        kind = METRIC_KINDS.get(metric)
        if kind is None:
            raise KeyError(f"Métrica desconocida: {metric}")

        elapsed = self.elapsed_seconds()
        with self._lock:
            if metric == "http_req_duration":
                series = self._durations_by_tag.get(tag) if tag else self._durations
                if series is None:
                    return 0.0
                return series.value(aggregation, percentile_value)

            if metric == "iteration_duration":
                return self._iteration_durations.value(aggregation, percentile_value)

            if metric == "http_req_failed":
                if tag:
                    return _rate(self._failed_by_tag.get(tag, 0), self._reqs_by_tag.get(tag, 0))
                return _rate(self._failed, self._reqs)

            if metric == "checks":
                if tag:
                    passes = self._check_passes_by_tag.get(tag, 0)
                    total = passes + self._check_fails_by_tag.get(tag, 0)
                    return _rate(passes, total)
                return _rate(self._check_passes, self._check_passes + self._check_fails)

            if kind == MetricKind.GAUGE:
                return float(self._vus if metric == "vus" else self._vus_max)

            # Counters
            if metric == "http_reqs":
                count = self._reqs_by_tag.get(tag, 0) if tag else self._reqs
            elif metric == "iterations":
                count = sum(self._iterations.values())
            else:
                outcome = IterationOutcome(metric[len("iterations_"):])
                count = self._iterations[outcome]

        if aggregation == "rate":
            return count / elapsed if elapsed > 0 else 0.0
        return float(count)

    def threshold_value(self, threshold: Threshold) -> float:
        """Valor real que se compara contra un threshold."""
        return self.metric_value(
            threshold.metric,
            threshold.aggregation,
            tag=threshold.tag,
            percentile_value=threshold.percentile,
        )

    # ------------------------------------------------------------------
    # Resultado
    # ------------------------------------------------------------------

    def build_result(
        self,
        thresholds: Iterable[Threshold] = (),
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
        tags: Iterable[str] = ()
    ) -> RunResult:
        """
        Evalúa los thresholds y construye el RunResult inmutable.

        Cada threshold se evalúa de forma independiente; el resultado
        global es el AND de todos.
        """
        threshold_results = evaluate_thresholds(thresholds, self.threshold_value)

        now = datetime.now(timezone.utc)
        started_at = started_at or self.started_at or now
        finished_at = finished_at or self.finished_at or now

        with self._lock:
            endpoints = {}
            for (tag_key, value), count in self._reqs_by_tag.items():
                if tag_key != "name":
                    continue
                endpoints[value] = EndpointSummary(
                    name=value,
                    requests=count,
                    failed=self._failed_by_tag.get((tag_key, value), 0),
                    duration=self._durations_by_tag[(tag_key, value)].summary(),
                )

            checks = {
                name: CheckSummary(
                    name=name,
                    passes=self._check_passes_by_tag.get(("check", name), 0),
                    fails=self._check_fails_by_tag.get(("check", name), 0),
                )
                for name in self._check_names
            }

            result = RunResult(
                started_at=started_at,
                finished_at=finished_at,
                duration_seconds=(finished_at - started_at).total_seconds(),
                http_req_duration=self._durations.summary(),
                http_reqs=self._reqs,
                http_req_failed=self._failed,
                endpoints=MappingProxyType(endpoints),
                checks=MappingProxyType(checks),
                checks_passes=self._check_passes,
                checks_fails=self._check_fails,
                iterations=MappingProxyType(
                    {outcome.value: count for outcome, count in self._iterations.items()}
                ),
                iteration_duration=self._iteration_durations.summary(),
                errors=MappingProxyType(self.errors.get_counts()),
                vus_max=self._vus_max,
                thresholds=threshold_results,
                recent_errors=tuple(
                    MappingProxyType(entry) for entry in self.errors.get_recent(10)
                ),
                tags=tuple(tags),
            )

        for threshold_result in threshold_results:
            if not threshold_result.passed:
                logger.warning(
                    f"Threshold no cumplido: {threshold_result.threshold} "
                    f"(actual={threshold_result.actual:.4f})"
                )
        return result
