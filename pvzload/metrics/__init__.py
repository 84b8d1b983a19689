"""
Metrics Module

Componentes:
- Aggregator: Acumula requests, checks, iteraciones y VUs
- Thresholds: Parseo y evaluación con sintaxis k6
- Report: Resumen en texto y exportación JSON

Uso:
    from pvzload.metrics import MetricsAggregator, render_summary

    aggregator = MetricsAggregator()
    result = aggregator.build_result(options.thresholds)
    print(render_summary(result))
"""

from pvzload.metrics.thresholds import (
    MetricKind,
    Threshold,
    ThresholdResult,
    parse_threshold,
    parse_thresholds,
    evaluate_thresholds,
)
from pvzload.metrics.aggregator import (
    MetricsAggregator,
    RunResult,
    TrendSeries,
    TrendSummary,
    EndpointSummary,
    CheckSummary,
    percentile,
)
from pvzload.metrics.report import render_summary, write_summary_json, exit_code_for

__all__ = [
    "MetricKind",
    "Threshold",
    "ThresholdResult",
    "parse_threshold",
    "parse_thresholds",
    "evaluate_thresholds",
    "MetricsAggregator",
    "RunResult",
    "TrendSeries",
    "TrendSummary",
    "EndpointSummary",
    "CheckSummary",
    "percentile",
    "render_summary",
    "write_summary_json",
    "exit_code_for",
]
