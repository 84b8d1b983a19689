"""
Run Report

Resumen legible de un RunResult (tabla de thresholds, checks, latencia
por endpoint, iteraciones y errores) y exportación JSON del resumen.
"""

import json
from pathlib import Path
from typing import List, Union

from config.constants import EXIT_PASS, EXIT_THRESHOLD_BREACH
from pvzload.metrics.aggregator import RunResult
from pvzload.utils.logger import get_logger

logger = get_logger(__name__)

WIDTH = 78


def exit_code_for(result: RunResult) -> int:
    """0 si todos los thresholds se cumplieron, 1 si alguno falló."""
    return EXIT_PASS if result.passed else EXIT_THRESHOLD_BREACH


def _status(passed: bool) -> str:
    return "PASS" if passed else "FAIL"


def render_summary(result: RunResult) -> str:
    """
    Genera el resumen de la corrida en formato tabla.

    Args:
        result: Resultado de la corrida

    Returns:
        Texto multilínea listo para imprimir
    """
    lines: List[str] = []
    lines.append("=" * WIDTH)
    lines.append("PVZ LOAD TEST SUMMARY")
    lines.append("=" * WIDTH)
    lines.append(
        f"Duración: {result.duration_seconds:.1f}s   "
        f"Requests: {result.http_reqs}   "
        f"VUs máx: {result.vus_max}"
    )
    if result.tags:
        lines.append(f"Tags: {', '.join(result.tags)}")

    # Thresholds
    lines.append("")
    lines.append("Thresholds")
    lines.append("-" * WIDTH)
    lines.append(f"{'Metric':<40}{'Expression':<16}{'Actual':>12}{'Status':>10}")
    lines.append("-" * WIDTH)
    if not result.thresholds:
        lines.append("(sin thresholds)")
    for threshold_result in result.thresholds:
        threshold = threshold_result.threshold
        lines.append(
            f"{threshold.metric_key[:39]:<40}{threshold.expression:<16}"
            f"{threshold_result.actual:>12.4f}{_status(threshold_result.passed):>10}"
        )

    # Checks
    lines.append("")
    lines.append(f"Checks ({result.checks_rate * 100:.2f}% ✓)")
    lines.append("-" * WIDTH)
    lines.append(f"{'Check':<50}{'Passes':>10}{'Fails':>10}{'Rate':>8}")
    for summary in result.checks.values():
        lines.append(
            f"{summary.name[:49]:<50}{summary.passes:>10}{summary.fails:>10}"
            f"{summary.rate * 100:>7.1f}%"
        )

    # Latencia por endpoint
    lines.append("")
    lines.append("http_req_duration por endpoint (ms)")
    lines.append("-" * WIDTH)
    lines.append(f"{'Endpoint':<28}{'Reqs':>8}{'Fail%':>8}{'avg':>8}{'med':>8}{'p(95)':>9}{'max':>9}")
    for summary in result.endpoints.values():
        duration = summary.duration
        lines.append(
            f"{summary.name[:27]:<28}{summary.requests:>8}{summary.failed_rate * 100:>7.1f}%"
            f"{duration.avg:>8.1f}{duration.med:>8.1f}{duration.p95:>9.1f}{duration.max:>9.1f}"
        )
    overall = result.http_req_duration
    lines.append(
        f"{'TOTAL':<28}{result.http_reqs:>8}{result.http_req_failed_rate * 100:>7.1f}%"
        f"{overall.avg:>8.1f}{overall.med:>8.1f}{overall.p95:>9.1f}{overall.max:>9.1f}"
    )

    # Iteraciones
    lines.append("")
    lines.append("Iteraciones")
    lines.append("-" * WIDTH)
    for outcome, count in result.iterations.items():
        lines.append(f"{outcome:<20}{count:>10}")
    lines.append(f"{'duración avg (ms)':<20}{result.iteration_duration.avg:>10.1f}")

    # Errores
    if result.errors:
        lines.append("")
        lines.append("Errores por categoría")
        lines.append("-" * WIDTH)
        for category, count in sorted(result.errors.items()):
            lines.append(f"{category:<20}{count:>10}")

    lines.append("=" * WIDTH)
    lines.append(f"Overall: {_status(result.passed)}")
    return "\n".join(lines)


def write_summary_json(result: RunResult, path: Union[str, Path]) -> Path:
    """
    Exporta el resumen en JSON.

    Args:
        result: Resultado de la corrida
        path: Archivo destino; se crean los directorios que falten

    Returns:
        Ruta del archivo escrito
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(result.to_dict(), handle, ensure_ascii=False, indent=2, default=str)
    logger.info(f"Resumen exportado a {path}")
    return path
