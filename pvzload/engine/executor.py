"""
Scenario Executor

Ejecuta una iteración del escenario para un VU: los pasos corren en
orden estricto, los checks se evalúan sobre cada respuesta y todo se
registra en el agregador.

Resultado de la iteración:
- COMPLETE: se ejecutaron todos los pasos
- INCOMPLETE: faltó un valor requerido (DependencyMissing) o un paso
  pidió abortar la iteración
- FAILED: error de transporte o error inesperado
- CANCELLED: el scheduler canceló la iteración a la fuerza
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Tuple

from pvzload.core.context import IterationContext
from pvzload.core.models import IterationOutcome
from pvzload.engine.checks import evaluate_checks
from pvzload.engine.scenario import (
    Abort,
    Group,
    HttpStep,
    Repeat,
    Scenario,
    SleepStep,
    Step,
    resolve,
)
from pvzload.metrics.aggregator import MetricsAggregator
from pvzload.services.http_client import LoadHTTPClient
from pvzload.utils.errors import (
    CheckFailed,
    DependencyMissing,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    LoadTestError,
    RunCancelled,
    TransportError,
)
from pvzload.utils.logger import LogContext, get_logger, log_exception

logger = get_logger(__name__)


class _AbortIteration(Exception):
    """Un paso pidió terminar la iteración."""


class _AbortGroup(Exception):
    """Un paso pidió saltar el resto de su grupo."""


def _extract_field(response, path: str):
    """Campo del body JSON (admite "a.b"); None si no existe o no es JSON."""
    try:
        value = response.json()
    except ValueError:
        return None
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


class ScenarioExecutor:
    """
    Ejecutor de iteraciones de un escenario.

    Es compartido por todos los VUs; no guarda estado de iteración.
    """

    def __init__(
        self,
        scenario: Scenario,
        client: LoadHTTPClient,
        aggregator: MetricsAggregator,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.scenario = scenario
        self.client = client
        self.aggregator = aggregator
        self._sleep = sleep

    async def run_iteration(self, vu_id: int, iteration: int) -> IterationOutcome:
        """
        Ejecuta una iteración completa.

        Los errores de ejecución se recuperan aquí y se registran; solo
        asyncio.CancelledError se propaga (después de registrarse).
        """
        ctx = IterationContext(vu_id, iteration, self.scenario.slots)
        started = time.perf_counter()

        with LogContext(vu_id=vu_id, iteration=iteration):
            try:
                await self._run_steps(self.scenario.steps, ctx, group=None)
                outcome = IterationOutcome.COMPLETE

            except _AbortIteration:
                outcome = IterationOutcome.INCOMPLETE

            except DependencyMissing as e:
                logger.debug(f"Iteración incompleta: {e.message}")
                self.aggregator.record_error(e)
                outcome = IterationOutcome.INCOMPLETE

            except TransportError as e:
                logger.debug(f"Iteración fallida: {e.message}")
                self.aggregator.record_error(e)
                outcome = IterationOutcome.FAILED

            except asyncio.CancelledError:
                self.aggregator.record_error(RunCancelled(
                    context=ErrorContext(vu_id=vu_id, iteration=iteration)
                ))
                self.aggregator.record_iteration(
                    IterationOutcome.CANCELLED, (time.perf_counter() - started) * 1000
                )
                raise

            except Exception as e:
                log_exception(logger, "Error inesperado en la iteración", e)
                self.aggregator.record_error(LoadTestError(
                    message=f"Error inesperado: {type(e).__name__}: {e}",
                    category=ErrorCategory.INTERNAL,
                    severity=ErrorSeverity.HIGH,
                    context=ErrorContext(vu_id=vu_id, iteration=iteration),
                    original_error=e,
                ))
                outcome = IterationOutcome.FAILED

        self.aggregator.record_iteration(outcome, (time.perf_counter() - started) * 1000)
        return outcome

    async def _run_steps(
        self,
        steps: Tuple[Step, ...],
        ctx: IterationContext,
        group: Optional[str]
    ) -> None:
        for step in steps:
            if isinstance(step, HttpStep):
                await self._run_http(step, ctx, group)

            elif isinstance(step, SleepStep):
                await self._sleep(float(resolve(step.seconds, ctx)))

            elif isinstance(step, Group):
                try:
                    await self._run_steps(step.steps, ctx, group=step.name)
                except _AbortGroup:
                    logger.debug(f"Grupo '{step.name}' abortado")

            elif isinstance(step, Repeat):
                for _ in range(int(resolve(step.times, ctx))):
                    await self._run_steps(step.steps, ctx, group)

            else:
                raise TypeError(f"Paso desconocido: {step!r}")

    async def _run_http(self, step: HttpStep, ctx: IterationContext, group: Optional[str]) -> None:
        error_context = ErrorContext(
            vu_id=ctx.vu_id, iteration=ctx.iteration, step=step.name, group=group
        )

        missing = ctx.missing(step.required_slots)
        if missing:
            raise DependencyMissing(
                f"Paso '{step.name}' requiere {missing}",
                slot=missing[0],
                context=error_context,
            )

        headers = None
        if step.auth:
            headers = {"Authorization": f"Bearer {ctx.get(step.auth)}"}

        try:
            sample, response = await self.client.request(
                step.method,
                resolve(step.path, ctx),
                name=step.name,
                group=group,
                json=resolve(step.json, ctx),
                params=resolve(step.params, ctx),
                headers=headers,
                context=error_context,
            )
        except TransportError as e:
            if e.sample is not None:
                self.aggregator.record_request(e.sample)
            self._record_checks(step, None, group, error_context)
            raise

        self.aggregator.record_request(sample)
        self._record_checks(step, response, group, error_context)

        for slot, json_field in step.extract.items():
            ctx.set(slot, _extract_field(response, json_field))

        if step.expect_status is not None and response.status_code != step.expect_status:
            logger.debug(
                f"{step.name}: status {response.status_code}, "
                f"esperado {step.expect_status} -> {step.on_unexpected.value}"
            )
            if step.on_unexpected == Abort.ITERATION:
                raise _AbortIteration(step.name)
            if step.on_unexpected == Abort.GROUP:
                if group is None:
                    raise _AbortIteration(step.name)
                raise _AbortGroup(step.name)

    def _record_checks(self, step: HttpStep, response, group: Optional[str], error_context: ErrorContext) -> None:
        if not step.checks:
            return
        results = evaluate_checks(step.checks, response, group)
        self.aggregator.record_checks(results)
        for result in results:
            if not result.passed:
                self.aggregator.record_error(CheckFailed(
                    f"Check fallido: {result.name}",
                    check_name=result.name,
                    context=error_context,
                ))
