"""
Load Test Runner

Orquesta una corrida completa: cliente HTTP compartido, preflight
opcional, scheduler de VUs con el escenario y, al final, evaluación de
thresholds sobre las métricas acumuladas.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

import httpx

from pvzload.core.options import RunOptions
from pvzload.engine.executor import ScenarioExecutor
from pvzload.engine.scenario import Scenario
from pvzload.engine.scheduler import VUScheduler
from pvzload.metrics.aggregator import MetricsAggregator, RunResult
from pvzload.services.http_client import LoadHTTPClient
from pvzload.services.preflight import run_preflight
from pvzload.utils.logger import LogContext, get_logger, new_run_id

logger = get_logger(__name__)


class LoadTestRunner:
    """
    Ejecuta un escenario con unas opciones de corrida.

    Uso:
        runner = LoadTestRunner(options, build_pvz_scenario())
        result = await runner.run()
    """

    def __init__(
        self,
        options: RunOptions,
        scenario: Scenario,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        preflight: bool = False,
        preflight_path: str = "/healthz",
        preflight_required: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.options = options
        self.scenario = scenario
        self.transport = transport
        self.preflight = preflight
        self.preflight_path = preflight_path
        self.preflight_required = preflight_required
        self._clock = clock
        self._sleep = sleep
        self.aggregator = MetricsAggregator()
        self.run_id: Optional[str] = None

    async def run(self) -> RunResult:
        """
        Ejecuta la corrida completa.

        Raises:
            PreflightError: Si el preflight es obligatorio y falla
        """
        self.run_id = new_run_id()
        with LogContext(run_id=self.run_id):
            async with LoadHTTPClient(self.options, transport=self.transport) as client:
                if self.preflight:
                    await run_preflight(
                        client.client,
                        path=self.preflight_path,
                        required=self.preflight_required,
                    )

                executor = ScenarioExecutor(
                    self.scenario, client, self.aggregator, sleep=self._sleep
                )
                scheduler = VUScheduler(
                    self.options,
                    executor,
                    self.aggregator,
                    clock=self._clock,
                    sleep=self._sleep,
                )

                logger.info(
                    f"Corrida {self.run_id[:8]}: escenario '{self.scenario.name}' "
                    f"contra {self.options.base_url}"
                )
                self.aggregator.start()
                try:
                    await scheduler.run()
                finally:
                    self.aggregator.stop()

            result = self.aggregator.build_result(self.options.thresholds, tags=self.options.tags)
            logger.info(
                f"Corrida terminada: {result.http_reqs} requests, "
                f"{sum(result.iterations.values())} iteraciones, "
                f"{'PASS' if result.passed else 'FAIL'}"
            )
            return result


async def run_load_test(options: RunOptions, scenario: Scenario, **kwargs) -> RunResult:
    """Atajo: crea un LoadTestRunner y lo ejecuta."""
    return await LoadTestRunner(options, scenario, **kwargs).run()
