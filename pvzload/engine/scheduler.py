"""
Virtual User Scheduler

Mantiene el número de usuarios virtuales que pide el perfil de rampa:
- Dentro de cada etapa el objetivo se mueve linealmente desde el
  objetivo anterior hasta el de la etapa
- Por encima del objetivo se retiran los VUs más recientes; un VU
  retirado termina su iteración en curso y sale
- Si un VU retirado sigue corriendo después de graceful_ramp_down, se
  cancela a la fuerza
- Al terminar las etapas se detienen todos los VUs y los que sigan
  corriendo tras graceful_stop se cancelan

Cada VU es una tarea asyncio. El reloj y el sleep son inyectables, y
tick(elapsed) es un paso determinista para probar la rampa.
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from pvzload.core.options import RunOptions, Stage
from pvzload.metrics.aggregator import MetricsAggregator
from pvzload.utils.logger import LogContext, get_logger, log_exception

logger = get_logger(__name__)


# ============================================================================
# RAMP PROFILE
# ============================================================================

class RampProfile:
    """Objetivo de VUs en función del tiempo transcurrido."""

    def __init__(self, stages: Sequence[Stage], start_vus: int = 0):
        self.stages = tuple(stages)
        self.start_vus = start_vus
        self.total_duration = sum(stage.duration for stage in self.stages)

    def target_at(self, elapsed: float) -> int:
        """
        Número de VUs objetivo en el segundo elapsed.

        Interpolación lineal dentro de la etapa; una etapa de duración
        cero salta directamente a su objetivo.
        """
        previous = self.start_vus
        stage_start = 0.0
        for stage in self.stages:
            stage_end = stage_start + stage.duration
            if elapsed < stage_end:
                fraction = (elapsed - stage_start) / stage.duration
                return int(previous + (stage.target - previous) * fraction)
            previous = stage.target
            stage_start = stage_end
        return previous

    def finished(self, elapsed: float) -> bool:
        return elapsed >= self.total_duration


# ============================================================================
# VIRTUAL USER
# ============================================================================

class VirtualUser:
    """
    Usuario virtual: repite el escenario hasta que lo detienen.

    Solo el scheduler lo crea, lo retira o lo cancela.
    """

    def __init__(self, vu_id: int, executor):
        self.vu_id = vu_id
        self.executor = executor
        self.iterations = 0
        self.retired_at: Optional[float] = None
        self.force_cancelled = False
        self.task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    def start(self) -> None:
        self.task = asyncio.create_task(self._loop(), name=f"vu-{self.vu_id}")

    async def _loop(self) -> None:
        with LogContext(vu_id=self.vu_id):
            logger.debug("VU iniciado")
            while not self._stop.is_set():
                await self.executor.run_iteration(self.vu_id, self.iterations)
                self.iterations += 1
                # Ceder el loop aunque la iteración no haya esperado nada
                await asyncio.sleep(0)
            logger.debug(f"VU detenido tras {self.iterations} iteraciones")

    def retire(self, now: float) -> None:
        """Pide al VU que salga al terminar la iteración en curso."""
        self._stop.set()
        if self.retired_at is None:
            self.retired_at = now

    def revive(self) -> None:
        """Cancela un retiro pendiente: el VU sigue iterando."""
        self._stop.clear()
        self.retired_at = None

    def cancel(self) -> None:
        """Cancela la tarea a la fuerza (una sola vez)."""
        if self.task is not None and not self.force_cancelled:
            self.force_cancelled = True
            self.task.cancel()

    @property
    def retiring(self) -> bool:
        return self._stop.is_set()

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()


# ============================================================================
# SCHEDULER
# ============================================================================

class VUScheduler:
    """
    Scheduler de usuarios virtuales con etapas de rampa.

    Uso:
        scheduler = VUScheduler(options, executor, aggregator)
        await scheduler.run()
    """

    def __init__(
        self,
        options: RunOptions,
        executor,
        aggregator: MetricsAggregator,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.options = options
        self.executor = executor
        self.aggregator = aggregator
        self.profile = RampProfile(options.stages, options.start_vus)
        self._clock = clock
        self._sleep = sleep
        self._vus: List[VirtualUser] = []
        self._next_id = 1

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def vus(self) -> List[VirtualUser]:
        """VUs cuya tarea sigue viva, en orden de creación."""
        return list(self._vus)

    @property
    def active_count(self) -> int:
        """VUs corriendo y no retirados."""
        return sum(1 for vu in self._vus if not vu.retiring and not vu.done)

    @property
    def running_count(self) -> int:
        """VUs cuya tarea sigue viva (incluye los que están terminando)."""
        return sum(1 for vu in self._vus if not vu.done)

    # ------------------------------------------------------------------
    # Reconciliación
    # ------------------------------------------------------------------

    def _spawn(self) -> VirtualUser:
        vu = VirtualUser(self._next_id, self.executor)
        self._next_id += 1
        vu.start()
        self._vus.append(vu)
        return vu

    def _reap(self) -> None:
        """Quita los VUs terminados y revisa cómo terminó su tarea."""
        alive = []
        for vu in self._vus:
            if not vu.done:
                alive.append(vu)
                continue
            if not vu.task.cancelled() and vu.task.exception() is not None:
                log_exception(logger, f"VU {vu.vu_id} terminó con error", vu.task.exception())
        self._vus = alive

    def _report(self) -> None:
        self.aggregator.record_vus(self.running_count)

    async def tick(self, elapsed: float) -> int:
        """
        Reconcilia los VUs con el objetivo del segundo elapsed.

        Returns:
            Objetivo de VUs aplicado
        """
        self._reap()
        target = self.profile.target_at(elapsed)
        active = [vu for vu in self._vus if not vu.retiring]

        if len(active) < target:
            needed = target - len(active)
            # Primero reactivar los que todavía terminan su iteración
            for vu in reversed(self._vus):
                if needed == 0:
                    break
                if vu.retiring and not vu.force_cancelled and not vu.done:
                    vu.revive()
                    needed -= 1
            for _ in range(needed):
                self._spawn()

        elif len(active) > target:
            # Retirar los más recientes
            excess = len(active) - target
            for vu in reversed(active[-excess:]):
                vu.retire(elapsed)

        for vu in self._vus:
            if (
                vu.retiring
                and vu.retired_at is not None
                and elapsed - vu.retired_at >= self.options.graceful_ramp_down
                and not vu.done
            ):
                logger.debug(f"VU {vu.vu_id} excedió graceful_ramp_down; cancelando")
                vu.cancel()

        self._report()
        return target

    async def run(self) -> None:
        """Ejecuta todas las etapas y luego detiene a los VUs."""
        start = self._clock()
        logger.info(
            f"Iniciando rampa: {len(self.options.stages)} etapas, "
            f"{self.profile.total_duration:.1f}s, máx {self.options.max_target} VUs"
        )
        try:
            while True:
                elapsed = self._clock() - start
                if self.profile.finished(elapsed):
                    break
                await self.tick(elapsed)
                await self._sleep(self.options.scheduler_tick)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """
        Detiene todos los VUs.

        Espera hasta graceful_stop a que terminen su iteración y cancela
        los que sigan corriendo.
        """
        now = self._clock()
        for vu in self._vus:
            vu.retire(now)

        tasks = [vu.task for vu in self._vus if not vu.done]
        if tasks:
            logger.info(f"Deteniendo {len(tasks)} VUs (graceful_stop={self.options.graceful_stop}s)")
            _, pending = await asyncio.wait(tasks, timeout=self.options.graceful_stop)
            if pending:
                logger.warning(f"Cancelando {len(pending)} VUs tras graceful_stop")
                for vu in self._vus:
                    if vu.task in pending:
                        vu.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        self._reap()
        self._report()
