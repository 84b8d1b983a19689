"""
Run Options

Configuración inmutable de una corrida: etapas de rampa, usuarios
iniciales, períodos de gracia, thresholds y parámetros de transporte.
Se construye una vez y se pasa explícitamente al scheduler, al cliente
HTTP y al agregador.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

from pvzload.metrics.thresholds import Threshold, parse_thresholds
from pvzload.utils.errors import ConfigurationError


# ============================================================================
# DURATIONS
# ============================================================================

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Convierte una duración estilo k6 a segundos.

    Acepta números (segundos) y cadenas como "30s", "1m", "1m30s",
    "500ms", "1h".

    Raises:
        ConfigurationError: Formato inválido o duración negativa
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Duración inválida: {value!r}", field="duration")

    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        if re.fullmatch(r"\d+(?:\.\d+)?", text):
            seconds = float(text)
        else:
            parts = _DURATION_PART_RE.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ConfigurationError(f"Duración inválida: '{value}'", field="duration")
            seconds = sum(float(number) * _UNIT_SECONDS[unit] for number, unit in parts)
    else:
        raise ConfigurationError(f"Duración inválida: {value!r}", field="duration")

    if seconds < 0:
        raise ConfigurationError(f"La duración no puede ser negativa: {value!r}", field="duration")
    return seconds


# ============================================================================
# STAGES
# ============================================================================

@dataclass(frozen=True)
class Stage:
    """Etapa de rampa: mover el objetivo de VUs hasta target en duration segundos."""
    duration: float
    target: int

    def __post_init__(self):
        if self.duration < 0:
            raise ConfigurationError(
                f"Duración de etapa negativa: {self.duration}", field="stages"
            )
        if self.target < 0:
            raise ConfigurationError(
                f"Target de etapa negativo: {self.target}", field="stages"
            )

    @classmethod
    def of(cls, duration: Union[str, int, float], target: int) -> "Stage":
        """Crea una etapa a partir de una duración estilo k6."""
        return cls(duration=parse_duration(duration), target=int(target))


StageSpec = Union[Stage, Tuple[Any, int], Mapping[str, Any]]


def _to_stage(spec: StageSpec) -> Stage:
    if isinstance(spec, Stage):
        return spec
    if isinstance(spec, Mapping):
        return Stage.of(spec["duration"], spec["target"])
    duration, target = spec
    return Stage.of(duration, target)


# ============================================================================
# RUN OPTIONS
# ============================================================================

@dataclass(frozen=True)
class RunOptions:
    """
    Opciones inmutables de una corrida.

    Usar RunOptions.build(...) para construir desde valores crudos
    (duraciones "30s", thresholds como diccionario).
    """
    stages: Tuple[Stage, ...]
    start_vus: int = 0
    graceful_ramp_down: float = 30.0
    graceful_stop: float = 30.0
    thresholds: Tuple[Threshold, ...] = ()
    base_url: str = "http://localhost:8080"
    request_timeout: float = 60.0
    max_connections: Optional[int] = None
    scheduler_tick: float = 0.1
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.stages:
            raise ConfigurationError("Se requiere al menos una etapa", field="stages")
        if self.start_vus < 0:
            raise ConfigurationError("start_vus no puede ser negativo", field="start_vus")
        if self.graceful_ramp_down < 0:
            raise ConfigurationError("graceful_ramp_down no puede ser negativo", field="graceful_ramp_down")
        if self.graceful_stop < 0:
            raise ConfigurationError("graceful_stop no puede ser negativo", field="graceful_stop")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout debe ser positivo", field="request_timeout")
        if self.scheduler_tick <= 0:
            raise ConfigurationError("scheduler_tick debe ser positivo", field="scheduler_tick")
        if self.max_connections is not None and self.max_connections <= 0:
            raise ConfigurationError("max_connections debe ser positivo", field="max_connections")
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"base_url inválida: '{self.base_url}'", field="base_url")

    @classmethod
    def build(
        cls,
        stages: Sequence[StageSpec],
        start_vus: int = 0,
        graceful_ramp_down: Union[str, float] = "30s",
        graceful_stop: Union[str, float] = "30s",
        thresholds: Optional[Mapping[str, Union[str, Iterable[str]]]] = None,
        **kwargs
    ) -> "RunOptions":
        """
        Construye opciones validando duraciones y thresholds.

        Raises:
            ConfigurationError: Etapas o duraciones inválidas
            ThresholdSyntaxError: Thresholds mal formados
        """
        return cls(
            stages=tuple(_to_stage(spec) for spec in stages),
            start_vus=start_vus,
            graceful_ramp_down=parse_duration(graceful_ramp_down),
            graceful_stop=parse_duration(graceful_stop),
            thresholds=parse_thresholds(thresholds or {}),
            **kwargs
        )

    @classmethod
    def from_profile(cls, profile, **overrides) -> "RunOptions":
        """Construye opciones a partir de un LoadProfile de config.load_profiles."""
        values = dict(
            stages=profile.stages,
            start_vus=profile.start_vus,
            graceful_ramp_down=profile.graceful_ramp_down,
            graceful_stop=profile.graceful_stop,
            thresholds=profile.thresholds,
            tags=tuple(profile.tags),
        )
        values.update(overrides)
        return cls.build(**values)

    @property
    def total_duration(self) -> float:
        """Duración total de las etapas, sin períodos de gracia."""
        return sum(stage.duration for stage in self.stages)

    @property
    def max_target(self) -> int:
        """Máximo de VUs que pide el perfil."""
        return max([self.start_vus] + [stage.target for stage in self.stages])
