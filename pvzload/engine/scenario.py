"""
Scenario Definition

Pasos declarativos de un escenario: requests HTTP, pausas, grupos y
repeticiones. Un valor de un paso (path, body, params, segundos) puede
ser fijo o una función que recibe el IterationContext y lo calcula al
ejecutarse.

Uso:
    scenario = Scenario(
        name="ejemplo",
        slots=("token",),
        steps=(
            HttpStep(name="login", method="POST", path="/dummyLogin",
                     json={"role": "moderator"}, extract={"token": "jwt"}),
            SleepStep(seconds=1),
        ),
    )
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping, Optional, Tuple, Union

from pvzload.core.context import IterationContext
from pvzload.engine.checks import Check
from pvzload.utils.errors import ConfigurationError


class Abort(str, Enum):
    """Qué hacer cuando un request no devuelve el status esperado."""
    NONE = "none"              # Continuar
    GROUP = "group"            # Saltar el resto del grupo
    ITERATION = "iteration"    # Terminar la iteración


Value = Union[Any, Callable[[IterationContext], Any]]


def resolve(value: Value, ctx: IterationContext) -> Any:
    """Evalúa un valor del paso: funciones se llaman con el contexto."""
    if callable(value):
        return value(ctx)
    if isinstance(value, Mapping):
        return {key: resolve(item, ctx) for key, item in value.items()}
    return value


# ============================================================================
# STEPS
# ============================================================================

@dataclass(frozen=True)
class HttpStep:
    """
    Request HTTP.

    Attributes:
        name: Tag del request en las métricas
        method: Método HTTP
        path: Ruta (o función del contexto)
        json: Body JSON
        params: Query params
        auth: Slot con el token para Authorization: Bearer
        requires: Slots que deben tener valor antes de ejecutar
        extract: {slot: campo JSON} a copiar de la respuesta
        checks: Checks a evaluar sobre la respuesta
        expect_status: Status esperado para decidir on_unexpected
        on_unexpected: Acción si el status no es el esperado
    """
    name: str
    method: str
    path: Value
    json: Value = None
    params: Value = None
    auth: Optional[str] = None
    requires: Tuple[str, ...] = ()
    extract: Mapping[str, str] = field(default_factory=dict)
    checks: Tuple[Check, ...] = ()
    expect_status: Optional[int] = None
    on_unexpected: Abort = Abort.NONE

    def __post_init__(self):
        if self.on_unexpected != Abort.NONE and self.expect_status is None:
            raise ConfigurationError(
                f"Paso '{self.name}': on_unexpected requiere expect_status",
                field="steps"
            )

    @property
    def required_slots(self) -> Tuple[str, ...]:
        """Slots requeridos, incluyendo el del token."""
        if self.auth and self.auth not in self.requires:
            return tuple(self.requires) + (self.auth,)
        return tuple(self.requires)


@dataclass(frozen=True)
class SleepStep:
    """Pausa (think-time) del VU actual."""
    seconds: Value


@dataclass(frozen=True)
class Group:
    """Agrupa pasos bajo una etiqueta (tag group en métricas)."""
    name: str
    steps: Tuple["Step", ...]


@dataclass(frozen=True)
class Repeat:
    """Repite un bloque de pasos."""
    times: Value
    steps: Tuple["Step", ...]


Step = Union[HttpStep, SleepStep, Group, Repeat]


# ============================================================================
# SCENARIO
# ============================================================================

def iter_http_steps(steps: Tuple[Step, ...]) -> Iterator[HttpStep]:
    """Recorre los HttpStep de un árbol de pasos."""
    for step in steps:
        if isinstance(step, HttpStep):
            yield step
        elif isinstance(step, (Group, Repeat)):
            yield from iter_http_steps(step.steps)


@dataclass(frozen=True)
class Scenario:
    """Escenario completo que ejecuta cada VU en cada iteración."""
    name: str
    slots: Tuple[str, ...]
    steps: Tuple[Step, ...]

    def __post_init__(self):
        declared = set(self.slots)
        for step in iter_http_steps(self.steps):
            used = set(step.required_slots) | set(step.extract)
            undeclared = used - declared
            if undeclared:
                raise ConfigurationError(
                    f"Paso '{step.name}' usa slots no declarados: {sorted(undeclared)}",
                    field="steps"
                )

    @property
    def request_names(self) -> Tuple[str, ...]:
        """Tags de todos los requests del escenario, en orden."""
        return tuple(step.name for step in iter_http_steps(self.steps))
