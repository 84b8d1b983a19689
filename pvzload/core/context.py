"""
Iteration Context

Registro explícito de los valores que una iteración pasa de un paso a
otro (tokens, id del PVZ). Los slots los declara el escenario; usar un
slot no declarado es un error de programación.
"""

from typing import Any, Dict, Iterable, Optional


class IterationContext:
    """
    Contexto de una iteración de un VU.

    Se crea uno nuevo por iteración: ningún valor sobrevive a la
    iteración que lo produjo.

    Uso:
        ctx = IterationContext(vu_id=1, iteration=0, slots=("moderator_token",))
        ctx.set("moderator_token", "abc")
        ctx.get("moderator_token")
    """

    def __init__(self, vu_id: int, iteration: int, slots: Iterable[str]):
        self.vu_id = vu_id
        self.iteration = iteration
        self._values: Dict[str, Optional[Any]] = {name: None for name in slots}

    def _ensure_declared(self, slot: str) -> None:
        if slot not in self._values:
            raise KeyError(
                f"Slot '{slot}' no declarado. Declarados: {sorted(self._values)}"
            )

    def get(self, slot: str) -> Optional[Any]:
        """Valor del slot, None si aún no se asignó."""
        self._ensure_declared(slot)
        return self._values[slot]

    def set(self, slot: str, value: Any) -> None:
        self._ensure_declared(slot)
        self._values[slot] = value

    def has(self, slot: str) -> bool:
        """True si el slot tiene un valor (no None)."""
        return self.get(slot) is not None

    def missing(self, slots: Iterable[str]) -> list:
        """Slots requeridos que todavía no tienen valor."""
        return [slot for slot in slots if not self.has(slot)]

    @property
    def slots(self) -> tuple:
        return tuple(self._values)

    def __getitem__(self, slot: str) -> Optional[Any]:
        return self.get(slot)

    def __repr__(self) -> str:
        filled = [name for name, value in self._values.items() if value is not None]
        return f"IterationContext(vu={self.vu_id}, iter={self.iteration}, filled={filled})"
