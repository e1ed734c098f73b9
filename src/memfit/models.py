"""
Modelos de datos para la simulación de asignación contigua de memoria.

Este módulo define las estructuras de datos principales utilizadas en toda la
simulación, incluyendo `Process`, `MemoryBlock` y la estrategia de ajuste.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ConfigError


class State(Enum):
    """Estados de un proceso en la simulación."""
    WAITING = "waiting"
    ALLOCATED = "allocated"
    FAILED = "failed"
    TERMINATED = "terminated"
    COMPLETED = "completed"


class Algorithm(Enum):
    """Estrategias de selección de hueco libre."""
    FIRST_FIT = "first-fit"
    BEST_FIT = "best-fit"
    WORST_FIT = "worst-fit"

    @classmethod
    def parse(cls, value) -> "Algorithm":
        """
        Convierte un nombre ("first-fit", "best_fit", ...) en una estrategia.

        Raises:
            ConfigError: Si el nombre no corresponde a ninguna estrategia.
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        for algorithm in cls:
            if algorithm.value == normalized:
                return algorithm
        raise ConfigError(f"Algoritmo desconocido: {value!r}")

    @property
    def description(self) -> str:
        return ALGORITHM_DESCRIPTIONS[self]


ALGORITHM_DESCRIPTIONS = {
    Algorithm.FIRST_FIT: (
        "First Fit asigna el primer hueco suficientemente grande, recorriendo "
        "la memoria desde el inicio."
    ),
    Algorithm.BEST_FIT: (
        "Best Fit asigna el hueco más pequeño que alcance; recorre toda la "
        "lista y deja el sobrante más chico."
    ),
    Algorithm.WORST_FIT: (
        "Worst Fit asigna el hueco más grande; también recorre toda la lista y "
        "deja el sobrante más grande, que puede ser más útil que el de Best Fit."
    ),
}


@dataclass
class Process:
    """
    Representa un proceso que solicita memoria contigua.

    Attributes:
        pid: Identificador secuencial del proceso (1..n).
        size: Tamaño de memoria requerido en KB.
        lifetime: Milisegundos que el proceso ocupa memoria antes de completarse.
        state: Estado actual del proceso (por defecto: State.WAITING).
        allocated_at: Instante (ms) de la asignación, o None si no está en memoria.
        elapsed_before_pause: Tiempo de ejecución congelado durante una pausa.
    """
    pid: int
    size: int
    lifetime: int = 5000
    state: State = State.WAITING
    allocated_at: Optional[int] = None
    elapsed_before_pause: Optional[int] = None

    def elapsed(self, now: int) -> int:
        """
        Calcula el tiempo que el proceso lleva en memoria.

        Durante una pausa devuelve el valor congelado en lugar de avanzar.
        """
        if self.elapsed_before_pause is not None:
            return self.elapsed_before_pause
        if self.allocated_at is None:
            return 0
        return max(0, now - self.allocated_at)

    def remaining(self, now: int) -> Optional[int]:
        """Tiempo de vida restante en ms, o None si el proceso no está asignado."""
        if self.state != State.ALLOCATED:
            return None
        return max(0, self.lifetime - self.elapsed(now))

    def to_row(self, now: Optional[int] = None) -> dict:
        """
        Convierte el proceso a un diccionario para fines de registro o visualización.

        Returns:
            dict: Representación del proceso en formato de diccionario.
        """
        return {
            'pid': self.pid,
            'size': self.size,
            'state': self.state.value,
            'lifetime': self.lifetime,
            'allocated_at': self.allocated_at,
            'remaining': self.remaining(now) if now is not None else None,
        }


@dataclass
class MemoryBlock:
    """
    Representa un bloque contiguo de memoria, libre u ocupado.

    Attributes:
        size: Tamaño del bloque en KB.
        allocated: Si el bloque está ocupado por un proceso.
        process_id: PID del proceso que lo ocupa (por defecto: None).
        address: Dirección base, derivada de los bloques previos.
        deallocating: Marcado entre la solicitud de liberación y la liberación efectiva.
    """
    size: int
    allocated: bool = False
    process_id: Optional[int] = None
    address: int = 0
    deallocating: bool = False

    @property
    def is_free(self) -> bool:
        """
        Comprueba si el bloque está libre.

        Returns:
            bool: True si el bloque no está asignado a ningún proceso.
        """
        return not self.allocated

    @property
    def end_address(self) -> int:
        """Última dirección incluida en el bloque."""
        return self.address + self.size - 1

    def fits(self, request_size: int) -> bool:
        """Indica si el bloque está libre y alcanza para `request_size` KB."""
        return self.is_free and self.size >= request_size
