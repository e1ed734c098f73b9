"""
Excepciones del simulador de asignación contigua.

Todas heredan de `MemFitError` para que la capa de presentación pueda
capturarlas de forma conjunta.
"""

from typing import Optional


class MemFitError(Exception):
    """Error base del simulador."""


class ConfigError(MemFitError, ValueError):
    """Parámetros de reinicio inválidos o inconsistentes."""


class AllocationFailure(MemFitError):
    """
    Ningún bloque libre puede alojar al proceso.

    No es un error fatal: el planificador lo registra en el resultado del paso
    y el proceso queda en estado FAILED hasta un reintento.

    Attributes:
        pid: Identificador del proceso rechazado.
        size: Tamaño solicitado en KB.
        free_memory: Memoria libre total en KB al momento del intento.
        largest_free: Tamaño del mayor bloque libre, o None si no hay.
    """

    def __init__(self, pid: int, size: int, free_memory: int, largest_free: Optional[int]):
        self.pid = pid
        self.size = size
        self.free_memory = free_memory
        self.largest_free = largest_free
        super().__init__(
            f"No hay bloque libre para P{pid} ({size} KB). "
            f"Libre: {free_memory} KB, mayor bloque: {largest_free or 0} KB"
        )

    @property
    def fragmented(self) -> bool:
        """True si la memoria libre alcanza pero está fragmentada."""
        return self.free_memory >= self.size


class StaleConfigWarning(MemFitError, UserWarning):
    """La configuración cambió y no se reinició la simulación."""

    def __init__(self, message: str = "La configuración cambió. Reinicie para aplicar los cambios antes de ejecutar."):
        super().__init__(message)
