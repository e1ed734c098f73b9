"""
Parámetros de configuración de la simulación.

`SimulationConfig` reúne lo que la simulación consume al reiniciarse: memoria
total, bloques iniciales, tamaños de los procesos, estrategia de ajuste y los
tiempos que gobiernan el avance automático.
"""

from dataclasses import dataclass, field
from typing import List

from .errors import ConfigError
from .io import parse_size_list
from .models import Algorithm


@dataclass
class SimulationConfig:
    """
    Configuración de una corrida.

    Attributes:
        total_memory: Memoria total en KB.
        block_sizes: Tamaños de los bloques iniciales, en orden de dirección.
        process_sizes: Tamaños solicitados por cada proceso, en orden de llegada.
        algorithm: Estrategia de ajuste.
        lifetime_ms: Tiempo que cada proceso permanece en memoria.
        dealloc_delay_ms: Demora entre solicitar una liberación y liberar el bloque.
        step_interval_ms: Intervalo entre pasos del modo automático.
        expiry_check_interval_ms: Intervalo del control de vencimiento de procesos.
        memory_offset: Dirección base de la memoria.
    """
    total_memory: int
    block_sizes: List[int] = field(default_factory=list)
    process_sizes: List[int] = field(default_factory=list)
    algorithm: Algorithm = Algorithm.FIRST_FIT
    lifetime_ms: int = 5000
    dealloc_delay_ms: int = 600
    step_interval_ms: int = 1200
    expiry_check_interval_ms: int = 250
    memory_offset: int = 0

    def __post_init__(self):
        self.algorithm = Algorithm.parse(self.algorithm)
        self.block_sizes = list(self.block_sizes)
        self.process_sizes = list(self.process_sizes)

    @classmethod
    def from_text(cls, total_memory, blocks: str, processes: str,
                  algorithm="first-fit", strict: bool = True, **kwargs) -> "SimulationConfig":
        """
        Construye la configuración a partir de listas separadas por comas.

        Args:
            total_memory: Memoria total (entero o texto).
            blocks: Tamaños de bloques, por ejemplo "100, 500, 200".
            processes: Tamaños de procesos, por ejemplo "212, 417, 112".
            algorithm: Nombre de la estrategia.
            strict: Si es False, los valores inválidos se descartan en silencio.
            **kwargs: Parámetros de tiempo opcionales.

        Raises:
            ConfigError: Si algún valor no puede interpretarse.
        """
        try:
            total = int(str(total_memory).strip())
        except ValueError:
            raise ConfigError(f"Memoria total inválida: {total_memory!r}")

        return cls(
            total_memory=total,
            block_sizes=parse_size_list(blocks, strict=strict),
            process_sizes=parse_size_list(processes, strict=strict),
            algorithm=algorithm,
            **kwargs
        )

    def validate(self) -> None:
        """
        Verifica la consistencia de la configuración.

        Raises:
            ConfigError: Si algún parámetro es inválido o inconsistente.
        """
        if self.total_memory <= 0:
            raise ConfigError(f"La memoria total debe ser positiva: {self.total_memory}")

        for size in self.block_sizes:
            if size <= 0:
                raise ConfigError(f"Tamaño de bloque no positivo: {size}")

        if not self.process_sizes:
            raise ConfigError("La lista de procesos está vacía.")
        for size in self.process_sizes:
            if size <= 0:
                raise ConfigError(f"Tamaño de proceso no positivo: {size}")

        used = sum(self.block_sizes)
        if used > self.total_memory:
            raise ConfigError(
                f"Los bloques suman {used} KB y superan la memoria total de {self.total_memory} KB"
            )

        for name in ("lifetime_ms", "step_interval_ms", "expiry_check_interval_ms"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} debe ser positivo")
        if self.dealloc_delay_ms < 0 or self.memory_offset < 0:
            raise ConfigError("dealloc_delay_ms y memory_offset no pueden ser negativos")
