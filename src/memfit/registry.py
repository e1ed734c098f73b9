"""
Registro de procesos y sus transiciones de estado.

Este módulo mantiene la cola de procesos sintéticos que solicitan memoria y
ofrece las transiciones del ciclo de vida:

    WAITING -> ALLOCATED -> TERMINATED -> COMPLETED
    WAITING -> FAILED -> WAITING (reintento)
"""

from typing import Iterator, List, Optional, Sequence

from .models import Process, State


class ProcessRegistry:
    """
    Colección ordenada de procesos indexada por PID.

    Los procesos se recorren siempre en orden de PID, que coincide con el
    orden de llegada.
    """

    def __init__(self):
        """Inicializa el registro vacío."""
        self.processes: List[Process] = []

    def initialize(self, sizes: Sequence[int], lifetime: int = 5000) -> None:
        """
        Crea un proceso por tamaño con PIDs 1..n, todos en espera.

        Args:
            sizes: Tamaños solicitados, en orden de llegada.
            lifetime: Tiempo de vida de cada proceso en ms.
        """
        self.processes = [
            Process(pid=index + 1, size=size, lifetime=lifetime)
            for index, size in enumerate(sizes)
        ]

    def __iter__(self) -> Iterator[Process]:
        return iter(self.processes)

    def __len__(self) -> int:
        return len(self.processes)

    def get(self, pid: int) -> Optional[Process]:
        for process in self.processes:
            if process.pid == pid:
                return process
        return None

    def by_state(self, state: State) -> List[Process]:
        return [p for p in self.processes if p.state == state]

    def count(self, state: State) -> int:
        return len(self.by_state(state))

    def active_count(self) -> int:
        """Procesos que todavía compiten por memoria o la ocupan."""
        return sum(
            1 for p in self.processes
            if p.state in (State.WAITING, State.ALLOCATED, State.FAILED)
        )

    def next_waiting(self) -> Optional[Process]:
        """Primer proceso en espera, o None."""
        return next((p for p in self.processes if p.state == State.WAITING), None)

    def next_failed(self) -> Optional[Process]:
        """Primer proceso cuya asignación falló, o None."""
        return next((p for p in self.processes if p.state == State.FAILED), None)

    def mark_allocated(self, process: Process, block_index: int, now: int) -> None:
        """
        Registra que `process` ocupa el bloque `block_index` desde `now`.

        El índice no se guarda en el proceso: el bloque se identifica por su PID.
        """
        process.state = State.ALLOCATED
        process.allocated_at = now
        process.elapsed_before_pause = None

    def mark_waiting(self, process: Process) -> None:
        process.state = State.WAITING

    def mark_failed(self, process: Process) -> None:
        process.state = State.FAILED

    def mark_terminated(self, process: Process) -> None:
        process.state = State.TERMINATED
        process.allocated_at = None
        process.elapsed_before_pause = None

    def mark_completed(self, process: Process) -> None:
        process.state = State.COMPLETED

    def clear(self) -> None:
        """Vacía el registro."""
        self.processes = []
