"""
Operaciones y algoritmos de gestión de memoria contigua.

Este módulo implementa las estrategias de asignación First-Fit, Best-Fit y
Worst-Fit sobre una lista ordenada de bloques. También se encarga de la
división de bloques al asignar, la fusión de huecos adyacentes al liberar, la
compactación y las estadísticas de fragmentación externa.
"""

import logging
from typing import Dict, List, Optional, Sequence

from .errors import ConfigError
from .models import Algorithm, MemoryBlock

logger = logging.getLogger('memfit.memory')


def first_fit(blocks: Sequence[MemoryBlock], size: int) -> Optional[int]:
    """
    Devuelve el índice del primer bloque libre que pueda alojar `size`.

    Args:
        blocks: Bloques en orden de dirección.
        size: Tamaño requerido.

    Returns:
        Índice del bloque elegido, o None si ninguno alcanza.
    """
    for index, block in enumerate(blocks):
        if block.fits(size):
            return index
    return None


def best_fit(blocks: Sequence[MemoryBlock], size: int) -> Optional[int]:
    """
    Devuelve el índice del bloque libre con menor sobrante.

    Ante un empate gana el bloque de menor dirección.
    """
    chosen = None
    best_diff = None
    for index, block in enumerate(blocks):
        if not block.fits(size):
            continue
        diff = block.size - size
        if best_diff is None or diff < best_diff:
            best_diff = diff
            chosen = index
    return chosen


def worst_fit(blocks: Sequence[MemoryBlock], size: int) -> Optional[int]:
    """
    Devuelve el índice del bloque libre con mayor sobrante.

    La comparación es estricta, así que ante un empate se conserva el primero.
    """
    chosen = None
    max_diff = -1
    for index, block in enumerate(blocks):
        if not block.fits(size):
            continue
        diff = block.size - size
        if diff > max_diff:
            max_diff = diff
            chosen = index
    return chosen


FIT_FUNCTIONS = {
    Algorithm.FIRST_FIT: first_fit,
    Algorithm.BEST_FIT: best_fit,
    Algorithm.WORST_FIT: worst_fit,
}


class MemoryManager:
    """
    Gestiona una región de memoria contigua dividida en bloques variables.

    Invariante: la suma de los tamaños de los bloques es igual a la memoria
    total; los bloques se guardan en orden de dirección sin huecos ni
    solapamientos.
    """

    def __init__(self, offset: int = 0):
        """Inicializa el gestor sin bloques."""
        self.offset = offset
        self.blocks: List[MemoryBlock] = []
        self.total_memory = 0

    def initialize(self, block_sizes: Sequence[int], total_memory: int) -> None:
        """
        Crea los bloques iniciales y agrega el sobrante como bloque libre final.

        Args:
            block_sizes: Tamaños de los bloques iniciales, en orden.
            total_memory: Memoria total configurada.

        Raises:
            ConfigError: Si los bloques superan la memoria total.
        """
        used = sum(block_sizes)
        if total_memory < used:
            raise ConfigError(
                f"Los bloques suman {used} KB y superan la memoria total de {total_memory} KB"
            )

        self.blocks = [MemoryBlock(size=size) for size in block_sizes]
        if total_memory > used:
            self.blocks.append(MemoryBlock(size=total_memory - used))
        self.total_memory = total_memory
        self.compute_addresses()
        logger.debug(f"Memoria inicializada: {len(self.blocks)} bloques, {total_memory} KB")

    def compute_addresses(self) -> None:
        """Asigna a cada bloque su dirección base según los bloques previos."""
        address = self.offset
        for block in self.blocks:
            block.address = address
            address += block.size

    def find_fit(self, algorithm: Algorithm, request_size: int) -> Optional[int]:
        """
        Busca un bloque libre para `request_size` según la estrategia indicada.

        Returns:
            Índice del bloque elegido, o None si ningún bloque libre alcanza.
        """
        index = FIT_FUNCTIONS[Algorithm.parse(algorithm)](self.blocks, request_size)
        logger.debug(f"{Algorithm.parse(algorithm).value}: {request_size} KB -> bloque {index}")
        return index

    def split(self, index: int, request_size: int, pid: int) -> MemoryBlock:
        """
        Asigna el bloque `index` a `pid`, dividiéndolo si sobra espacio.

        El sobrante se inserta como bloque libre inmediatamente después.

        Returns:
            El bloque asignado.
        """
        block = self.blocks[index]
        if not block.fits(request_size):
            raise ValueError(f"El bloque {index} no puede alojar {request_size} KB")

        if block.size > request_size:
            remainder = MemoryBlock(size=block.size - request_size)
            block.size = request_size
            self.blocks.insert(index + 1, remainder)
            logger.debug(f"Bloque {index} dividido: {request_size} KB + {remainder.size} KB libres")

        block.allocated = True
        block.process_id = pid
        block.deallocating = False
        self.compute_addresses()
        return block

    def free(self, index: int) -> None:
        """Marca el bloque `index` como libre y limpia su propietario."""
        block = self.blocks[index]
        block.allocated = False
        block.process_id = None
        block.deallocating = False

    def merge_adjacent_free(self) -> int:
        """
        Fusiona los bloques libres adyacentes.

        El índice se mantiene tras una fusión para encadenar varias seguidas.

        Returns:
            int: Cantidad de fusiones realizadas.
        """
        merges = 0
        i = 0
        while i < len(self.blocks) - 1:
            current = self.blocks[i]
            following = self.blocks[i + 1]
            if current.is_free and following.is_free:
                current.size += following.size
                del self.blocks[i + 1]
                merges += 1
            else:
                i += 1

        if merges:
            self.compute_addresses()
            logger.debug(f"{merges} fusiones de bloques libres")
        return merges

    def compact(self) -> None:
        """
        Mueve los bloques asignados al inicio y junta el espacio libre al final.

        Los bloques asignados conservan su orden relativo.
        """
        allocated = [b for b in self.blocks if b.allocated]
        free_total = sum(b.size for b in self.blocks if b.is_free)
        if free_total > 0:
            allocated.append(MemoryBlock(size=free_total))
        self.blocks = allocated
        self.compute_addresses()

    def index_of(self, block: MemoryBlock) -> Optional[int]:
        """Busca un bloque por identidad; los índices cambian al dividir o fusionar."""
        for index, candidate in enumerate(self.blocks):
            if candidate is block:
                return index
        return None

    def index_of_pid(self, pid: int) -> Optional[int]:
        for index, block in enumerate(self.blocks):
            if block.allocated and block.process_id == pid:
                return index
        return None

    @property
    def total_size(self) -> int:
        return sum(b.size for b in self.blocks)

    def allocated_size(self) -> int:
        return sum(b.size for b in self.blocks if b.allocated)

    def free_size(self) -> int:
        return sum(b.size for b in self.blocks if b.is_free)

    def largest_free(self) -> Optional[int]:
        sizes = [b.size for b in self.blocks if b.is_free]
        return max(sizes) if sizes else None

    def has_free_memory(self) -> bool:
        return any(b.is_free for b in self.blocks)

    def external_fragmentation(self) -> int:
        """
        Calcula la fragmentación externa.

        Se define como la memoria libre que no pertenece al mayor bloque libre.
        """
        return self.free_size() - (self.largest_free() or 0)

    def table_snapshot(self) -> List[Dict]:
        """
        Genera una instantánea de la tabla de memoria para su visualización.

        Returns:
            Lista de diccionarios con las claves
            {index, address, end_address, size, allocated, pid, deallocating}.
        """
        self.compute_addresses()
        return [
            {
                'index': index,
                'address': block.address,
                'end_address': block.end_address,
                'size': block.size,
                'allocated': block.allocated,
                'pid': block.process_id,
                'deallocating': block.deallocating,
            }
            for index, block in enumerate(self.blocks)
        ]
