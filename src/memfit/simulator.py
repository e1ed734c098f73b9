"""
Motor principal de la simulación y coordinación de componentes.

Este módulo orquesta la simulación coordinando el gestor de memoria, el
registro de procesos y el avance temporal. El tiempo no se lee de relojes
internos: el anfitrión (CLI, interfaz o pruebas) llama a `tick(now)` con el
instante actual en milisegundos, lo que mantiene toda la lógica determinista.
"""

import heapq
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from .config import SimulationConfig
from .errors import AllocationFailure, StaleConfigWarning
from .io import to_hex
from .memory import MemoryManager
from .models import Algorithm, MemoryBlock, Process, State
from .registry import ProcessRegistry


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class MemorySimulator:
    """
    Motor de la simulación de asignación contigua de memoria.

    Es el único que modifica los bloques y el registro de procesos. La capa de
    presentación invoca sus comandos y luego lee `snapshot()` para dibujar.
    """

    def __init__(self, debug: bool = False, log_level: str = "INFO",
                 clock: Optional[Callable[[], int]] = None):
        """
        Inicializa el simulador con el gestor de memoria y el registro vacíos.

        Args:
            debug: Activa validaciones adicionales de invariantes.
            log_level: Nivel de bitácora ("INFO" o "DEBUG").
            clock: Función que devuelve el instante actual en ms; se usa cuando
                un comando no recibe `now`.
        """
        self.memory_manager = MemoryManager()
        self.registry = ProcessRegistry()
        self.config: Optional[SimulationConfig] = None
        self.algorithm = Algorithm.FIRST_FIT
        self.debug = debug
        self.clock = clock or _monotonic_ms
        self.status_text = "Sin configurar."

        self.auto_running = False
        self.lifetime_checking = False
        self.paused = False
        self.paused_at: Optional[int] = None
        self.config_dirty = False
        self.stale_warning_shown = False

        # Liberaciones pendientes: (vencimiento, desempate, bloque, pid, automática)
        self._pending: List[Tuple[int, int, MemoryBlock, int, bool]] = []
        self._tiebreak_counter = 0
        self._retrying = False
        self._next_step_at: Optional[int] = None
        self._next_expiry_check_at: Optional[int] = None

        # Configurar logger
        self.logger = logging.getLogger('memfit')
        self.logger.setLevel(getattr(logging, log_level.upper()))

        # Crear un handler de consola si aún no existe
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    # ------------------------------------------------------------------
    # Configuración
    # ------------------------------------------------------------------
    def reset(self, config: SimulationConfig, now: Optional[int] = None) -> Dict:
        """
        Reinicia la simulación con una nueva configuración.

        La configuración se valida antes de tocar el estado, así que un reinicio
        fallido conserva la sesión anterior.

        Raises:
            ConfigError: Si la configuración es inválida.
        """
        now = self._now(now)
        config.validate()

        memory_manager = MemoryManager(offset=config.memory_offset)
        memory_manager.initialize(config.block_sizes, config.total_memory)
        registry = ProcessRegistry()
        registry.initialize(config.process_sizes, config.lifetime_ms)

        self.stop_auto_run()
        self.memory_manager = memory_manager
        self.registry = registry
        self.config = config
        self.algorithm = config.algorithm
        self.paused = False
        self.paused_at = None
        self.config_dirty = False
        self.stale_warning_shown = False
        self._pending = []
        self._retrying = False

        if not config.block_sizes:
            self.logger.warning("Lista de bloques vacía: la memoria es un único bloque libre")

        self.logger.info(
            f"Reinicio: {config.total_memory} KB, {len(memory_manager.blocks)} bloques, "
            f"{len(registry)} procesos, {self.algorithm.value}"
        )
        self._set_status("Sistema listo. Memoria inicializada.")
        self._validate_invariants()
        return self.snapshot(now)

    def mark_config_dirty(self) -> None:
        """Registra que el usuario editó la configuración sin reiniciar."""
        self.config_dirty = True
        self.stale_warning_shown = False

    def acknowledge_config_change(self) -> None:
        """Da por vista la advertencia de configuración desactualizada."""
        self.stale_warning_shown = True

    def _check_stale_config(self) -> None:
        if self.config_dirty and not self.stale_warning_shown:
            self.stale_warning_shown = True
            self.logger.warning("La configuración cambió sin reiniciar la simulación")
            raise StaleConfigWarning()

    # ------------------------------------------------------------------
    # Asignación
    # ------------------------------------------------------------------
    def step(self, now: Optional[int] = None) -> Dict:
        """
        Ejecuta un único intento de asignación.

        Returns:
            Dict: Resultado del paso con las claves `event`, `time`, `outcome`
            ("allocated", "failed", "idle" o "paused"), `pid`, `block_index`
            y `message`.

        Raises:
            StaleConfigWarning: La primera vez que se intenta avanzar después
                de editar la configuración sin reiniciar.
        """
        now = self._now(now)
        if self.paused:
            return self._step_result(now, 'paused', message="Simulación en pausa.")

        self._check_stale_config()

        process = self.registry.next_waiting()
        if process is None:
            process = self.registry.next_failed()
            if process is not None:
                self.registry.mark_waiting(process)

        if process is None:
            message = self._idle_summary()
            self._set_status(message)
            self._stop_stepping()
            return self._step_result(now, 'idle', message=message)

        self._set_status(f"Intentando asignar P{process.pid} ({process.size} KB)...")
        index = self.memory_manager.find_fit(self.algorithm, process.size)

        if index is not None:
            block = self._allocate(process, index, now)
            message = f"P{process.pid} asignado en {to_hex(block.address)}."
            self._set_status(message)
            result = self._step_result(now, 'allocated', process, index, message)
        else:
            failure = AllocationFailure(
                process.pid,
                process.size,
                self.memory_manager.free_size(),
                self.memory_manager.largest_free(),
            )
            self.registry.mark_failed(process)
            if failure.fragmented:
                message = f"Falló la asignación de P{process.pid}: memoria fragmentada. Pruebe compactar."
            elif self.memory_manager.has_free_memory():
                message = f"Falló la asignación de P{process.pid}: memoria libre insuficiente."
            else:
                message = f"Falló la asignación de P{process.pid}: memoria agotada."
            self.logger.info(str(failure))
            self._set_status(message)
            result = self._step_result(now, 'failed', process, None, message)
            result['failure'] = failure
            result['free_memory'] = self.memory_manager.has_free_memory()
            result['fragmented'] = failure.fragmented

            if self.auto_running and self._is_stuck():
                summary = self._run_summary()
                self._set_status(summary)
                self.stop_auto_run()
                result['message'] = f"{message} {summary}"

        self._validate_invariants()
        return result

    def _allocate(self, process: Process, index: int, now: int) -> MemoryBlock:
        block = self.memory_manager.split(index, process.size, process.pid)
        self.registry.mark_allocated(process, index, now)
        self.logger.info(
            f"P{process.pid} ({process.size} KB) asignado en el bloque {index} "
            f"({to_hex(block.address)}) con {self.algorithm.value}"
        )
        return block

    def retry_failed_processes(self, now: Optional[int] = None) -> int:
        """
        Reintenta asignar los procesos fallidos en orden de PID.

        Cada pasada asigna como máximo un proceso y luego se vuelve a invocar
        para aprovechar los huecos que sigan disponibles.

        Returns:
            int: Cantidad de procesos asignados.
        """
        now = self._now(now)
        if self.paused or self._retrying:
            return 0

        self._retrying = True
        allocated = None
        try:
            for process in self.registry.by_state(State.FAILED):
                index = self.memory_manager.find_fit(self.algorithm, process.size)
                if index is not None:
                    self.registry.mark_waiting(process)
                    self._allocate(process, index, now)
                    allocated = process
                    break
        finally:
            self._retrying = False

        if allocated is None:
            return 0

        self.logger.debug(f"Reintento exitoso para P{allocated.pid}")
        self._set_status(f"Reintento: P{allocated.pid} asignado.")
        self._validate_invariants()
        return 1 + self.retry_failed_processes(now)

    def compact(self, now: Optional[int] = None) -> int:
        """
        Compacta la memoria y reintenta los procesos fallidos.

        El barrido de reintento corre sobre el hueco contiguo resultante; los
        fallidos que aún no caben vuelven a la espera.

        Returns:
            int: Cantidad de procesos que dejaron el estado FAILED.
        """
        now = self._now(now)
        self.memory_manager.compact()

        allocated = self.retry_failed_processes(now)
        requeued = self.registry.by_state(State.FAILED)
        for process in requeued:
            self.registry.mark_waiting(process)

        self.logger.info(
            f"Compactación: {self.memory_manager.free_size()} KB libres contiguos, "
            f"{allocated} procesos asignados, {len(requeued)} vuelven a la espera"
        )
        self._set_status("Compactación completa. La memoria libre es contigua.")
        self._validate_invariants()
        return allocated + len(requeued)

    # ------------------------------------------------------------------
    # Liberación
    # ------------------------------------------------------------------
    def deallocate(self, block_index: int, now: Optional[int] = None) -> bool:
        """
        Libera manualmente el bloque `block_index`.

        El proceso queda TERMINATED y no vuelve a la cola.

        Returns:
            bool: True si se programó la liberación.
        """
        return self._deallocate(block_index, automatic=False, now=self._now(now))

    def _deallocate(self, block_index: int, automatic: bool, now: int) -> bool:
        blocks = self.memory_manager.blocks
        if not 0 <= block_index < len(blocks):
            self.logger.debug(f"Liberación ignorada: bloque {block_index} inexistente")
            return False

        block = blocks[block_index]
        if not block.allocated or block.deallocating:
            self.logger.debug(f"Liberación ignorada: bloque {block_index} no asignado")
            return False

        pid = block.process_id
        process = self.registry.get(pid)
        if process is not None:
            self.registry.mark_terminated(process)
        block.deallocating = True

        delay = self.config.dealloc_delay_ms if self.config else 0
        origin = self.paused_at if self.paused else now
        self.logger.info(f"P{pid} terminado ({'automático' if automatic else 'manual'})")

        if delay == 0 and not self.paused:
            self._release(block, pid, automatic, now)
        else:
            heapq.heappush(self._pending, (origin + delay, self._tiebreak_counter, block, pid, automatic))
            self._tiebreak_counter += 1
        return True

    def _release(self, block: MemoryBlock, pid: int, automatic: bool, now: int) -> Optional[Dict]:
        index = self.memory_manager.index_of(block)
        if index is None:
            return None

        self.memory_manager.free(index)
        self.memory_manager.merge_adjacent_free()

        process = self.registry.get(pid)
        if automatic and process is not None and process.state == State.TERMINATED:
            self.registry.mark_completed(process)
            self.logger.info(f"P{pid} completado")
        self._set_status(f"Memoria de P{pid} liberada.")

        retried = self.retry_failed_processes(now)
        self._validate_invariants()
        return {
            'event': 'release',
            'time': now,
            'pid': pid,
            'automatic': automatic,
            'retried': retried,
        }

    def _fire_due_releases(self, now: int) -> List[Dict]:
        events = []
        while self._pending and self._pending[0][0] <= now:
            _, _, block, pid, automatic = heapq.heappop(self._pending)
            event = self._release(block, pid, automatic, now)
            if event is not None:
                events.append(event)
        return events

    def _check_lifetimes(self, now: int) -> List[Dict]:
        events = []
        for process in self.registry.by_state(State.ALLOCATED):
            if now - process.allocated_at < process.lifetime:
                continue
            index = self.memory_manager.index_of_pid(process.pid)
            if index is not None and self._deallocate(index, automatic=True, now=now):
                events.append({'event': 'expired', 'time': now, 'pid': process.pid, 'block_index': index})
        return events

    # ------------------------------------------------------------------
    # Avance temporal
    # ------------------------------------------------------------------
    def tick(self, now: Optional[int] = None) -> List[Dict]:
        """
        Avanza la simulación hasta `now`.

        Dispara las liberaciones vencidas, el control de tiempo de vida y el
        paso automático, en ese orden. Mientras la simulación está en pausa no
        hace nada.

        Returns:
            List[Dict]: Eventos ocurridos durante el tick.
        """
        now = self._now(now)
        if self.paused:
            return []

        events = self._fire_due_releases(now)

        if self.lifetime_checking and (self._next_expiry_check_at is None or now >= self._next_expiry_check_at):
            events.extend(self._check_lifetimes(now))
            if self.config:
                self._next_expiry_check_at = now + self.config.expiry_check_interval_ms

        if self.auto_running and self._next_step_at is not None and now >= self._next_step_at:
            self._next_step_at = now + self.config.step_interval_ms
            try:
                events.append(self.step(now))
            except StaleConfigWarning as warning:
                events.append({'event': 'stale_config', 'time': now, 'message': str(warning)})

        if self.lifetime_checking and not self.auto_running and not self._has_pending_work():
            self.lifetime_checking = False
            self._next_expiry_check_at = None
            self.logger.info("Ejecución automática finalizada")

        return events

    def start_auto_run(self, now: Optional[int] = None) -> Optional[Dict]:
        """
        Activa el avance automático y ejecuta un primer paso inmediato.

        Returns:
            Resultado del primer paso, o None si ya estaba activo.

        Raises:
            StaleConfigWarning: Si la configuración cambió sin reiniciar.
        """
        now = self._now(now)
        if self.auto_running:
            return None
        self._check_stale_config()
        if self.paused:
            self.resume(now)

        self.auto_running = True
        self.lifetime_checking = True
        if self.config:
            self._next_step_at = now + self.config.step_interval_ms
            self._next_expiry_check_at = now + self.config.expiry_check_interval_ms
        self.logger.info("Ejecución automática iniciada")
        return self.step(now)

    def stop_auto_run(self) -> None:
        """Cancela el paso automático y el control de tiempo de vida."""
        if self.auto_running or self.lifetime_checking:
            self.logger.info("Ejecución automática detenida")
        self.auto_running = False
        self.lifetime_checking = False
        self._next_step_at = None
        self._next_expiry_check_at = None

    def _stop_stepping(self) -> None:
        # El control de tiempo de vida sigue activo hasta que no queden procesos en memoria
        self.auto_running = False
        self._next_step_at = None

    def end_run(self, now: Optional[int] = None) -> Dict:
        """
        Termina la corrida: libera toda la memoria sin demora y vacía la cola.

        La configuración de memoria se conserva.
        """
        now = self._now(now)
        self.stop_auto_run()
        for index, block in enumerate(self.memory_manager.blocks):
            if block.allocated:
                self.memory_manager.free(index)
        self.memory_manager.merge_adjacent_free()
        self._pending = []
        self.registry.clear()
        self.paused = False
        self.paused_at = None
        self.logger.info("Corrida finalizada: memoria liberada y cola vaciada")
        self._set_status("Corrida finalizada.")
        self._validate_invariants()
        return self.snapshot(now)

    def pause(self, now: Optional[int] = None) -> None:
        """Congela el tiempo de ejecución de los procesos asignados."""
        now = self._now(now)
        if self.paused:
            return
        for process in self.registry.by_state(State.ALLOCATED):
            process.elapsed_before_pause = now - process.allocated_at
        self.paused = True
        self.paused_at = now
        self.logger.info("Simulación en pausa")
        self._set_status("Simulación en pausa.")

    def resume(self, now: Optional[int] = None) -> None:
        """Reanuda la simulación conservando el tiempo de vida restante."""
        now = self._now(now)
        if not self.paused:
            return
        gap = now - self.paused_at
        for process in self.registry:
            if process.elapsed_before_pause is not None:
                process.allocated_at = now - process.elapsed_before_pause
                process.elapsed_before_pause = None

        # Un desplazamiento uniforme conserva el orden del heap
        self._pending = [(due + gap, order, block, pid, auto) for due, order, block, pid, auto in self._pending]
        if self._next_step_at is not None:
            self._next_step_at += gap
        if self._next_expiry_check_at is not None:
            self._next_expiry_check_at += gap

        self.paused = False
        self.paused_at = None
        self.logger.info(f"Simulación reanudada tras {gap} ms")
        self._set_status("Simulación reanudada.")

    def run(self, start: int = 0, tick_ms: int = 100, max_ticks: int = 100000,
            on_tick: Optional[Callable[[int, List[Dict]], None]] = None) -> Dict:
        """
        Ejecuta la corrida automática completa sobre un reloj virtual.

        Args:
            start: Instante inicial en ms.
            tick_ms: Granularidad del reloj virtual.
            max_ticks: Límite de ticks para evitar bucles sin fin.
            on_tick: Se invoca con (instante, eventos) tras el primer paso y
                tras cada tick. Puede emitir comandos sobre el simulador.

        Returns:
            dict: Eventos de la corrida, instante final y estadísticas.
        """
        now = start
        events = []
        first = self.start_auto_run(now)
        batch = [first] if first is not None else []
        events.extend(batch)
        if on_tick is not None:
            on_tick(now, batch)

        ticks = 0
        while not self.is_idle() and ticks < max_ticks:
            now += tick_ms
            ticks += 1
            batch = self.tick(now)
            events.extend(batch)
            if on_tick is not None:
                on_tick(now, batch)

        return {
            'events': events,
            'time': now,
            'ticks': ticks,
            'stats': self.statistics(now),
        }

    def is_idle(self) -> bool:
        """True cuando nada puede avanzar sin un comando del usuario."""
        return not (self.auto_running or self.lifetime_checking or self._pending)

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------
    def statistics(self, now: Optional[int] = None) -> Dict:
        mm = self.memory_manager
        return {
            'allocated_kb': mm.allocated_size(),
            'free_kb': mm.free_size(),
            'largest_free_kb': mm.largest_free() or 0,
            'external_fragmentation_kb': mm.external_fragmentation(),
            'allocated_count': self.registry.count(State.ALLOCATED),
            'active_count': self.registry.active_count(),
            'completed_count': self.registry.count(State.COMPLETED),
            'failed_count': self.registry.count(State.FAILED),
            'terminated_count': self.registry.count(State.TERMINATED),
            'total_processes': len(self.registry),
        }

    def snapshot(self, now: Optional[int] = None) -> Dict:
        """
        Devuelve una instantánea del estado actual de la simulación.

        Este es un método público seguro para ser consumido por la presentación:
        todos los valores son copias.
        """
        now = self._now(now)
        blocks = self.memory_manager.table_snapshot()
        for entry in blocks:
            entry['range'] = f"{to_hex(entry['address'])} - {to_hex(entry['end_address'])}"
        return {
            'time': now,
            'algorithm': self.algorithm.value,
            'total_memory': self.memory_manager.total_memory,
            'blocks': blocks,
            'processes': [p.to_row(now) for p in self.registry],
            'stats': self.statistics(now),
            'status': self.status_text,
            'auto_running': self.auto_running,
            'paused': self.paused,
            'config_dirty': self.config_dirty,
        }

    # ------------------------------------------------------------------
    # Auxiliares
    # ------------------------------------------------------------------
    def _now(self, now: Optional[int]) -> int:
        return self.clock() if now is None else now

    def _set_status(self, text: str) -> None:
        self.status_text = text

    def _step_result(self, now: int, outcome: str, process: Optional[Process] = None,
                     block_index: Optional[int] = None, message: str = "") -> Dict:
        return {
            'event': 'step',
            'time': now,
            'outcome': outcome,
            'pid': process.pid if process else None,
            'block_index': block_index,
            'message': message,
        }

    def _has_pending_work(self) -> bool:
        return bool(self._pending) or self.registry.count(State.ALLOCATED) > 0

    def _is_stuck(self) -> bool:
        """Ningún proceso espera y nada puede liberar memoria."""
        return self.registry.next_waiting() is None and not self._has_pending_work()

    def _idle_summary(self) -> str:
        total = len(self.registry)
        if total == 0:
            return "No hay procesos en la cola."
        completed = self.registry.count(State.COMPLETED)
        if completed == total:
            return "Todos los procesos completados."
        return (
            f"Todos los procesos atendidos. Asignados: {self.registry.count(State.ALLOCATED)}. "
            f"Completados: {completed}. Terminados: {self.registry.count(State.TERMINATED)}."
        )

    def _run_summary(self) -> str:
        failed = self.registry.count(State.FAILED)
        if failed == self.registry.active_count():
            prefix = "Ningún proceso pendiente puede asignarse."
        else:
            prefix = "Ejecución finalizada."
        return f"{prefix} Fallidos: {failed}. Asignados: {self.registry.count(State.ALLOCATED)}."

    def _validate_invariants(self):
        """
        Valida las invariantes de la simulación en modo debug.

        Raises:
            AssertionError: Si alguna invariante es violada.
        """
        if not self.debug:
            return

        # Invariante 1: Los bloques cubren exactamente la memoria total
        total = self.memory_manager.total_size
        assert total == self.memory_manager.total_memory, \
            f"Los bloques suman {total} KB en lugar de {self.memory_manager.total_memory} KB"

        # Invariante 2: Un bloque por proceso asignado
        owners = [b.process_id for b in self.memory_manager.blocks if b.allocated]
        assert len(owners) == len(set(owners)), f"PID duplicado en bloques: {owners}"

        for process in self.registry.by_state(State.ALLOCATED):
            assert process.pid in owners, f"Proceso {process.pid} asignado sin bloque"

        # Invariante 3: Los bloques ocupados pertenecen a procesos vivos
        for pid in owners:
            process = self.registry.get(pid)
            assert process is not None and process.state in (State.ALLOCATED, State.TERMINATED), \
                f"Bloque ocupado por el proceso {pid} en estado inválido"

        # Invariante 4: PIDs únicos
        pids = [p.pid for p in self.registry]
        assert len(pids) == len(set(pids)), "PIDs duplicados en el registro"
