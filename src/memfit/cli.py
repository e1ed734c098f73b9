"""
Interfaz de línea de comandos para el simulador de asignación contigua.

Este módulo ofrece la interfaz CLI para configurar la memoria, ejecutar la
simulación sobre un reloj virtual y mostrar el mapa de memoria resultante.
"""

import argparse
import sys

from .config import SimulationConfig
from .errors import ConfigError, MemFitError, StaleConfigWarning
from .io import parse_size_list, pretty_print_state, read_processes_csv
from .models import Algorithm
from .simulator import MemorySimulator


def create_parser():
    """
    Crea el parser de argumentos de la línea de comandos.

    Returns:
        argparse.ArgumentParser: Parser configurado.
    """
    parser = argparse.ArgumentParser(
        description="Simulador de asignación contigua de memoria (first/best/worst fit)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  python -m memfit --total-memory 1000 --blocks 100,500,200 --processes 212,417,112,426
  python -m memfit --csv examples/processes.csv --algorithm best-fit --tick-log events
        """
    )

    parser.add_argument(
        "--total-memory",
        type=int,
        default=1000,
        help="Memoria total en KB (por defecto: 1000)"
    )

    parser.add_argument(
        "--blocks",
        default="",
        help="Tamaños de los bloques iniciales separados por comas"
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--processes",
        help="Tamaños de los procesos separados por comas"
    )
    source.add_argument(
        "--csv",
        help="Ruta a un CSV con una columna 'size' por proceso"
    )

    parser.add_argument(
        "--algorithm",
        choices=[a.value for a in Algorithm],
        default=Algorithm.FIRST_FIT.value,
        help="Estrategia de ajuste"
    )

    parser.add_argument(
        "--lifetime",
        type=int,
        default=5000,
        help="Tiempo de vida de cada proceso en ms"
    )

    parser.add_argument(
        "--tick",
        type=int,
        default=100,
        help="Granularidad del reloj virtual en ms"
    )

    parser.add_argument(
        "--tick-log",
        choices=["none", "events", "ticks"],
        default="none",
        help="Nivel de registro: none (solo resultado), events (eventos), ticks (cada tick)"
    )

    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Descarta en silencio los tamaños inválidos en lugar de fallar"
    )

    parser.add_argument(
        "--compact-on-fail",
        action="store_true",
        help="Compacta la memoria cuando una asignación falla por fragmentación"
    )

    parser.add_argument(
        "--log-level",
        choices=["INFO", "DEBUG"],
        default="INFO",
        help="Nivel de log: INFO (básico) o DEBUG (detallado)"
    )

    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Ejecuta la simulación en modo interactivo"
    )

    return parser


def build_config(args) -> SimulationConfig:
    """Arma la configuración a partir de los argumentos."""
    strict = not args.lenient
    if args.csv:
        process_sizes = read_processes_csv(args.csv)
    else:
        process_sizes = parse_size_list(args.processes, strict=strict)

    return SimulationConfig(
        total_memory=args.total_memory,
        block_sizes=parse_size_list(args.blocks, strict=strict),
        process_sizes=process_sizes,
        algorithm=args.algorithm,
        lifetime_ms=args.lifetime,
    )


def print_summary(stats, show_header=True):
    """
    Imprime las estadísticas finales.

    Args:
        stats: Diccionario devuelto por MemorySimulator.statistics().
        show_header: Si se imprime el encabezado de sección.
    """
    if show_header:
        print("\nResumen:")

    print(f"Memoria asignada: {stats['allocated_kb']} KB")
    print(f"Memoria libre: {stats['free_kb']} KB (mayor bloque: {stats['largest_free_kb']} KB)")
    print(f"Fragmentación externa: {stats['external_fragmentation_kb']} KB")
    print(f"Completados: {stats['completed_count']} / {stats['total_processes']}")
    print(f"Fallidos: {stats['failed_count']}")


def should_log_event(tick_log_mode, events):
    """
    Determina si se debe mostrar el estado según el modo elegido.

    Args:
        tick_log_mode: Modo de registro ("none", "events", "ticks").
        events: Eventos ocurridos en el tick.

    Returns:
        bool: True si corresponde mostrar el estado.
    """
    if tick_log_mode == "none":
        return False
    elif tick_log_mode == "events":
        return bool(events)
    elif tick_log_mode == "ticks":
        return True
    return False


def run_batch(simulator, args):
    """Corre la simulación automática completa sobre el reloj virtual."""

    def on_tick(now, events):
        events = list(events)
        if args.compact_on_fail and any(
            event.get('outcome') == 'failed' and event.get('fragmented') for event in events
        ):
            simulator.compact(now)
            # Una falla sin procesos en espera detiene la corrida; se reanuda tras compactar
            if not simulator.auto_running:
                restarted = simulator.start_auto_run(now)
                if restarted is not None:
                    events.append(restarted)

        if should_log_event(args.tick_log, events):
            for event in events:
                print(f"\n--- t={now}ms: {describe_event(event)} ---")
            print(pretty_print_state(simulator.snapshot(now)))

    result = simulator.run(start=0, tick_ms=args.tick, on_tick=on_tick)
    return result['time']


def describe_event(event):
    """Texto breve para un evento devuelto por tick()."""
    kind = event.get('event')
    if kind == 'step':
        return event['message']
    if kind == 'expired':
        return f"P{event['pid']} cumplió su tiempo de vida"
    if kind == 'release':
        return f"Bloque de P{event['pid']} liberado"
    return event.get('message', kind)


def run_interactive(simulator):
    """Bucle de comandos para manejar la simulación a mano."""
    now = 0
    print(
        "Modo interactivo. Enter=paso, a=automático, c=compactar, d N=liberar bloque N, "
        "p=pausa, r=reanudar, t MS=avanzar reloj, q=salir"
    )
    print(pretty_print_state(simulator.snapshot(now)))

    while True:
        user_input = input("Acción: ")
        partes = user_input.strip().lower().split()
        comando = partes[0] if partes else ""

        try:
            if comando in {"q", "quit", "exit"}:
                break
            elif comando == "":
                now += simulator.config.step_interval_ms
                simulator.tick(now)
                print(simulator.step(now)['message'])
            elif comando == "a":
                now = simulator.run(start=now, tick_ms=100)['time']
            elif comando == "c":
                simulator.compact(now)
            elif comando == "d" and len(partes) == 2:
                if not simulator.deallocate(int(partes[1]), now):
                    print("Ese bloque no está asignado.")
            elif comando == "p":
                simulator.pause(now)
            elif comando == "r":
                simulator.resume(now)
            elif comando == "t" and len(partes) == 2:
                now += int(partes[1])
                simulator.tick(now)
            else:
                print("Comando no reconocido.")
                continue
        except StaleConfigWarning as warning:
            print(f"Aviso: {warning}")
        except ValueError:
            print("Número de bloque inválido.")
            continue

        print(pretty_print_state(simulator.snapshot(now)))

    return now


def main(argv=None):
    """
    Punto de entrada principal de la aplicación CLI.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
        simulator = MemorySimulator(log_level=args.log_level)
        simulator.reset(config, now=0)

        if args.interactive:
            now = run_interactive(simulator)
        else:
            now = run_batch(simulator, args)

        snapshot = simulator.snapshot(now)
        print("\nEstado final:")
        print(pretty_print_state(snapshot))
        print_summary(snapshot['stats'])
        return 0

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"Error de configuración: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except MemFitError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
