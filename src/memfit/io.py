"""
Input/Output operations for the memory simulation.

This module handles parsing size lists, reading process sizes from CSV files
and rendering simulation snapshots as text.
"""

import csv
from typing import Dict, List

from .errors import ConfigError


def to_hex(value: int) -> str:
    """Format an address as 0x followed by at least four upper-case hex digits."""
    return '0x' + format(value, 'X').zfill(4)


def parse_size_list(text: str, strict: bool = True) -> List[int]:
    """
    Parse a comma-separated list of sizes such as "100, 500, 200".

    Empty entries (e.g. a trailing comma) are always skipped.

    Args:
        text: Comma-separated integers
        strict: Raise on invalid entries instead of dropping them

    Returns:
        List[int]: Parsed sizes in input order

    Raises:
        ConfigError: In strict mode, if an entry is not a positive integer
    """
    sizes = []
    for token in (text or "").split(','):
        token = token.strip()
        if not token:
            continue
        try:
            value = int(token)
        except ValueError:
            if strict:
                raise ConfigError(f"Invalid size: {token!r}")
            continue
        if value <= 0:
            if strict:
                raise ConfigError(f"Size must be positive: {value}")
            continue
        sizes.append(value)
    return sizes


def read_processes_csv(path: str) -> List[int]:
    """
    Read process sizes from a CSV file.

    Expected CSV format with header: size (an optional pid column sets the
    order). Rows are returned in pid order, or file order without pids.

    Args:
        path: Path to the CSV file

    Returns:
        List[int]: Requested sizes in KB
    """
    rows = []

    try:
        with open(path, 'r', newline='', encoding='utf-8') as csvfile:
            reader = csv.DictReader(csvfile)

            for position, row in enumerate(reader):
                size = int(row['size'])
                order = int(row['pid']) if row.get('pid') not in (None, '') else position
                rows.append((order, position, size))

    except FileNotFoundError:
        raise FileNotFoundError(f"CSV file not found: {path}")
    except KeyError as e:
        raise ValueError(f"Missing required column in CSV: {e}")
    except ValueError as e:
        raise ValueError(f"Invalid data in CSV file: {e}")

    rows.sort()
    return [size for _, _, size in rows]


def pretty_print_state(snapshot: Dict) -> str:
    """
    Generate a formatted string representing a simulation snapshot.

    Args:
        snapshot: Dictionary returned by MemorySimulator.snapshot()

    Returns:
        str: Formatted state string
    """
    lines = []

    flags = []
    if snapshot.get('auto_running'):
        flags.append("AUTO")
    if snapshot.get('paused'):
        flags.append("PAUSED")
    flag_str = f" [{' '.join(flags)}]" if flags else ""
    lines.append(f"t={snapshot['time']}ms | {snapshot['algorithm']}{flag_str} | {snapshot['status']}")

    # Memory map
    lines.append("Memory:")
    if snapshot['blocks']:
        lines.append("  #   range            size   owner")
        lines.append("  --  ---------------  -----  -----")
        for entry in snapshot['blocks']:
            if entry['allocated']:
                owner = f"P{entry['pid']}"
                if entry['deallocating']:
                    owner += " (releasing)"
            else:
                owner = "free"
            lines.append(f"  {entry['index']:2}  {entry['range']:15}  {entry['size']:5}  {owner}")
    else:
        lines.append("  (no memory blocks)")

    # Process queue
    lines.append("Processes:")
    if snapshot['processes']:
        info = []
        for proc in snapshot['processes']:
            text = f"P{proc['pid']}({proc['size']}KB,{proc['state']}"
            if proc['remaining'] is not None:
                text += f",rem={proc['remaining']}"
            info.append(text + ")")
        lines.append(f"  {' '.join(info)}")
    else:
        lines.append("  (empty)")

    stats = snapshot['stats']
    lines.append(
        f"Allocated: {stats['allocated_kb']} KB | "
        f"Ext. fragmentation: {stats['external_fragmentation_kb']} KB | "
        f"Processes: {stats['allocated_count']} / {stats['active_count']} | "
        f"Completed: {stats['completed_count']}"
    )

    return "\n".join(lines)
