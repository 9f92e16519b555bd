"""Process ranking for proctop."""

from dataclasses import replace

from proctop.models import ProcessView, Snapshot, SortKey

_SORT_FUNCS = {
    SortKey.CPU: lambda p: (-p.cpu_pct, p.pid),
    SortKey.MEM: lambda p: (-p.resident_kb, p.pid),
}


def sort_processes(processes: tuple[ProcessView, ...], key: SortKey) -> list[ProcessView]:
    """Sort processes descending by the key, ties broken by ascending pid."""
    return sorted(processes, key=_SORT_FUNCS[key])


def rank(snapshot: Snapshot, key: SortKey, limit: int) -> Snapshot:
    """
    Return a copy of the snapshot with its processes sorted and truncated.

    The input snapshot is left untouched. A limit of zero (or below) yields no
    processes; a limit at or above the process count keeps all of them.
    """
    ranked = sort_processes(snapshot.processes, key)[: max(limit, 0)]
    return replace(snapshot, processes=tuple(ranked))
