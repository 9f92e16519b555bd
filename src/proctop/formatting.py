"""Text formatting helpers shared by the TUI and batch output."""

from proctop.models import Snapshot, SortKey


def format_kb(size_kb: int) -> str:
    """Format kilobytes as human-readable string."""
    size: float = size_kb
    for unit in ["K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "K" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_uptime(seconds: int) -> str:
    """Format uptime as "[N days, ]HH:MM:SS"."""
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if days > 0:
        unit = "day" if days == 1 else "days"
        return f"{days} {unit}, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def usage_bar(percent: float, width: int = 20) -> str:
    """Return a plain bar of `width` cells filled in proportion to percent."""
    filled = min(max(int(percent * width / 100), 0), width)
    return "█" * filled + "░" * (width - filled)


def render_table(snapshot: Snapshot, sort_key: SortKey) -> str:
    """Render a ranked snapshot as plain text."""
    lines = [
        f"CPU Usage: {snapshot.system_cpu_pct:5.2f}% | "
        f"Mem: {snapshot.used_mem_kb}/{snapshot.total_mem_kb} KB | "
        f"Uptime: {format_uptime(snapshot.uptime_s)} | "
        f"Sort: {sort_key.value.upper()}",
        f"{'PID':<7} {'NAME':<22} {'CPU%':>8} {'MEM(KB)':>10}",
    ]
    for proc in snapshot.processes:
        lines.append(f"{proc.pid:<7} {proc.name[:22]:<22} {proc.cpu_pct:8.2f} {proc.resident_kb:10d}")
    return "\n".join(lines)
