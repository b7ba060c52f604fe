"""Operation timing for the capture, verification and playback flows."""

import os
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psutil


class TimingStats:
    """Collect wall-clock durations and RSS deltas per operation."""

    def __init__(self):
        self.timings: Dict[str, List[float]] = {}
        self.memory_deltas: Dict[str, List[float]] = {}
        self.enabled = False
        self.verbose_output = False

    def record(self, operation: str, duration: float, memory_mb: Optional[float] = None):
        if not self.enabled:
            return
        self.timings.setdefault(operation, []).append(duration)
        if memory_mb is not None:
            self.memory_deltas.setdefault(operation, []).append(memory_mb)

    def get_stats(self, operation: str) -> Optional[Dict[str, Any]]:
        times = self.timings.get(operation)
        if not times:
            return None

        stats = {
            'count': len(times),
            'total': sum(times),
            'mean': sum(times) / len(times),
            'min': min(times),
            'max': max(times),
            'last': times[-1],
        }
        deltas = self.memory_deltas.get(operation)
        if deltas:
            stats['avg_memory_mb'] = sum(deltas) / len(deltas)
        return stats

    def format_summary(self) -> str:
        if not self.timings:
            return "📊 No timing data recorded yet."

        lines = ["=" * 70, "📊 PERFORMANCE TIMING SUMMARY", "=" * 70]
        sorted_ops = sorted(self.timings, key=lambda op: sum(self.timings[op]), reverse=True)
        for operation in sorted_ops:
            stats = self.get_stats(operation)
            lines.append(f"🔹 {operation}")
            lines.append(f"   Calls:      {stats['count']}")
            lines.append(f"   Total time: {stats['total']:.3f}s")
            lines.append(f"   Min/Max:    {stats['min']:.3f}s / {stats['max']:.3f}s")
            if 'avg_memory_mb' in stats:
                lines.append(f"   Avg Memory: {stats['avg_memory_mb']:+.1f} MB")
        lines.append("=" * 70)
        return "\n".join(lines)

    def reset(self):
        self.timings.clear()
        self.memory_deltas.clear()


_global_stats = TimingStats()


def get_timing_stats() -> TimingStats:
    return _global_stats


@contextmanager
def time_operation(operation_name: str, track_memory: bool = False):
    """
    Time a block and record it in the global stats.

    Usage:
        with time_operation("Video Download"):
            data = client.download_file(content_hash)

    Does nothing when timing is disabled.
    """
    if not _global_stats.enabled:
        yield
        return

    process = psutil.Process(os.getpid()) if track_memory else None
    memory_start = process.memory_info().rss / 1024 / 1024 if process else None
    start_time = time.perf_counter()

    if _global_stats.verbose_output:
        print(f"⏱️  Starting: {operation_name}...")

    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        memory_delta = None
        if process is not None:
            memory_delta = process.memory_info().rss / 1024 / 1024 - memory_start

        _global_stats.record(operation_name, duration, memory_mb=memory_delta)

        if _global_stats.verbose_output:
            message = f"⏱️  {operation_name}: {duration:.3f}s"
            if memory_delta is not None and abs(memory_delta) > 0.1:
                message += f" (Memory: {memory_delta:+.1f} MB)"
            print(message)


def configure_timing(enabled: bool = True, verbose: bool = True):
    """Turn timing collection (and per-operation printing) on or off."""
    _global_stats.enabled = enabled
    _global_stats.verbose_output = verbose


def print_timing_summary():
    if _global_stats.enabled:
        print(_global_stats.format_summary())
