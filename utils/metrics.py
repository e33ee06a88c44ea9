"""
Timing for the capture and analysis stages.

Every language-model call and screen grab runs inside timer(); failed calls
are timed too and counted separately, so a slow backend that mostly errors
out still shows up in the shutdown summary.
"""
import time
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional
from dataclasses import dataclass
from collections import defaultdict

logger = logging.getLogger(__name__)

# Seconds; analysis calls go to a remote or local model and are slow by nature
DEFAULT_THRESHOLDS: Dict[str, float] = {
    "capture": 1.0,
    "audio": 15.0,
    "image": 20.0,
    "mcq": 20.0,
    "coding": 30.0,
    "solution": 30.0,
    "debug": 45.0,
}


@dataclass
class TimingStats:
    """Aggregated timings for one stage."""
    stage: str
    count: int
    total_time: float
    avg_time: float
    min_time: float
    max_time: float
    last_time: float
    failures: int = 0


class MetricsCollector:
    """Per-stage durations, failure counts and threshold warnings."""

    def __init__(self, thresholds: Optional[Dict[str, float]] = None):
        self.timings: Dict[str, List[float]] = defaultdict(list)
        self.failures: Dict[str, int] = defaultdict(int)
        self.thresholds: Dict[str, float] = dict(DEFAULT_THRESHOLDS if thresholds is None else thresholds)
        self.warnings: List[str] = []

    def record_timing(self, stage: str, duration: float, failed: bool = False) -> None:
        self.timings[stage].append(duration)
        if failed:
            self.failures[stage] += 1

        threshold = self.thresholds.get(stage)
        if threshold and duration > threshold:
            warning = f"⚠️  {stage} exceeded threshold: {duration:.3f}s > {threshold}s"
            self.warnings.append(warning)
            logger.warning(warning)

    def get_stats(self, stage: str) -> Optional[TimingStats]:
        times = self.timings.get(stage)
        if not times:
            return None

        return TimingStats(
            stage=stage,
            count=len(times),
            total_time=sum(times),
            avg_time=sum(times) / len(times),
            min_time=min(times),
            max_time=max(times),
            last_time=times[-1],
            failures=self.failures.get(stage, 0),
        )

    def log_summary(self) -> None:
        """Print the per-stage table shown at shutdown."""
        print("\n" + "=" * 78)
        print("📊 ANALYSIS TIMING SUMMARY")
        print("=" * 78)
        print(f"{'Stage':<12} {'Calls':<6} {'Failed':<7} {'Avg':<8} {'Min':<8} {'Max':<8} {'Last':<8}")
        print("-" * 78)

        for stage in sorted(self.timings):
            stats = self.get_stats(stage)
            if stats:
                print(f"{stage:<12} {stats.count:<6} {stats.failures:<7} "
                      f"{stats.avg_time:>6.2f}s {stats.min_time:>6.2f}s "
                      f"{stats.max_time:>6.2f}s {stats.last_time:>6.2f}s")

        if self.warnings:
            print(f"\n⚠️  {len(self.warnings)} slow calls:")
            for warning in self.warnings[-10:]:
                print(f"   {warning}")

        print("=" * 78)

    def clear(self) -> None:
        self.timings.clear()
        self.failures.clear()
        self.warnings.clear()


# Global metrics collector
_metrics = MetricsCollector()


@contextmanager
def timer(stage: str):
    """Time the block under `stage`; an exception counts as a failed call."""
    start_time = time.perf_counter()
    failed = False
    try:
        yield
    except BaseException:
        failed = True
        raise
    finally:
        _metrics.record_timing(stage, time.perf_counter() - start_time, failed=failed)


def log_latency() -> None:
    """Print the timing summary."""
    _metrics.log_summary()


def clear_metrics() -> None:
    _metrics.clear()


def get_current_metrics() -> Dict[str, TimingStats]:
    """Stats for every stage timed so far."""
    return {stage: _metrics.get_stats(stage) for stage in list(_metrics.timings)}
