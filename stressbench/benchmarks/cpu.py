"""
CPU stress workers.

Each worker repeatedly counts primes over the configured range. In the
default (aggregate) mode workers fold their samples into one shared
AggregateStats and at most one of them prints the combined figure per
report interval. In full (detailed) mode every worker keeps its own
counters and prints its own line.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from stressbench.config import StressConfig
from stressbench.utils.stats import StatisticsCollector
from stressbench.utils.timer import HighPrecisionTimer
from stressbench.workloads.primes import count_primes

Logger = Callable[[str], None]
Clock = Callable[[], float]


class AggregateStats:
    """
    Prime totals shared by all CPU workers.

    All three fields are read and written under one lock so that a report
    never mixes an old prime total with a new time total, and the report
    timestamp is advanced inside the same critical section that decided to
    report.
    """

    def __init__(self, report_interval: float, worker_count: int, clock: Clock = time.monotonic) -> None:
        self.report_interval = report_interval
        self.worker_count = worker_count
        self._clock = clock
        self._lock = threading.Lock()
        self.total_primes = 0
        self.total_seconds = 0.0
        self.last_report = clock()

    def record(self, seconds: float, primes: int) -> Optional[float]:
        """
        Add one pass and return the estimated total primes/sec if this caller
        won the report for the current interval, otherwise None.
        """
        with self._lock:
            self.total_seconds += seconds
            self.total_primes += primes
            now = self._clock()
            if now - self.last_report < self.report_interval:
                return None
            # Average rate scaled by worker count, not a sum of per-worker rates.
            rate = 0.0
            if self.total_seconds > 0:
                rate = self.total_primes / self.total_seconds * self.worker_count
            self.last_report = now
            return rate

    def snapshot(self):
        with self._lock:
            return self.total_primes, self.total_seconds, self.last_report


def cpu_worker(
    worker_id: int,
    config: StressConfig,
    stop_event: threading.Event,
    stats: Optional[AggregateStats] = None,
    logger: Optional[Logger] = None,
) -> int:
    """Run prime passes until stop_event is set; return the number of completed passes."""
    log = logger or print
    if not config.full and stats is None:
        raise ValueError("Aggregate mode requires shared AggregateStats")

    if config.full:
        log(f"CPU Thread {worker_id}: Starting")

    iteration = 0
    total_time = 0.0
    last_report = time.monotonic()

    while not stop_event.is_set():
        prime_count, duration = HighPrecisionTimer.time_call(count_primes, config.prime_range)
        iteration += 1
        total_time += duration

        if not config.full:
            rate = stats.record(duration, prime_count)
            if rate is not None:
                log(f"CPU: {StatisticsCollector.format_with_commas(rate)} total primes/sec")
            continue

        if time.monotonic() - last_report >= config.report_interval:
            avg_ms = total_time / iteration * 1000
            primes_per_sec = prime_count / duration if duration > 0 else 0.0
            log(
                f"CPU Thread {worker_id}: {iteration} iterations, avg {avg_ms:.2f}ms/iter, "
                f"{StatisticsCollector.format_with_commas(primes_per_sec)} primes/sec"
            )
            last_report = time.monotonic()

    if config.full:
        log(f"CPU Thread {worker_id}: Completed {iteration} iterations")
    return iteration
