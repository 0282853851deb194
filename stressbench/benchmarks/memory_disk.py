"""
Memory allocation and filesystem benchmark.

A single worker grows a resident working set to a fraction of available
memory, then cycles that working set through a scratch file: overwrite
every chunk with random bytes, write it out, fsync, and read the file
back. Write and read throughput are averaged over all iterations.

The chunk list is owned by this worker for the whole run and is never
shared with the CPU workers.
"""

from __future__ import annotations

import os
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, List, Optional

import numpy as np

from stressbench.config import StressConfig
from stressbench.utils.stats import MIB, RunningAverage, StatisticsCollector
from stressbench.utils.timer import HighPrecisionTimer
from stressbench.workloads.memory import allocate_chunk, current_rss_bytes, get_available_memory

Logger = Callable[[str], None]
MemoryQuery = Callable[[], int]

# A report is forced every N iterations even if the interval has not elapsed.
REPORT_EVERY_ITERATIONS = 5


@dataclass
class DiskSample:
    """Byte counts and timings for one write+read cycle."""

    bytes_written: int
    bytes_read: int
    write_seconds: float
    read_seconds: float

    @property
    def write_mb_per_sec(self) -> float:
        return StatisticsCollector.mb_per_sec(self.bytes_written, self.write_seconds)

    @property
    def read_mb_per_sec(self) -> float:
        return StatisticsCollector.mb_per_sec(self.bytes_read, self.read_seconds)


def allocate_memory(
    config: StressConfig,
    stop_event: threading.Event,
    logger: Optional[Logger] = None,
    available_memory: Optional[MemoryQuery] = None,
) -> Optional[List[np.ndarray]]:
    """
    Append chunk_size_mb chunks until the target fraction of available
    memory is reached. Returns None if stop_event was set before the target
    was reached.
    """
    log = logger or print
    if available_memory is None:
        available_memory = lambda: get_available_memory(verbose=config.full, logger=log)

    target = int(available_memory() * config.memory_percent)
    if config.full:
        log(f"Memory: Target allocation: {target // MIB} MB")

    chunk_size = config.chunk_size_bytes
    chunks: List[np.ndarray] = []
    allocated = 0

    timer = HighPrecisionTimer()
    timer.start()
    while allocated < target:
        if stop_event.is_set():
            if config.full:
                log(f"Memory: Stopping allocation at {allocated // MIB} MB")
            return None
        chunks.append(allocate_chunk(chunk_size))
        allocated += chunk_size
    elapsed = timer.stop()

    if config.full:
        log(f"Memory: Allocated {allocated // MIB} MB in {StatisticsCollector.format_time(elapsed)}")
        rss = current_rss_bytes()
        if rss is not None:
            log(f"Memory: Resident set size {StatisticsCollector.format_size(rss)}")
    return chunks


@contextmanager
def scratch_file(directory: str, logger: Optional[Logger] = None) -> Iterator[BinaryIO]:
    """Create a perf_test_*.tmp file in directory; close and delete it on exit."""
    log = logger or print
    fd, path = tempfile.mkstemp(prefix="perf_test_", suffix=".tmp", dir=directory)
    fh = os.fdopen(fd, "w+b")
    try:
        yield fh
    finally:
        try:
            fh.close()
        except OSError as exc:
            log(f"Disk: Error closing temp file: {exc}")
        try:
            os.remove(path)
        except OSError as exc:
            log(f"Disk: Error removing temp file: {exc}")


def run_disk_iteration(
    fh: BinaryIO,
    chunks: List[np.ndarray],
    stop_event: threading.Event,
    rng: np.random.Generator,
    read_buffer: bytearray,
) -> Optional[DiskSample]:
    """
    One truncate/write/fsync/read cycle over all chunks. Returns None if
    stop_event was observed between chunks. OSError propagates.
    """
    fh.seek(0)
    fh.truncate(0)

    timer = HighPrecisionTimer()
    timer.start()
    bytes_written = 0
    for chunk in chunks:
        if stop_event.is_set():
            return None
        # New random content on every pass.
        chunk[:] = np.frombuffer(rng.bytes(chunk.size), dtype=np.uint8)
        bytes_written += fh.write(chunk)
    fh.flush()
    os.fsync(fh.fileno())
    write_seconds = timer.stop()

    fh.seek(0)
    timer.start()
    bytes_read = 0
    while True:
        if stop_event.is_set():
            return None
        n = fh.readinto(read_buffer)
        if not n:
            break
        bytes_read += n
    read_seconds = timer.stop()

    return DiskSample(bytes_written, bytes_read, write_seconds, read_seconds)


def disk_benchmark(
    chunks: List[np.ndarray],
    config: StressConfig,
    stop_event: threading.Event,
    logger: Optional[Logger] = None,
) -> int:
    """Cycle chunks through a scratch file until stopped; return completed iterations."""
    log = logger or print
    if config.full:
        log(f"Disk: Starting filesystem benchmark in path: {config.disk_path}")

    if not chunks:
        log("Disk: No memory chunks available for filesystem test")
        return 0

    rng = np.random.default_rng()
    read_buffer = bytearray(config.chunk_size_bytes)
    write_rates = RunningAverage()
    read_rates = RunningAverage()
    iteration = 0
    last_report = time.monotonic()

    try:
        with scratch_file(config.disk_path, log) as fh:
            while not stop_event.is_set():
                sample = run_disk_iteration(fh, chunks, stop_event, rng, read_buffer)
                if sample is None:
                    break
                iteration += 1
                write_rates.add(sample.write_mb_per_sec)
                read_rates.add(sample.read_mb_per_sec)

                interval_elapsed = time.monotonic() - last_report >= config.report_interval
                if interval_elapsed or iteration % REPORT_EVERY_ITERATIONS == 0:
                    log(f"Disk: avg write {write_rates.mean:.2f} MB/s, avg read {read_rates.mean:.2f} MB/s")
                    last_report = time.monotonic()
    except OSError as exc:
        log(f"Disk: I/O error, stopping filesystem benchmark: {exc}")
        return iteration

    if config.full:
        log(f"Disk: Completed {iteration} iterations")
    return iteration


def memory_and_disk_worker(
    config: StressConfig,
    stop_event: threading.Event,
    logger: Optional[Logger] = None,
    available_memory: Optional[MemoryQuery] = None,
) -> int:
    """Allocate the working set, then run the disk loop over it."""
    log = logger or print
    if config.full:
        log("Memory: Starting allocation and filesystem benchmark")

    chunks = allocate_memory(config, stop_event, log, available_memory)
    if chunks is None:
        return 0
    return disk_benchmark(chunks, config, stop_event, log)
