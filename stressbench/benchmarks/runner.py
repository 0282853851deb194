#!/usr/bin/env python3
"""
Stress run orchestration.

StressRunner launches one thread per CPU worker plus one memory/disk
thread, then waits until it is told to drain. Draining sets the shared
stop event exactly once; every worker polls it between passes or chunks.
After draining the runner waits at most the grace period for the threads
and then stops whether or not they have finished (they are daemon threads,
so a pass still in flight does not hold the process open).

OS signals are not handled here directly: install_signal_handlers maps
SIGINT/SIGTERM onto StressRunner.request_drain(), which only sets a flag.
wait() turns that flag into begin_drain() on the main thread, so a signal
arriving while _state_lock is held cannot deadlock.
"""

from __future__ import annotations

import signal
import sys
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from stressbench.benchmarks.cpu import AggregateStats, cpu_worker
from stressbench.benchmarks.memory_disk import memory_and_disk_worker
from stressbench.config import StressConfig, config_from_args
from stressbench.workloads.memory import logical_cpu_count

Logger = Callable[[str], None]


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class StressRunner:
    """Coordinator for the CPU workers and the memory/disk worker."""

    def __init__(
        self,
        config: StressConfig,
        logger: Optional[Logger] = None,
        available_memory: Optional[Callable[[], int]] = None,
        cpu_cores: Optional[int] = None,
    ) -> None:
        self.cpu_cores = cpu_cores or logical_cpu_count()
        self.config = config.with_resolved_threads(self.cpu_cores)
        self.logger = logger or print
        self.available_memory = available_memory

        self.stop_event = threading.Event()
        self.stats = AggregateStats(self.config.report_interval, self.config.cpu_threads)
        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._threads: List[threading.Thread] = []
        # Set from the signal handler, which must not take _state_lock.
        self.drain_requested = False

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def threads(self) -> List[threading.Thread]:
        return list(self._threads)

    def start(self) -> None:
        with self._state_lock:
            if self._state is not RunState.IDLE:
                raise RuntimeError(f"Cannot start a runner in state '{self._state.value}'")
            self._state = RunState.RUNNING

        config = self.config
        if config.full:
            self._print_header()

        if not config.disable_cpu:
            for worker_id in range(config.cpu_threads):
                self._launch(
                    f"cpu-{worker_id}",
                    cpu_worker,
                    worker_id,
                    config,
                    self.stop_event,
                    self.stats,
                    self.logger,
                )

        if not config.disable_disk:
            self._launch(
                "memory-disk",
                memory_and_disk_worker,
                config,
                self.stop_event,
                self.logger,
                self.available_memory,
            )

    def begin_drain(self) -> bool:
        """Set the stop event. Only the first call while running has an effect."""
        with self._state_lock:
            if self._state is not RunState.RUNNING:
                return False
            self._state = RunState.DRAINING
        self.stop_event.set()
        return True

    def request_drain(self) -> None:
        """Ask wait() to begin draining. Safe to call from a signal handler."""
        self.drain_requested = True

    def wait(self, poll_interval: float = 0.5) -> None:
        """
        Block until draining begins. A drain request or an elapsed duration
        begins it from here, on the waiting thread.
        """
        deadline = time.monotonic() + self.config.duration if self.config.duration else None
        while True:
            if self.drain_requested:
                if self.config.full and self._state is RunState.RUNNING:
                    self.logger("\nReceived interrupt signal, shutting down...")
                self.begin_drain()
            elif deadline is not None and time.monotonic() >= deadline:
                self.begin_drain()
            if self.stop_event.wait(poll_interval):
                return

    def finish(self) -> List[str]:
        """
        Drain if needed, give workers up to the grace period to exit, and
        return the names of threads still running when it expired.
        """
        self.begin_drain()
        deadline = time.monotonic() + self.config.grace_period
        for thread in self._threads:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            thread.join(timeout=remaining)

        with self._state_lock:
            self._state = RunState.STOPPED

        still_running = [t.name for t in self._threads if t.is_alive()]
        if self.config.full:
            if still_running:
                self.logger(f"Grace period expired with {len(still_running)} worker(s) still running")
            self.logger("Performance test completed")
        return still_running

    def _launch(self, name: str, target: Callable[..., Any], *args: Any) -> None:
        thread = threading.Thread(
            target=self._run_worker,
            args=(name, target) + args,
            name=name,
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def _run_worker(self, name: str, target: Callable[..., Any], *args: Any) -> None:
        try:
            target(*args)
        except Exception as exc:  # pylint: disable=broad-except
            self.logger(f"[{name}] error: {exc}")

    def _print_header(self) -> None:
        config = self.config
        self.logger(f"CPU cores detected: {self.cpu_cores}")
        self.logger(f"Using {config.cpu_threads} threads for CPU benchmarking")
        self.logger(f"Prime range: {config.prime_range}")
        self.logger(f"Memory allocation: {config.memory_percent * 100:.0f}%")
        self.logger(f"Chunk size: {config.chunk_size_mb} MB")
        self.logger(f"Report interval: {config.report_interval} seconds")


def install_signal_handlers(runner: StressRunner) -> Dict[int, Any]:
    """
    Route SIGINT and SIGTERM to runner.request_drain(). A second signal, or
    one arriving once draining has begun, exits immediately instead of
    waiting out the grace period.
    Returns the previous handlers so callers can restore them.
    """

    def _handle(signum, _frame):
        if runner.drain_requested or runner.state in (RunState.DRAINING, RunState.STOPPED):
            raise SystemExit(128 + signum)
        runner.request_drain()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handle)
    return previous


def run_stress(config: StressConfig, logger: Optional[Logger] = None) -> StressRunner:
    runner = StressRunner(config, logger=logger)
    install_signal_handlers(runner)
    runner.start()
    runner.wait()
    runner.finish()
    return runner


def main(argv: Optional[List[str]] = None) -> None:
    try:
        config = config_from_args(argv)
    except (TypeError, ValueError) as exc:
        print(exc)
        sys.exit(1)
    run_stress(config)


if __name__ == "__main__":
    main()
