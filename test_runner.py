#!/usr/bin/env python3
"""
Tests for StressRunner: state transitions, worker launch, drain and the
grace window, and OS signal routing.
"""

import os
import signal
import sys
import time

import pytest

from stressbench.benchmarks.runner import RunState, StressRunner, install_signal_handlers
from stressbench.config import StressConfig
from stressbench.utils.stats import MIB


def _idle_config(**overrides):
    values = dict(disable_cpu=True, disable_disk=True, grace_period=1.0)
    values.update(overrides)
    return StressConfig(**values)


def _wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_state_transitions():
    runner = StressRunner(_idle_config(), logger=lambda msg: None, cpu_cores=4)
    assert runner.state is RunState.IDLE
    assert runner.begin_drain() is False

    runner.start()
    assert runner.state is RunState.RUNNING
    assert not runner.stop_event.is_set()

    assert runner.begin_drain() is True
    assert runner.state is RunState.DRAINING
    assert runner.stop_event.is_set()
    assert runner.begin_drain() is False
    assert runner.stop_event.is_set()

    assert runner.finish() == []
    assert runner.state is RunState.STOPPED
    assert runner.stop_event.is_set()


def test_start_twice_is_rejected():
    runner = StressRunner(_idle_config(), logger=lambda msg: None)
    runner.start()
    with pytest.raises(RuntimeError):
        runner.start()
    runner.finish()


@pytest.mark.parametrize("cores, expected", [(1, 1), (2, 1), (8, 7)])
def test_cpu_thread_count_resolved_from_cores(cores, expected):
    runner = StressRunner(_idle_config(), logger=lambda msg: None, cpu_cores=cores)
    assert runner.config.cpu_threads == expected
    assert runner.stats.worker_count == expected


def test_launches_one_thread_per_cpu_worker():
    config = _idle_config(disable_cpu=False, cpu_threads=3, prime_range=500, grace_period=5.0)
    runner = StressRunner(config, logger=lambda msg: None)
    runner.start()
    assert sorted(t.name for t in runner.threads) == ["cpu-0", "cpu-1", "cpu-2"]
    assert all(t.daemon for t in runner.threads)

    runner.begin_drain()
    assert runner.finish() == []
    assert all(not t.is_alive() for t in runner.threads)


def test_disabled_resources_launch_nothing():
    runner = StressRunner(_idle_config(), logger=lambda msg: None)
    runner.start()
    assert runner.threads == []
    runner.finish()


def test_finish_is_bounded_by_grace_period_with_slow_worker():
    # A pass over a million candidates takes far longer than the grace window.
    config = _idle_config(disable_cpu=False, cpu_threads=1, prime_range=1_000_000, grace_period=0.2)
    runner = StressRunner(config, logger=lambda msg: None)
    runner.start()
    time.sleep(0.05)

    started = time.monotonic()
    runner.begin_drain()
    still_running = runner.finish()
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert still_running == ["cpu-0"]
    assert runner.state is RunState.STOPPED


def test_wait_drains_after_duration():
    runner = StressRunner(_idle_config(duration=1), logger=lambda msg: None)
    runner.start()
    started = time.monotonic()
    runner.wait(poll_interval=0.05)
    assert 0.9 <= time.monotonic() - started < 3.0
    assert runner.state is RunState.DRAINING
    runner.finish()


def test_wait_returns_once_drain_begins():
    runner = StressRunner(_idle_config(), logger=lambda msg: None)
    runner.start()
    runner.begin_drain()
    runner.wait(poll_interval=0.05)
    assert runner.finish() == []


def test_full_mode_prints_header_and_completion():
    lines = []
    runner = StressRunner(_idle_config(full=True, prime_range=1234), logger=lines.append, cpu_cores=4)
    runner.start()
    runner.finish()
    assert lines[:6] == [
        "CPU cores detected: 4",
        "Using 3 threads for CPU benchmarking",
        "Prime range: 1234",
        "Memory allocation: 90%",
        "Chunk size: 100 MB",
        "Report interval: 5 seconds",
    ]
    assert lines[-1] == "Performance test completed"


def test_memory_disk_worker_runs_and_cleans_up(tmp_path):
    lines = []
    config = _idle_config(
        disable_disk=False,
        memory_percent=0.5,
        chunk_size_mb=1,
        report_interval=1,
        disk_path=str(tmp_path),
        grace_period=5.0,
    )
    runner = StressRunner(config, logger=lines.append, available_memory=lambda: 4 * MIB)
    runner.start()
    assert [t.name for t in runner.threads] == ["memory-disk"]

    assert _wait_for(lambda: any(line.startswith("Disk: avg write") for line in lines))
    runner.begin_drain()
    assert runner.finish() == []
    assert list(tmp_path.iterdir()) == []


def test_worker_failure_is_reported_and_isolated():
    def broken_memory_query():
        raise RuntimeError("memory query failed")

    lines = []
    config = _idle_config(disable_disk=False, disable_cpu=False, cpu_threads=1, prime_range=200)
    runner = StressRunner(config, logger=lines.append, available_memory=broken_memory_query)
    runner.start()

    assert _wait_for(lambda: "[memory-disk] error: memory query failed" in lines)
    cpu_thread = [t for t in runner.threads if t.name == "cpu-0"][0]
    assert cpu_thread.is_alive()

    runner.begin_drain()
    assert runner.finish() == []


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal delivery")
def test_signals_begin_drain_then_force_exit():
    lines = []
    runner = StressRunner(_idle_config(full=True), logger=lines.append)
    previous = install_signal_handlers(runner)
    try:
        runner.start()
        os.kill(os.getpid(), signal.SIGTERM)
        assert _wait_for(lambda: runner.drain_requested, timeout=2.0)
        runner.wait(poll_interval=0.05)
        assert runner.state is RunState.DRAINING
        assert runner.stop_event.is_set()
        assert "\nReceived interrupt signal, shutting down..." in lines

        with pytest.raises(SystemExit) as exc_info:
            os.kill(os.getpid(), signal.SIGINT)
            time.sleep(1.0)
        assert exc_info.value.code == 128 + signal.SIGINT
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    runner.finish()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal delivery")
def test_signal_while_state_lock_held_does_not_deadlock():
    runner = StressRunner(_idle_config(), logger=lambda msg: None)
    previous = install_signal_handlers(runner)
    try:
        runner.start()
        with runner._state_lock:
            os.kill(os.getpid(), signal.SIGTERM)
            assert _wait_for(lambda: runner.drain_requested, timeout=2.0)
            assert runner.state is RunState.RUNNING
        runner.wait(poll_interval=0.05)
        assert runner.state is RunState.DRAINING
        assert runner.stop_event.is_set()
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    assert runner.finish() == []


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal delivery")
def test_signal_before_start_drains_once_running():
    runner = StressRunner(_idle_config(), logger=lambda msg: None)
    previous = install_signal_handlers(runner)
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        assert _wait_for(lambda: runner.drain_requested, timeout=2.0)
        assert runner.state is RunState.IDLE

        runner.start()
        runner.wait(poll_interval=0.05)
        assert runner.state is RunState.DRAINING
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    assert runner.finish() == []


def test_request_drain_is_applied_by_wait():
    lines = []
    runner = StressRunner(_idle_config(full=True), logger=lines.append)
    runner.start()
    runner.request_drain()
    assert runner.state is RunState.RUNNING
    assert not runner.stop_event.is_set()

    runner.wait(poll_interval=0.05)
    assert runner.state is RunState.DRAINING
    assert lines.count("\nReceived interrupt signal, shutting down...") == 1
    runner.finish()
