import time
from typing import Any, Callable, Tuple


class HighPrecisionTimer:
    """High-precision timer for pass and phase durations."""

    def __init__(self):
        self.start_time = None
        self.elapsed = None

    def start(self):
        """Start timing."""
        self.start_time = time.perf_counter()
        self.elapsed = None

    def stop(self) -> float:
        """Stop timing and return elapsed time in seconds."""
        if self.start_time is None:
            raise RuntimeError("Timer not started")
        self.elapsed = time.perf_counter() - self.start_time
        return self.elapsed

    @staticmethod
    def time_call(operation: Callable[..., Any], *args: Any) -> Tuple[Any, float]:
        """Run operation once and return (result, elapsed seconds)."""
        timer = HighPrecisionTimer()
        timer.start()
        result = operation(*args)
        return result, timer.stop()
