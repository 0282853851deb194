MIB = 1024 * 1024


class RunningAverage:
    """Loop-local accumulator for rate samples."""

    def __init__(self):
        self.total = 0.0
        self.count = 0

    def add(self, value: float) -> None:
        self.total += value
        self.count += 1

    @property
    def mean(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total / self.count


class StatisticsCollector:
    """Formatting helpers for benchmark reports."""

    @staticmethod
    def format_with_commas(value: float) -> str:
        """Round to a whole number and group digits by thousands (1234567 -> 1,234,567)."""
        return f"{value:,.0f}"

    @staticmethod
    def format_time(seconds: float) -> str:
        """Format time in appropriate unit (s, ms, μs, ns)."""
        if seconds >= 1:
            return f"{seconds:.3f} s"
        elif seconds >= 1e-3:
            return f"{seconds * 1e3:.3f} ms"
        elif seconds >= 1e-6:
            return f"{seconds * 1e6:.3f} μs"
        else:
            return f"{seconds * 1e9:.3f} ns"

    @staticmethod
    def format_size(bytes_size: int) -> str:
        """Format size in appropriate unit (B, KB, MB, GB)."""
        if bytes_size >= 1024 * MIB:
            return f"{bytes_size / (1024 * MIB):.2f} GB"
        elif bytes_size >= MIB:
            return f"{bytes_size / MIB:.2f} MB"
        elif bytes_size >= 1024:
            return f"{bytes_size / 1024:.2f} KB"
        else:
            return f"{bytes_size} B"

    @staticmethod
    def mb_per_sec(num_bytes: int, seconds: float) -> float:
        """Throughput in MiB/s; zero when no time was measured."""
        if seconds <= 0:
            return 0.0
        return num_bytes / MIB / seconds
