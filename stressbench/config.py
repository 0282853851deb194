"""
Run configuration for stressbench.

Defaults come from config/stress.json and are overlaid by command-line
flags. The resolved StressConfig is frozen and shared read-only by every
worker thread.
"""

from __future__ import annotations

import argparse
import json
import math
import tempfile
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

project_root = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = project_root / "config" / "stress.json"

MIN_MEMORY_PERCENT = 0.1
MAX_MEMORY_PERCENT = 0.95


@dataclass(frozen=True)
class StressConfig:
    prime_range: int = 10_000_000
    memory_percent: float = 0.9
    chunk_size_mb: int = 100
    report_interval: int = 5
    cpu_threads: int = 0
    full: bool = False
    disable_cpu: bool = False
    disable_disk: bool = False
    disk_path: str = tempfile.gettempdir()
    duration: int = 0
    grace_period: float = 2.0

    @property
    def chunk_size_bytes(self) -> int:
        return self.chunk_size_mb * 1024 * 1024

    def validate(self) -> "StressConfig":
        """Raise ValueError on the first invalid field; return self otherwise."""
        if not MIN_MEMORY_PERCENT <= self.memory_percent <= MAX_MEMORY_PERCENT:
            raise ValueError("Memory percent must be between 0.1 and 0.95")
        if self.prime_range < 2:
            raise ValueError("Prime range must be at least 2")
        if self.chunk_size_mb <= 0:
            raise ValueError("Chunk size must be a positive number of MB")
        if self.report_interval <= 0:
            raise ValueError("Report interval must be a positive number of seconds")
        if self.cpu_threads < 0:
            raise ValueError("CPU threads must be 0 (auto) or a positive count")
        if self.duration < 0:
            raise ValueError("Duration must be 0 (run until interrupted) or positive")
        if self.grace_period < 0:
            raise ValueError("Grace period cannot be negative")
        return self

    def with_resolved_threads(self, cpu_cores: int) -> "StressConfig":
        return replace(self, cpu_threads=resolve_cpu_threads(self.cpu_threads, cpu_cores))


def resolve_cpu_threads(requested: int, cpu_cores: int) -> int:
    """0 means auto: one thread per logical core minus one, never fewer than one."""
    if requested > 0:
        return requested
    return max(1, cpu_cores - 1)


def _coerce(name: str, kind: str, value: Any) -> Any:
    """Convert a JSON value to the field's declared type or raise ValueError naming the key."""
    if kind == "bool":
        if not isinstance(value, bool):
            raise ValueError(f"Config key '{name}' must be true or false, got {value!r}")
        return value
    if isinstance(value, bool) or value is None or isinstance(value, (list, dict)):
        raise ValueError(f"Config key '{name}' must be {kind}, got {value!r}")
    if kind == "str":
        if not isinstance(value, str):
            raise ValueError(f"Config key '{name}' must be a string, got {value!r}")
        return value
    try:
        if kind == "int":
            if isinstance(value, int):
                return value
            number = float(value)
            if not number.is_integer():
                raise ValueError
            return int(number)
        number = float(value)
        if not math.isfinite(number):
            raise ValueError
        return number
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"Config key '{name}' must be {kind}, got {value!r}") from None


def load_defaults(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Read the JSON defaults file; unknown keys and mistyped values are rejected."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if not path.exists():
        if config_path:
            raise ValueError(f"Config file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    kinds = {f.name: f.type for f in fields(StressConfig)}
    unknown = sorted(set(data) - set(kinds))
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    return {name: _coerce(name, kinds[name], value) for name, value in data.items()}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Continuously stress CPU, RAM and disk and report throughput until interrupted"
    )
    parser.add_argument("--config", default=None, help="Path to a JSON defaults file")
    parser.add_argument("--prime-range", type=int, help="Range for prime number testing (default: 10M)")
    parser.add_argument("--memory-percent", type=float, help="Fraction of available memory to allocate (0.1-0.95)")
    parser.add_argument("--chunk-size", dest="chunk_size_mb", type=int, help="Memory chunk size in MB")
    parser.add_argument("--report-interval", type=int, help="Seconds between benchmark reports")
    parser.add_argument("--cpu-threads", type=int, help="Number of CPU threads (0 = auto: cores-1)")
    parser.add_argument("--full", action="store_true", default=None, help="Show full output with detailed information")
    parser.add_argument("--disable-cpu", action="store_true", default=None, help="Disable CPU testing")
    parser.add_argument("--disable-disk", action="store_true", default=None, help="Disable memory and disk testing")
    parser.add_argument("--disk-path", help="Directory for disk benchmark files")
    parser.add_argument("--duration", type=int, help="Stop after this many seconds (0 = run until interrupted)")
    return parser


def config_from_args(argv: Optional[List[str]] = None) -> StressConfig:
    """Parse argv over the JSON defaults and return a validated StressConfig."""
    args = build_parser().parse_args(argv)
    values = load_defaults(args.config)
    for name, value in vars(args).items():
        if name != "config" and value is not None:
            values[name] = value
    return StressConfig(**values).validate()
