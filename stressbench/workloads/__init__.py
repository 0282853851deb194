from .primes import is_prime, count_primes
from .memory import (
    FALLBACK_MEMORY_BYTES,
    allocate_chunk,
    current_rss_bytes,
    get_available_memory,
    logical_cpu_count,
)

__all__ = [
    'is_prime',
    'count_primes',
    'FALLBACK_MEMORY_BYTES',
    'allocate_chunk',
    'current_rss_bytes',
    'get_available_memory',
    'logical_cpu_count',
]
