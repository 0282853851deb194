"""
CPU workload: count primes below a bound by trial division.

Every call recomputes from scratch; the repeated work is the load.
"""


def is_prime(n: int) -> bool:
    """Return True if n is prime."""
    if n < 2:
        return False
    if n == 2:
        return True
    if n % 2 == 0:
        return False
    i = 3
    while i * i <= n:
        if n % i == 0:
            return False
        i += 2
    return True


def count_primes(limit: int) -> int:
    """Count the primes in [2, limit)."""
    count = 0
    for k in range(2, limit):
        if is_prime(k):
            count += 1
    return count
