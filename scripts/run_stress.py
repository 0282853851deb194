#!/usr/bin/env python3
"""
Convenience wrapper to run the continuous CPU/RAM/disk stress test.

Usage examples:
    python scripts/run_stress.py
    python scripts/run_stress.py --full --report-interval 2
    python scripts/run_stress.py --disable-disk --cpu-threads 4
    python scripts/run_stress.py --memory-percent 0.5 --disk-path /mnt/scratch

Press Ctrl-C (or send SIGTERM) to stop; a second signal exits immediately.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from stressbench.benchmarks.runner import main


if __name__ == "__main__":
    main()
