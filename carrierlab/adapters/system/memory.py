"""Process memory reading for the performance monitor."""

import psutil


def process_memory_mb() -> float:
    """Resident set size of the current process in megabytes."""
    return psutil.Process().memory_info().rss / (1024 * 1024)
