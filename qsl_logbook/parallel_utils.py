"""Worker-count helpers for parallel ADIF parsing.

Parsing a record is pure Python, so thread pools mostly help on very large logs
where the split and regex work can overlap with file I/O on the next reload.
"""

from __future__ import annotations

import os
from typing import Optional

CI_ENV_VARS = ("CI", "GITHUB_ACTIONS", "TRAVIS", "JENKINS")


def is_ci() -> bool:
    return any(env in os.environ for env in CI_ENV_VARS)


def get_optimal_workers(max_workers: Optional[int] = None) -> int:
    """Calculate a worker count for parsing.

    Args:
        max_workers: Optional maximum to cap the result

    Returns:
        Number of workers, at least 1. CI environments get a conservative 2.
    """
    if is_ci():
        base_workers = 2
    else:
        base_workers = min(4, os.cpu_count() or 1)

    if max_workers is not None:
        base_workers = min(base_workers, max_workers)

    return max(1, base_workers)


def should_use_parallel(
    item_count: int,
    threshold: int = 500,
    force_parallel: Optional[bool] = None,
) -> bool:
    """Determine if parallel processing should be used.

    Args:
        item_count: Number of items to process
        threshold: Minimum items for parallel processing
        force_parallel: Override automatic decision

    Returns:
        True if parallel processing should be used
    """
    if force_parallel is not None:
        return force_parallel

    if is_ci():
        threshold = max(threshold, 1000)

    return item_count >= threshold
