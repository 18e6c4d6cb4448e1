"""
Utility functions for tube-publisher.

This module provides common utility functions used across the application:
    - HTTP session construction with bearer authentication
    - Exponential backoff for retried requests
    - Threading utilities for parallel processing
    - Path and size formatting helpers

Usage:
    from tube_publisher.utils import (
        authorized_session,
        calculate_backoff,
        run_in_parallel,
        ensure_directory
    )
"""

import random
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, TypeVar

import requests
from tqdm import tqdm

from tube_publisher.core.logger import get_logger

logger = get_logger(__name__)


# Type variable for generic parallel processing
T = TypeVar("T")
R = TypeVar("R")

USER_AGENT = "tube-publisher/0.3.0"

# Backoff configuration
BASE_DELAY = 1.0  # seconds
MAX_DELAY = 32.0  # seconds
JITTER_FACTOR = 0.3  # randomness factor for backoff


def authorized_session(access_token: str) -> requests.Session:
    """
    Create an HTTP session that sends a bearer token on every request.

    Components never create their own sessions: the caller builds one per
    provider and injects it, so tests can pass a fake and tokens never
    leak between providers.

    Args:
        access_token: OAuth access token for the provider.

    Returns:
        A requests.Session with Authorization and User-Agent headers set.

    Example:
        youtube_http = authorized_session(config.youtube.access_token)
        drive_http = authorized_session(config.storage.access_token)
    """
    session = requests.Session()
    session.headers.update({
        "Authorization": f"Bearer {access_token}",
        "User-Agent": USER_AGENT,
    })
    return session


def calculate_backoff(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed).
        base_delay: Base delay in seconds.

    Returns:
        Delay in seconds with jitter applied.
    """
    # Exponential backoff: 2^attempt * base_delay
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)

    jitter = delay * JITTER_FACTOR * (2 * random.random() - 1)

    return max(0.5, delay + jitter)


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory.

    Returns:
        The same path (for chaining).

    Raises:
        OSError: If directory cannot be created (permissions, etc.)
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable string.

    Examples:
        format_file_size(512)       # "512 B"
        format_file_size(1048576)   # "1.0 MB"
    """
    if size_bytes < 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(size_bytes)
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


def run_in_parallel(
    func: Callable[[T], R],
    items: Iterable[T],
    num_threads: int = 4,
    description: str = "Processing",
    show_progress: bool = True
) -> list[tuple[T, R | Exception]]:
    """
    Run a function on multiple items in parallel with progress tracking.

    This is a generic utility for parallel processing with:
    - Thread pool execution
    - tqdm progress bar
    - Error collection (doesn't stop on failures)

    Args:
        func: Function to call for each item. Takes one argument.
        items: Iterable of items to process.
        num_threads: Number of parallel threads.
        description: Description for the progress bar.
        show_progress: Whether to show tqdm progress bar.

    Returns:
        List of (item, result) tuples where result is either the
        return value or an Exception if the call failed. Order follows
        completion, not submission.

    Error Handling:
        Exceptions are caught and returned in the result tuple.
        Processing continues for other items.
    """
    items_list = list(items)
    results: list[tuple[T, R | Exception]] = []

    with ThreadPoolExecutor(max_workers=num_threads) as executor:
        future_to_item = {
            executor.submit(func, item): item
            for item in items_list
        }

        iterator = as_completed(future_to_item)
        if show_progress:
            iterator = tqdm(
                iterator,
                total=len(items_list),
                desc=description,
                unit="item"
            )

        for future in iterator:
            item = future_to_item[future]
            try:
                result = future.result()
                results.append((item, result))
            except Exception as e:
                results.append((item, e))

    return results
