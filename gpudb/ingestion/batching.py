"""Batch helpers for the reference import.

``process_batches`` runs batches in waves: up to ``concurrency`` batches
run together and the whole wave is joined before the next one starts.
A slow batch holds up its wave; at the sizes of the reference files that
is fine.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive groups of at most ``size``."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def process_batches(
    items: Sequence[T],
    batch_size: int,
    concurrency: int,
    processor: Callable[[list[T], int], Awaitable[R]],
    label: str = "batches",
    on_progress: Callable[[float], None] | None = None,
) -> list[R]:
    """Run ``processor(batch, batch_index)`` over all batches in waves.

    Args:
        items: Rows to process
        batch_size: Rows per batch
        concurrency: Batches per wave
        processor: Async callable receiving the batch and its index
        label: Name used in progress log lines
        on_progress: Optional callback receiving the completed fraction (0-1)
            after each wave

    Returns:
        Processor results in batch order

    Raises:
        The first exception (in batch order) raised by any batch of a wave.
        Later waves are not started.
    """
    batches = chunk(items, batch_size)
    results: list[R] = []

    for start in range(0, len(batches), concurrency):
        wave = batches[start:start + concurrency]
        # Join the full wave before looking at errors so nothing keeps running
        wave_results = await asyncio.gather(
            *(processor(batch, start + offset) for offset, batch in enumerate(wave)),
            return_exceptions=True,
        )
        for result in wave_results:
            if isinstance(result, BaseException):
                logger.error(f"Batch failed in {label} wave starting at batch {start}: {result}")
                raise result
        results.extend(wave_results)

        done = min(len(batches), start + concurrency)
        fraction = done / len(batches)
        logger.info(f"Progress ({label}): {round(fraction * 100)}% ({done}/{len(batches)} batches)")
        if on_progress:
            on_progress(fraction)

    return results
