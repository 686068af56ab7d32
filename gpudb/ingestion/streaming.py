"""
Streaming reader for huge top-level JSON arrays.

device_reports.json is far too large to load with ``json.load``. This
module walks the array with ijson, one element at a time, groups the
elements into batches and hands every full batch to an async processor
running as its own task.

Backpressure: at most ``concurrency`` processor tasks are in flight. When
the limit is reached the reader stops pulling from the parser until at
least one task finishes, so a fast parser cannot run ahead of slow
database writes and grow memory without bound.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

import ijson

logger = logging.getLogger(__name__)

# Log the running counter every N dispatched batches
PROGRESS_EVERY_BATCHES = 10


@dataclass
class StreamStats:
    """Counters reported by ``stream_json_array``."""

    items: int = 0
    batches: int = 0


async def _drain_one(in_flight: set[asyncio.Task]) -> set[asyncio.Task]:
    """Wait until at least one task finishes; re-raise its error if it failed."""
    done, pending = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
    for task in done:
        # Raises the processor's exception, if any
        task.result()
    return pending


async def _cancel_all(tasks: set[asyncio.Task]):
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def stream_json_array(
    path: str | Path,
    batch_size: int,
    concurrency: int,
    processor: Callable[[list[Any]], Awaitable[None]],
    on_progress: Callable[[StreamStats], None] | None = None,
) -> StreamStats:
    """Stream a JSON array file through ``processor`` in batches.

    Args:
        path: File holding a single top-level JSON array
        batch_size: Elements per batch handed to the processor
        concurrency: Maximum number of unfinished processor calls
        processor: Async callable receiving one batch
        on_progress: Optional callback receiving the running counters

    Returns:
        StreamStats with the total element and batch counts

    Raises:
        ijson.JSONError on malformed input, or the first processor
        exception. Outstanding batches are cancelled before re-raising.
    """
    stats = StreamStats()
    in_flight: set[asyncio.Task] = set()
    batch: list[Any] = []

    async def dispatch(current: list[Any]):
        nonlocal in_flight
        # Pause parsing until there is room for another batch
        while len(in_flight) >= concurrency:
            in_flight = await _drain_one(in_flight)

        in_flight.add(asyncio.create_task(processor(current)))
        stats.items += len(current)
        stats.batches += 1

        if stats.batches % PROGRESS_EVERY_BATCHES == 0:
            logger.info(f"Processed: {stats.items:,} items ({stats.batches:,} batches)")
        if on_progress:
            on_progress(stats)

        # Let the new task start before parsing continues
        await asyncio.sleep(0)

    logger.info(f"Streaming {path}...")
    try:
        with open(path, "rb") as f:
            # use_float keeps numbers JSON-serialisable (no Decimal)
            for item in ijson.items(f, "item", use_float=True):
                batch.append(item)
                if len(batch) >= batch_size:
                    current, batch = batch, []
                    await dispatch(current)

        if batch:
            await dispatch(batch)

        while in_flight:
            in_flight = await _drain_one(in_flight)
    except BaseException:
        await _cancel_all(in_flight)
        raise

    logger.info(f"Processed: {stats.items:,} items ({stats.batches:,} batches)")
    return stats
