"""
Run a full import of the GPU report dump into the database.

Data flow:
    extensions.json / extensions_by_platform.json / summary.json
        -> reference import -> extension name -> id map
    device_reports.json (streamed)
        -> device import (using the map) -> device tables

The run is not atomic as a whole: every batch commits on its own. Re-running
from scratch is safe because every write is an upsert or insert-or-ignore
(except scrape_meta, which gets one audit row per run).
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from gpudb.config import Settings
from gpudb.ingestion.device_importer import DeviceImportStats, import_devices
from gpudb.ingestion.reference_importer import import_extensions

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    extensions: int
    devices: DeviceImportStats
    elapsed_seconds: float


async def run_full_import(engine: AsyncEngine, settings: Settings) -> ImportSummary:
    """Import reference data, then device reports.

    Any exception escaping either phase aborts the run; the caller decides
    the exit status.
    """
    start_time = time.time()

    def log_step(step: int, total: int, name: str):
        elapsed = time.time() - start_time
        logger.info(f"{'=' * 50}")
        logger.info(f"[{step}/{total}] {name.upper()} (elapsed: {elapsed:.1f}s)")
        logger.info(f"{'=' * 50}")

    log_step(1, 2, "Importing reference data")
    extension_map = await import_extensions(
        engine,
        settings.data_dir,
        batch_size=settings.insert_batch_size,
        concurrency=settings.import_concurrency,
    )

    log_step(2, 2, "Importing device reports")
    device_stats = await import_devices(
        engine,
        extension_map,
        settings.data_dir,
        device_batch_size=settings.device_batch_size,
        insert_batch_size=settings.insert_batch_size,
        concurrency=settings.import_concurrency,
    )

    elapsed = time.time() - start_time
    logger.info(f"{'=' * 50}")
    logger.info(f"IMPORT COMPLETE in {elapsed:.1f}s")
    logger.info(
        f"  {len(extension_map):,} extensions, {device_stats.imported:,} devices imported, "
        f"{device_stats.errors:,} errors, {device_stats.processed:,} reports processed"
    )
    logger.info(f"{'=' * 50}")

    return ImportSummary(
        extensions=len(extension_map),
        devices=device_stats,
        elapsed_seconds=elapsed,
    )
