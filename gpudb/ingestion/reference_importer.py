"""
Import the small reference files: extensions, coverage and scrape metadata.

These files are a few MB at most, so they are loaded whole. The import
returns the extension name -> id map the device import resolves
extension links against.

Conflict policies:
- extensions: upsert on name (latest file wins)
- extension_coverage: first write wins per (extension, platform)
- scrape_meta: append-only, one row per run
"""

import json
import logging
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from gpudb.db.models import Extension, ExtensionCoverage, ScrapeMeta
from gpudb.ingestion.batching import chunk, process_batches
from gpudb.ingestion.bulk import ConflictPolicy, bulk_insert
from gpudb.ingestion.sanitize import parse_coverage

logger = logging.getLogger(__name__)

EXTENSIONS_FILE = "extensions.json"
EXTENSIONS_BY_PLATFORM_FILE = "extensions_by_platform.json"
SUMMARY_FILE = "summary.json"

# Platforms with their own coverage list in extensions_by_platform.json
PLATFORMS = ["windows", "linux", "android", "macos", "ios"]
ALL_PLATFORMS = "all"


def load_json(data_dir: str | Path, filename: str) -> Any:
    """Load a whole JSON file from the data directory."""
    path = Path(data_dir) / filename
    logger.info(f"Loading {filename}...")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _parse_scrape_date(value: str) -> datetime:
    """Parse an ISO timestamp, stored as naive UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _percent(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


def device_count_for(percent: float, total_reports: int) -> int:
    """Number of devices a coverage percentage stands for, rounded half up."""
    return int(math.floor(percent * total_reports / 100 + 0.5))


def build_extension_rows(extensions_data: list[dict]) -> list[dict]:
    """Map extensions.json entries to rows, one per name (last entry wins)."""
    rows: dict[str, dict] = {}
    for ext in extensions_data:
        rows[ext["name"]] = {
            "name": ext["name"],
            "date_added": _parse_date(ext.get("date")),
            "has_features": ext.get("features_url") is not None,
            "has_properties": ext.get("properties_url") is not None,
        }
    return list(rows.values())


def build_all_platform_coverage(
    extensions_data: list[dict],
    extension_map: dict[str, int],
    total_reports: int,
) -> list[dict]:
    """Coverage rows for platform "all", skipping unknown extensions."""
    rows = []
    for ext in extensions_data:
        extension_id = extension_map.get(ext["name"])
        if extension_id is None:
            continue
        percent = parse_coverage(ext.get("coverage"))
        rows.append({
            "extension_id": extension_id,
            "platform": ALL_PLATFORMS,
            "coverage_percent": _percent(percent),
            "device_count": device_count_for(percent, total_reports),
            "total_devices": total_reports,
        })
    return rows


def build_platform_coverage(
    platform: str,
    platform_data: list[dict],
    extension_map: dict[str, int],
) -> list[dict]:
    """Coverage rows for one platform.

    Device counts are not known per platform in this pass and stay 0.
    """
    rows = []
    for ext in platform_data:
        extension_id = extension_map.get(ext["name"])
        if extension_id is None:
            continue
        rows.append({
            "extension_id": extension_id,
            "platform": platform,
            "coverage_percent": _percent(parse_coverage(ext.get("coverage"))),
            "device_count": 0,
            "total_devices": 0,
        })
    return rows


async def _upsert_extensions(
    engine: AsyncEngine,
    rows: list[dict],
    batch_size: int,
    concurrency: int,
) -> dict[str, int]:
    async def upsert_batch(batch: list[dict], batch_index: int):
        async with engine.begin() as conn:
            _, returned = await bulk_insert(
                conn, Extension, batch,
                conflict=ConflictPolicy.UPDATE_SUBSET,
                index_elements=["name"],
                update_columns=["date_added", "has_features", "has_properties"],
                returning=[Extension.id, Extension.name],
            )
        return returned

    extension_map: dict[str, int] = {}
    for returned in await process_batches(rows, batch_size, concurrency, upsert_batch, label="extensions"):
        for row in returned:
            extension_map[row.name] = row.id

    # RETURNING should cover every upserted row; look up any that it missed
    missing = [row["name"] for row in rows if row["name"] not in extension_map]
    if missing:
        logger.warning(f"{len(missing)} extensions missing from RETURNING rows, looking them up")
        async with engine.connect() as conn:
            for names in chunk(missing, batch_size):
                result = await conn.execute(
                    select(Extension.id, Extension.name).where(Extension.name.in_(names))
                )
                for row in result:
                    extension_map[row.name] = row.id

    return extension_map


async def _insert_coverage(
    engine: AsyncEngine,
    rows: list[dict],
    batch_size: int,
    concurrency: int,
    label: str,
) -> int:
    async def insert_batch(batch: list[dict], batch_index: int) -> int:
        async with engine.begin() as conn:
            count, _ = await bulk_insert(
                conn, ExtensionCoverage, batch,
                conflict=ConflictPolicy.IGNORE,
                index_elements=["extension_id", "platform"],
            )
        return max(count, 0)

    return sum(await process_batches(rows, batch_size, concurrency, insert_batch, label=label))


async def import_extensions(
    engine: AsyncEngine,
    data_dir: str | Path,
    batch_size: int = 100,
    concurrency: int = 3,
) -> dict[str, int]:
    """Import extensions, coverage and scrape metadata.

    Args:
        engine: Database engine
        data_dir: Directory holding the reference JSON files
        batch_size: Rows per INSERT statement
        concurrency: Batches per wave

    Returns:
        Extension name -> extensions.id for every extension in extensions.json
    """
    logger.info("=== Importing Extensions ===")

    extensions_data = load_json(data_dir, EXTENSIONS_FILE)
    extensions_by_platform = load_json(data_dir, EXTENSIONS_BY_PLATFORM_FILE)
    summary = load_json(data_dir, SUMMARY_FILE)

    logger.info(f"Found {len(extensions_data)} extensions")

    extension_rows = build_extension_rows(extensions_data)
    extension_map = await _upsert_extensions(engine, extension_rows, batch_size, concurrency)
    logger.info(f"Upserted {len(extension_map)} extensions")

    logger.info("Importing coverage for all platforms...")
    total_reports = summary.get("total_reports") or 0
    all_rows = build_all_platform_coverage(extensions_data, extension_map, total_reports)
    inserted = await _insert_coverage(engine, all_rows, batch_size, concurrency, label="coverage all")
    logger.info(f"Inserted {inserted} of {len(all_rows)} coverage rows for all platforms")

    for platform in PLATFORMS:
        platform_data = extensions_by_platform.get(platform)
        if not platform_data:
            continue

        logger.info(f"Importing coverage for {platform} ({len(platform_data)} extensions)...")
        rows = build_platform_coverage(platform, platform_data, extension_map)
        inserted = await _insert_coverage(engine, rows, batch_size, concurrency, label=f"coverage {platform}")
        logger.info(f"Inserted {inserted} of {len(rows)} coverage rows for {platform}")

    async with engine.begin() as conn:
        await conn.execute(insert(ScrapeMeta).values(
            scrape_date=_parse_scrape_date(summary["scrape_date"]),
            total_extensions=summary.get("total_extensions"),
            total_reports=summary.get("total_reports"),
            source=summary.get("source"),
            license=summary.get("license"),
        ))

    logger.info("Extensions import complete!")
    return extension_map
