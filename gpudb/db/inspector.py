"""Database state inspection utilities.

Use these to check whether an import is needed, or whether a previous
run left data behind:
1. Does the database have devices? (device count > 0)
2. When was the last scrape imported? (latest scrape_meta row)
3. How many rows does every import table hold?

Re-running the import is safe (upserts / insert-or-ignore), but it is
slow; check the counts first.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from gpudb.db.models import (
    Extension, ExtensionCoverage, Device, DeviceExtension, DeviceLimits,
    DeviceCoreFeatures, DeviceCoreProperties,
    DeviceExtendedFeatures, DeviceExtendedProperties, ScrapeMeta,
)

logger = logging.getLogger(__name__)

# Tables written by the import, in dependency order
IMPORT_TABLES = [
    ("extensions", Extension),
    ("extension_coverage", ExtensionCoverage),
    ("devices", Device),
    ("device_extensions", DeviceExtension),
    ("device_limits", DeviceLimits),
    ("device_core_features", DeviceCoreFeatures),
    ("device_core_properties", DeviceCoreProperties),
    ("device_extended_features", DeviceExtendedFeatures),
    ("device_extended_properties", DeviceExtendedProperties),
    ("scrape_meta", ScrapeMeta),
]


async def get_table_counts(engine: AsyncEngine) -> dict[str, int]:
    """Row count of every import table."""
    counts = {}
    async with engine.connect() as conn:
        for table_name, model in IMPORT_TABLES:
            result = await conn.execute(select(func.count()).select_from(model))
            counts[table_name] = result.scalar_one()
    return counts


async def get_database_status(engine: AsyncEngine) -> dict:
    """Get table counts and the latest scrape metadata.

    Returns:
        dict with keys:
        - table_counts: dict - Row counts for every import table
        - device_count: int - Number of devices
        - needs_import: bool - True if there are no devices
        - last_scrape: dict | None - Latest scrape_meta row
        - error: str - Only present if the database could not be read
    """
    try:
        counts = await get_table_counts(engine)

        async with engine.connect() as conn:
            result = await conn.execute(
                select(ScrapeMeta).order_by(ScrapeMeta.id.desc()).limit(1)
            )
            row = result.mappings().first()

        return {
            "table_counts": counts,
            "device_count": counts["devices"],
            "needs_import": counts["devices"] == 0,
            "last_scrape": dict(row) if row else None,
        }

    except Exception as e:
        logger.error(f"Failed to get database status: {e}")
        return {
            "table_counts": {},
            "device_count": 0,
            "needs_import": True,
            "last_scrape": None,
            "error": str(e),
        }


def print_status_report(status: dict) -> None:
    """Print a formatted status report to console."""
    print("=" * 60)
    print("DATABASE STATUS REPORT")
    print("=" * 60)
    print()

    if status.get("error"):
        print(f"ERROR: {status['error']}")
        return

    last_scrape = status.get("last_scrape")
    if last_scrape:
        print(f"Last Scrape:    {last_scrape['scrape_date']}")
        print(f"Reports:        {last_scrape['total_reports']}")
        print(f"Source:         {last_scrape['source']}")
    else:
        print("Last Scrape:    Never")
    print()

    print("Table Counts:")
    for table, count in status["table_counts"].items():
        print(f"  {table:28} {count:>10,}")

    print()
    print("=" * 60)

    if status["needs_import"]:
        print("ACTION NEEDED: No devices imported yet. Run: gpudb-import")
    else:
        print("STATUS: Database is populated.")

    print("=" * 60)
