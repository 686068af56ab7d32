"""
Import device reports from device_reports.json.

Each streamed batch goes through three steps:

1. Transform every report into seven row sets (device, extension links,
   limits, core features, core properties, extended features, extended
   properties). A report that fails to transform is counted and skipped.
2. Insert the devices with ON CONFLICT (report_id) DO NOTHING, returning
   (id, report_id) for the rows actually inserted. Reports already in the
   database from an earlier run return nothing and are not touched again.
3. Re-key the dependent rows from report_id to the new devices.id and
   insert each row set with DO NOTHING. A failing row set is recorded in
   its InsertResult and skipped; the other row sets still go in.

Nothing is retried. A failed device insert drops that batch's dependent
rows and counts the whole batch as errors.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from gpudb.db.models import (
    Device, DeviceExtension, DeviceLimits,
    DeviceCoreFeatures, DeviceCoreProperties,
    DeviceExtendedFeatures, DeviceExtendedProperties,
)
from gpudb.ingestion.bulk import ConflictPolicy, InsertResult, bulk_insert, insert_row_set
from gpudb.ingestion.sanitize import classify_platform, sanitize_text
from gpudb.ingestion.streaming import StreamStats, stream_json_array

logger = logging.getLogger(__name__)

DEVICE_REPORTS_FILE = "device_reports.json"

CORE_VERSIONS = ("core11", "core12", "core13", "core14")

# Dependent tables in insert order, with the unique key used for DO NOTHING
DEPENDENT_TABLES = [
    ("device_extensions", DeviceExtension, ["device_id", "extension_id"]),
    ("device_limits", DeviceLimits, ["device_id"]),
    ("device_core_features", DeviceCoreFeatures, ["device_id", "core_version"]),
    ("device_core_properties", DeviceCoreProperties, ["device_id", "core_version"]),
    ("device_extended_features", DeviceExtendedFeatures, ["device_id", "extension_name", "feature_name"]),
    ("device_extended_properties", DeviceExtendedProperties, ["device_id", "extension_name", "property_name"]),
]


@dataclass
class ReportRows:
    """Rows derived from one or more reports, keyed by report_id until the devices exist."""

    devices: list[dict] = field(default_factory=list)
    device_extensions: list[dict] = field(default_factory=list)
    device_limits: list[dict] = field(default_factory=list)
    device_core_features: list[dict] = field(default_factory=list)
    device_core_properties: list[dict] = field(default_factory=list)
    device_extended_features: list[dict] = field(default_factory=list)
    device_extended_properties: list[dict] = field(default_factory=list)

    def extend(self, other: "ReportRows"):
        self.devices.extend(other.devices)
        for name, _, _ in DEPENDENT_TABLES:
            getattr(self, name).extend(getattr(other, name))


@dataclass
class DeviceImportStats:
    """Running totals for the device import."""

    imported: int = 0
    errors: int = 0
    processed: int = 0
    batches: int = 0
    row_sets: dict[str, InsertResult] = field(
        default_factory=lambda: {name: InsertResult() for name, _, _ in DEPENDENT_TABLES}
    )


def build_report_rows(report: dict, extension_map: dict[str, int]) -> ReportRows:
    """Derive all row sets for one report.

    Extension links whose name is not in ``extension_map`` are dropped.
    Raises on malformed reports (missing _report_id, properties or
    environment); the caller counts and skips those.
    """
    report_id = report["_report_id"]
    props = report["properties"]
    env = report["environment"]
    rows = ReportRows()

    rows.devices.append({
        "report_id": report_id,
        "device_name": sanitize_text(props.get("deviceName")),
        "vendor_id": props.get("vendorID"),
        "device_id": props.get("deviceID"),
        "device_type": sanitize_text(props.get("deviceTypeText")),
        "api_version": sanitize_text(props.get("apiVersionText")),
        "api_version_raw": props.get("apiVersion"),
        "driver_version": sanitize_text(props.get("driverVersionText")),
        "driver_version_raw": props.get("driverVersion"),
        "platform": classify_platform(env.get("ostype")),
        "os_name": sanitize_text(env.get("name")),
        "os_version": sanitize_text(env.get("version")),
        "architecture": sanitize_text(env.get("architecture")),
        "submitter": sanitize_text(env.get("submitter")),
    })

    for ext in report.get("extensions") or []:
        extension_id = extension_map.get(ext["extensionName"])
        if extension_id is not None:
            rows.device_extensions.append({
                "report_id": report_id,
                "extension_id": extension_id,
                "spec_version": ext.get("specVersion"),
            })

    rows.device_limits.append({
        "report_id": report_id,
        "limits": props.get("limits") or {},
        "sparse_properties": props.get("sparseProperties") or {},
        "subgroup_properties": props.get("subgroupProperties") or {},
    })

    for core_version in CORE_VERSIONS:
        core = report.get(core_version) or {}
        if core.get("features"):
            rows.device_core_features.append({
                "report_id": report_id,
                "core_version": core_version,
                "features": core["features"],
            })
        if core.get("properties"):
            rows.device_core_properties.append({
                "report_id": report_id,
                "core_version": core_version,
                "properties": core["properties"],
            })

    extended = report.get("extended") or {}
    for feature in extended.get("devicefeatures2") or []:
        rows.device_extended_features.append({
            "report_id": report_id,
            "extension_name": feature["extension"],
            "feature_name": feature["name"],
            "supported": bool(feature["supported"]),
        })
    for prop in extended.get("deviceproperties2") or []:
        rows.device_extended_properties.append({
            "report_id": report_id,
            "extension_name": prop["extension"],
            "property_name": prop["name"],
            "value": prop.get("value"),
        })

    return rows


def rekey_rows(rows: list[dict], device_ids: dict[int, int]) -> list[dict]:
    """Swap report_id for device_id, dropping rows whose device was not inserted."""
    rekeyed = []
    for row in rows:
        device_id = device_ids.get(row["report_id"])
        if device_id is None:
            continue
        values = {k: v for k, v in row.items() if k != "report_id"}
        values["device_id"] = device_id
        rekeyed.append(values)
    return rekeyed


class DeviceImporter:
    """Turns batches of device reports into rows; one instance per import run."""

    def __init__(
        self,
        engine: AsyncEngine,
        extension_map: dict[str, int],
        insert_batch_size: int = 100,
    ):
        self.engine = engine
        self.extension_map = extension_map
        self.insert_batch_size = insert_batch_size
        self.stats = DeviceImportStats()

    def transform(self, batch: list[dict]) -> ReportRows:
        """Build row sets for a batch, skipping reports that fail to transform."""
        rows = ReportRows()
        for report in batch:
            try:
                rows.extend(build_report_rows(report, self.extension_map))
            except Exception as e:
                self.stats.errors += 1
                report_id = report.get("_report_id") if isinstance(report, dict) else None
                logger.debug(f"Error processing report {report_id}: {e!r}")
        return rows

    async def insert_devices(self, conn, devices: list[dict]) -> dict[int, int]:
        """Insert devices and map report_id -> devices.id for the new rows."""
        async with conn.begin():
            _, returned = await bulk_insert(
                conn, Device, devices,
                conflict=ConflictPolicy.IGNORE,
                index_elements=["report_id"],
                returning=[Device.id, Device.report_id],
            )
        return {row.report_id: row.id for row in returned if row.report_id is not None}

    async def process_batch(self, batch: list[dict]):
        """Import one streamed batch of reports."""
        rows = self.transform(batch)
        if not rows.devices:
            return

        async with self.engine.connect() as conn:
            try:
                device_ids = await self.insert_devices(conn, rows.devices)
            except Exception as e:
                logger.error(f"Device insert error: {str(e)[:100]}")
                self.stats.errors += len(rows.devices)
                return

            self.stats.imported += len(device_ids)
            if not device_ids:
                return

            for name, model, index_elements in DEPENDENT_TABLES:
                values = rekey_rows(getattr(rows, name), device_ids)
                if not values:
                    continue
                outcome = await insert_row_set(
                    conn, model, values, self.insert_batch_size, index_elements=index_elements
                )
                self.stats.row_sets[name].merge(outcome)

    def log_summary(self):
        for name, outcome in self.stats.row_sets.items():
            line = f"  {name:28} {outcome.inserted:>10,} inserted / {outcome.attempted:>10,} attempted"
            if outcome.failed:
                logger.warning(f"{line}, {outcome.failed:,} failed (first error: {outcome.first_error})")
            else:
                logger.info(line)


async def import_devices(
    engine: AsyncEngine,
    extension_map: dict[str, int],
    data_dir: str | Path,
    device_batch_size: int = 100,
    insert_batch_size: int = 100,
    concurrency: int = 3,
) -> DeviceImportStats:
    """Stream device_reports.json into the device tables.

    Args:
        engine: Database engine
        extension_map: Extension name -> id from the reference import
        data_dir: Directory holding device_reports.json
        device_batch_size: Reports per streamed batch
        insert_batch_size: Rows per INSERT for dependent tables
        concurrency: Batches in flight at once

    Returns:
        DeviceImportStats with imported/error/processed totals and
        per-table insert results
    """
    logger.info("=== Importing Devices ===")

    importer = DeviceImporter(engine, extension_map, insert_batch_size=insert_batch_size)
    stream_stats: StreamStats = await stream_json_array(
        Path(data_dir) / DEVICE_REPORTS_FILE,
        device_batch_size,
        concurrency,
        importer.process_batch,
    )

    stats = importer.stats
    stats.processed = stream_stats.items
    stats.batches = stream_stats.batches

    importer.log_summary()
    logger.info(
        f"Devices import complete! {stats.imported:,} imported, "
        f"{stats.errors:,} errors ({stats.processed:,} processed)"
    )
    return stats
