from datetime import date, datetime

import pytest
from sqlalchemy import select

from conftest import write_dataset
from gpudb.db.inspector import get_table_counts
from gpudb.db.models import Extension, ExtensionCoverage, ScrapeMeta
from gpudb.ingestion.reference_importer import (
    build_extension_rows,
    device_count_for,
    import_extensions,
)


async def coverage_rows(engine):
    async with engine.connect() as conn:
        result = await conn.execute(
            select(Extension.name, ExtensionCoverage)
            .join(ExtensionCoverage, ExtensionCoverage.extension_id == Extension.id)
            .order_by(ExtensionCoverage.platform, Extension.name)
        )
        return [dict(row) for row in result.mappings()]


@pytest.mark.asyncio
async def test_single_extension_scenario(engine, tmp_path):
    data_dir = write_dataset(
        tmp_path / "single",
        extensions=[{
            "name": "VK_KHR_swapchain",
            "coverage": "<span>95.0</span>",
            "coverage_unsupported": "",
            "date": "2020-01-01",
            "features_url": None,
            "properties_url": "x",
        }],
        by_platform={},
        summary={
            "scrape_date": "2025-06-01T00:00:00",
            "total_extensions": 1,
            "total_reports": 1000,
            "platforms": [],
            "source": "test",
            "license": "none",
        },
    )

    extension_map = await import_extensions(engine, data_dir, batch_size=10, concurrency=3)

    async with engine.connect() as conn:
        [ext] = (await conn.execute(select(Extension))).mappings().all()
    assert extension_map == {"VK_KHR_swapchain": ext["id"]}
    assert ext["name"] == "VK_KHR_swapchain"
    assert ext["date_added"] == date(2020, 1, 1)
    assert ext["has_features"] is False
    assert ext["has_properties"] is True

    [coverage] = await coverage_rows(engine)
    assert coverage["platform"] == "all"
    assert float(coverage["coverage_percent"]) == 95.0
    assert coverage["device_count"] == 950
    assert coverage["total_devices"] == 1000


@pytest.mark.asyncio
async def test_platform_coverage_has_zero_device_counts(engine, data_dir):
    extension_map = await import_extensions(engine, data_dir, batch_size=1, concurrency=1)

    assert set(extension_map) == {"VK_KHR_swapchain", "VK_EXT_transform_feedback"}

    rows = await coverage_rows(engine)
    by_key = {(r["platform"], r["name"]): r for r in rows}
    # Extensions missing from the master list get no coverage rows
    assert set(by_key) == {
        ("all", "VK_EXT_transform_feedback"),
        ("all", "VK_KHR_swapchain"),
        ("linux", "VK_EXT_transform_feedback"),
        ("windows", "VK_KHR_swapchain"),
    }

    windows = by_key[("windows", "VK_KHR_swapchain")]
    assert float(windows["coverage_percent"]) == 99.1
    # Known gap: per-platform device counts are not computed
    assert windows["device_count"] == 0
    assert windows["total_devices"] == 0

    all_feedback = by_key[("all", "VK_EXT_transform_feedback")]
    assert float(all_feedback["coverage_percent"]) == 40.25
    assert all_feedback["device_count"] == 403  # 402.5 rounds up


@pytest.mark.asyncio
async def test_rerun_leaves_reference_counts_unchanged(engine, data_dir):
    first_map = await import_extensions(engine, data_dir, batch_size=1, concurrency=1)
    first = await get_table_counts(engine)

    # Conflicting names still come back from the upsert
    second_map = await import_extensions(engine, data_dir, batch_size=1, concurrency=1)
    second = await get_table_counts(engine)

    assert second_map == first_map
    assert second["extensions"] == first["extensions"] == 2
    assert second["extension_coverage"] == first["extension_coverage"] == 4
    # scrape_meta is an audit trail: one row per run
    assert first["scrape_meta"] == 1
    assert second["scrape_meta"] == 2


@pytest.mark.asyncio
async def test_scrape_meta_row(engine, data_dir):
    await import_extensions(engine, data_dir)

    async with engine.connect() as conn:
        [meta] = (await conn.execute(select(ScrapeMeta))).mappings().all()
    # 2025-06-01T12:00:00Z stored as naive UTC
    assert meta["scrape_date"] == datetime(2025, 6, 1, 12, 0, 0)
    assert meta["total_reports"] == 1000
    assert meta["source"] == "gpuinfo.org"
    assert meta["license"] == "CC BY 4.0"


@pytest.mark.asyncio
async def test_missing_reference_file_aborts(engine, tmp_path):
    with pytest.raises(FileNotFoundError):
        await import_extensions(engine, tmp_path / "nowhere")


def test_build_extension_rows_last_duplicate_wins():
    rows = build_extension_rows([
        {"name": "VK_A", "features_url": None, "properties_url": None, "date": "2019-01-01"},
        {"name": "VK_B", "features_url": "f", "properties_url": None, "date": "not a date"},
        {"name": "VK_A", "features_url": "f", "properties_url": "p", "date": "2020-02-02"},
    ])

    assert rows == [
        {"name": "VK_A", "date_added": date(2020, 2, 2), "has_features": True, "has_properties": True},
        {"name": "VK_B", "date_added": None, "has_features": True, "has_properties": False},
    ]


def test_device_count_for_rounds_half_up():
    assert device_count_for(95.0, 1000) == 950
    assert device_count_for(40.25, 1000) == 403
    assert device_count_for(0, 1000) == 0
    assert device_count_for(50.0, 0) == 0
