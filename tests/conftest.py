import json

import pytest
import pytest_asyncio

from gpudb.config import Settings
from gpudb.db.database import create_engine, init_db

SUMMARY = {
    "scrape_date": "2025-06-01T12:00:00Z",
    "total_extensions": 2,
    "total_reports": 1000,
    "platforms": ["windows", "linux"],
    "source": "gpuinfo.org",
    "license": "CC BY 4.0",
}

EXTENSIONS = [
    {
        "name": "VK_KHR_swapchain",
        "coverage": "<span>95.0</span>",
        "coverage_unsupported": "<span>5.0</span>",
        "features_url": None,
        "properties_url": "x",
        "date": "2020-01-01",
    },
    {
        "name": "VK_EXT_transform_feedback",
        "coverage": "<span>40.25</span>",
        "coverage_unsupported": "<span>59.75</span>",
        "features_url": "f",
        "properties_url": "p",
        "date": "",
    },
]

EXTENSIONS_BY_PLATFORM = {
    "windows": [
        {"name": "VK_KHR_swapchain", "coverage": "<span>99.1</span>", "coverage_unsupported": ""},
        {"name": "VK_NOT_IN_MASTER_LIST", "coverage": "<span>1.0</span>", "coverage_unsupported": ""},
    ],
    "linux": [
        {"name": "VK_EXT_transform_feedback", "coverage": "<span>70.0</span>", "coverage_unsupported": ""},
    ],
}


def make_report(report_id, **overrides) -> dict:
    """A small but complete device report."""
    report = {
        "_report_id": report_id,
        "properties": {
            "deviceName": f"  GPU {report_id}\x00 ",
            "deviceID": 0x2684,
            "vendorID": 0x10DE,
            "deviceType": 2,
            "deviceTypeText": "DISCRETE_GPU",
            "apiVersion": 4206910,
            "apiVersionText": "1.3.318",
            "driverVersion": 2374500352,
            "driverVersionText": "566.14.0.0",
            "limits": {"maxImageDimension2D": 32768, "pointSizeRange": [1.0, 2047.9375]},
            "sparseProperties": {"residencyStandard2DBlockShape": True},
            "subgroupProperties": {"subgroupSize": 32},
        },
        "environment": {
            "name": "Windows",
            "ostype": 0,
            "version": "10.0.22631",
            "architecture": "x86_64",
            "submitter": "someone",
        },
        "extensions": [
            {"extensionName": "VK_KHR_swapchain", "specVersion": 70},
            {"extensionName": "VK_EXT_transform_feedback", "specVersion": 1},
            {"extensionName": "VK_UNKNOWN_vendor_thing", "specVersion": 3},
        ],
        "core11": {"features": {"multiview": 1}, "properties": {"deviceLUIDValid": True}},
        "core12": {"features": {"timelineSemaphore": 1}, "properties": {"driverID": 4}},
        "extended": {
            "devicefeatures2": [
                {"extension": "VK_EXT_transform_feedback", "name": "transformFeedback", "supported": True},
                {"extension": "VK_EXT_transform_feedback", "name": "geometryStreams", "supported": False},
            ],
            "deviceproperties2": [
                {"extension": "VK_EXT_transform_feedback", "name": "maxTransformFeedbackStreams", "value": 4},
                {"extension": "VK_KHR_driver_properties", "name": "driverName", "value": "NVIDIA"},
            ],
        },
    }
    report.update(overrides)
    return report


def write_dataset(
    data_dir,
    extensions=None,
    by_platform=None,
    summary=None,
    reports=None,
):
    """Write the four input files into data_dir."""
    data_dir.mkdir(parents=True, exist_ok=True)
    files = {
        "extensions.json": EXTENSIONS if extensions is None else extensions,
        "extensions_by_platform.json": EXTENSIONS_BY_PLATFORM if by_platform is None else by_platform,
        "summary.json": SUMMARY if summary is None else summary,
        "device_reports.json": [make_report(1), make_report(2)] if reports is None else reports,
    }
    for name, content in files.items():
        (data_dir / name).write_text(json.dumps(content), encoding="utf-8")
    return data_dir


@pytest.fixture
def data_dir(tmp_path):
    return write_dataset(tmp_path / "data")


@pytest.fixture
def settings(tmp_path, data_dir):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'gpudb.db'}",
        data_dir=str(data_dir),
        device_batch_size=2,
        insert_batch_size=3,
        import_concurrency=1,
        _env_file=None,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()
