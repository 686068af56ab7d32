"""
SQLAlchemy ORM models for the GPU capability database.

============================================================================
TABLE OVERVIEW
============================================================================
Reference data (small, upserted every run):
- Extension: one row per extension name
- ExtensionCoverage: coverage per (extension, platform), platform "all"
  plus windows/linux/android/macos/ios
- ScrapeMeta: one append-only row per import run

Device data (streamed from device_reports.json):
- Device: one row per report, keyed by the natural report_id
- DeviceExtension: which extensions a device implements, at which version
- DeviceLimits: limits / sparse / subgroup property blobs, one per device
- DeviceCoreFeatures / DeviceCoreProperties: core11..core14 blobs
- DeviceExtendedFeatures / DeviceExtendedProperties: per-extension
  feature flags and property values, keyed by extension NAME (these
  blocks reference extensions missing from the master list)

Blob columns are stored as-is; their shape varies by driver and API
version, so nothing here validates them.
============================================================================
"""

from sqlalchemy import (
    JSON, BigInteger, Boolean, Column, Date, DateTime, ForeignKey, Index,
    Integer, Numeric, Text, UniqueConstraint, func,
)
from sqlalchemy.dialects.postgresql import JSONB

from gpudb.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONBlob = JSON().with_variant(JSONB(), "postgresql")


# ============ Extensions ============

class Extension(Base):
    """An extension from the master extension list."""

    __tablename__ = "extensions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    date_added = Column(Date)
    has_features = Column(Boolean, default=False)
    has_properties = Column(Boolean, default=False)

    __table_args__ = (
        Index("idx_extensions_name", "name"),
    )


class ExtensionCoverage(Base):
    """Precomputed coverage of an extension on one platform."""

    __tablename__ = "extension_coverage"

    id = Column(Integer, primary_key=True, autoincrement=True)
    extension_id = Column(Integer, ForeignKey("extensions.id", ondelete="CASCADE"), nullable=False)
    platform = Column(Text, nullable=False)  # 'all', 'windows', 'linux', 'android', 'macos', 'ios'
    coverage_percent = Column(Numeric(5, 2), nullable=False)
    device_count = Column(Integer, default=0)
    total_devices = Column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("extension_id", "platform", name="uq_extension_platform"),
        Index("idx_coverage_platform", "platform"),
        Index("idx_coverage_extension", "extension_id"),
    )


# ============ Devices ============

class Device(Base):
    """One submitted device report."""

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(Integer, unique=True)
    device_name = Column(Text, nullable=False)
    vendor_id = Column(Integer)
    device_id = Column(BigInteger)
    device_type = Column(Text)  # 'INTEGRATED_GPU', 'DISCRETE_GPU', 'VIRTUAL_GPU', 'CPU'
    api_version = Column(Text)  # e.g. '1.4.318'
    api_version_raw = Column(Integer)
    driver_version = Column(Text)
    driver_version_raw = Column(BigInteger)
    platform = Column(Text, nullable=False)
    os_name = Column(Text)
    os_version = Column(Text)
    architecture = Column(Text)
    submitter = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_devices_platform", "platform"),
        Index("idx_devices_vendor", "vendor_id"),
        Index("idx_devices_name", "device_name"),
        Index("idx_devices_report", "report_id"),
    )


class DeviceExtension(Base):
    """Device X implements extension Y at spec version Z."""

    __tablename__ = "device_extensions"

    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), primary_key=True)
    extension_id = Column(Integer, ForeignKey("extensions.id", ondelete="CASCADE"), primary_key=True)
    spec_version = Column(Integer)

    __table_args__ = (
        Index("idx_device_ext_device", "device_id"),
        Index("idx_device_ext_extension", "extension_id"),
    )


class DeviceLimits(Base):
    """Limits and sparse/subgroup properties of a device."""

    __tablename__ = "device_limits"

    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), primary_key=True)
    limits = Column(JSONBlob, nullable=False)
    sparse_properties = Column(JSONBlob)
    subgroup_properties = Column(JSONBlob)


class DeviceCoreFeatures(Base):
    """Core features block (core11..core14) of a device."""

    __tablename__ = "device_core_features"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    core_version = Column(Text, nullable=False)
    features = Column(JSONBlob, nullable=False)  # {multiview: 1, shaderDrawParameters: 1, ...}

    __table_args__ = (
        UniqueConstraint("device_id", "core_version", name="uq_device_core_version"),
        Index("idx_core_features_device", "device_id"),
    )


class DeviceCoreProperties(Base):
    """Core properties block (core11..core14) of a device."""

    __tablename__ = "device_core_properties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    core_version = Column(Text, nullable=False)
    properties = Column(JSONBlob, nullable=False)

    __table_args__ = (
        UniqueConstraint("device_id", "core_version", name="uq_device_core_props_version"),
        Index("idx_core_props_device", "device_id"),
    )


class DeviceExtendedFeatures(Base):
    """A single extension feature flag of a device."""

    __tablename__ = "device_extended_features"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    extension_name = Column(Text, nullable=False)
    feature_name = Column(Text, nullable=False)
    supported = Column(Boolean, nullable=False)

    __table_args__ = (
        UniqueConstraint("device_id", "extension_name", "feature_name", name="uq_device_ext_feature"),
        Index("idx_ext_features_device", "device_id"),
        Index("idx_ext_features_extension", "extension_name"),
    )


class DeviceExtendedProperties(Base):
    """A single extension property value of a device."""

    __tablename__ = "device_extended_properties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    extension_name = Column(Text, nullable=False)
    property_name = Column(Text, nullable=False)
    value = Column(JSONBlob)  # string, number, boolean, array or object

    __table_args__ = (
        UniqueConstraint("device_id", "extension_name", "property_name", name="uq_device_ext_prop"),
        Index("idx_ext_props_device", "device_id"),
        Index("idx_ext_props_extension", "extension_name"),
    )


# ============ Metadata ============

class ScrapeMeta(Base):
    """Audit row written once per import run."""

    __tablename__ = "scrape_meta"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scrape_date = Column(DateTime, nullable=False)
    total_extensions = Column(Integer)
    total_reports = Column(Integer)
    source = Column(Text)
    license = Column(Text)
