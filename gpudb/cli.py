"""
Command-line entry point for the import.

Usage:
    DATABASE_URL=postgresql://... gpudb-import
    gpudb-import --data-dir public/data --concurrency 5
    gpudb-import --init-db          # create missing tables first
    gpudb-import --no-log-file      # console only

Exit status is 0 on success, 1 when DATABASE_URL is missing or the
import fails.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from gpudb.config import Settings, get_settings
from gpudb.db.database import create_engine, init_db
from gpudb.ingestion.importer import run_full_import

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("gpudb.import")


def setup_logging():
    """Send all loggers to the console."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # Clear any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)


def add_file_logging(log_dir: str) -> Path:
    """Also log to a timestamped file in ``log_dir``."""
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)

    log_file = path / f"import_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import GPU capability report dumps into PostgreSQL"
    )
    parser.add_argument(
        "--data-dir",
        help="Directory with extensions.json, extensions_by_platform.json, summary.json and device_reports.json"
    )
    parser.add_argument("--device-batch-size", type=int, help="Device reports per streamed batch")
    parser.add_argument("--insert-batch-size", type=int, help="Rows per INSERT statement")
    parser.add_argument("--concurrency", type=int, help="Batches in flight at once")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before importing"
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable file logging (console only)"
    )
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with command-line values taking precedence."""
    overrides = {
        "data_dir": args.data_dir,
        "device_batch_size": args.device_batch_size,
        "insert_batch_size": args.insert_batch_size,
        "import_concurrency": args.concurrency,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if not overrides:
        return settings
    # Re-validate so bad values (e.g. --concurrency 0) are rejected
    return Settings.model_validate({**settings.model_dump(), **overrides})


async def run(settings: Settings, init_schema: bool = False):
    """Run the import with an engine owned by this call."""
    engine = create_engine(settings)
    try:
        if init_schema:
            logger.info("Initializing database schema...")
            await init_db(engine)
        return await run_full_import(engine, settings)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        settings = apply_overrides(get_settings(), args)
    except ValidationError as e:
        missing = any(err["type"] == "missing" for err in e.errors())
        if missing:
            logger.error("Error: DATABASE_URL or VITE_DATABASE_URL must be set")
        else:
            logger.error(f"Invalid configuration: {e}")
        return 1

    if not args.no_log_file:
        log_file = add_file_logging(settings.log_dir)
        logger.info(f"Logging to: {log_file}")

    logger.info("=" * 60)
    logger.info("GPU report import")
    logger.info(f"  Database: {settings.database_url[:30]}...")
    logger.info(f"  Data dir: {settings.data_dir}")
    logger.info(
        f"  Config: DEVICE_BATCH={settings.device_batch_size}, "
        f"INSERT_BATCH={settings.insert_batch_size}, CONCURRENCY={settings.import_concurrency}"
    )
    logger.info("=" * 60)

    try:
        asyncio.run(run(settings, init_schema=args.init_db))
    except Exception as e:
        logger.exception(f"Import failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
