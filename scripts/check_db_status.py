#!/usr/bin/env python
"""Quick CLI tool to check database status.

Run this to see whether an import is needed and what the last one loaded.

Usage:
    python scripts/check_db_status.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gpudb.config import get_settings
from gpudb.db.database import create_engine
from gpudb.db.inspector import get_database_status, print_status_report


async def main():
    """Check and print database status."""
    engine = create_engine(get_settings())
    try:
        status = await get_database_status(engine)
    finally:
        await engine.dispose()

    print_status_report(status)

    # Return exit code based on status
    if status.get("error"):
        return 1
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
