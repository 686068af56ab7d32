#!/usr/bin/env python
"""
Import the GPU report dump into the database.

Usage:
    DATABASE_URL=<postgres-url> python scripts/import_data.py
    python scripts/import_data.py --data-dir public/data --init-db
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gpudb.cli import main


if __name__ == "__main__":
    sys.exit(main())
