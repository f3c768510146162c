#!/usr/bin/env python3
"""
Merge a snapshot file into the saved pages, keyed by URL.

Entries without a url or vector, or with wrongly typed fields, are skipped
and logged. A malformed snapshot never clears the store, even with --replace.
"""

import argparse
import sys
from pathlib import Path

# Load environment variables from .env file first
import dotenv
dotenv.load_dotenv()

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from twinmarks.core.config import ensure_db_directory, get_record_store
from twinmarks.core.errors import SnapshotFormatError


def main():
    parser = argparse.ArgumentParser(
        description="Import a JSON snapshot of saved pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s pages.json               # Merge pages.json into the store
  %(prog)s pages.json --replace     # Replace the stored pages

Existing pages with the same URL are overwritten by the snapshot entry.

Environment variables:
- DB_PATH=./data/twinmarks.db (database to import into)
        """
    )

    parser.add_argument(
        "snapshot_path",
        help="Snapshot file to read"
    )

    parser.add_argument(
        "--replace",
        action="store_true",
        help="Replace all stored pages once the snapshot has been validated"
    )

    args = parser.parse_args()

    path = Path(args.snapshot_path)
    if not path.exists():
        print(f"ERROR: Snapshot not found: {path}")
        return 1

    try:
        ensure_db_directory()
        store = get_record_store()
        data = path.read_bytes()
        imported = store.import_snapshot(data, replace=args.replace)
        print(f"Imported {imported} pages from {path}")
        return 0

    except SnapshotFormatError as e:
        print(f"ERROR: Invalid snapshot: {e}")
        return 1
    except OSError as e:
        print(f"ERROR: Import failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
