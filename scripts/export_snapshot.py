#!/usr/bin/env python3
"""
Export every saved page to a snapshot file (single-line JSON array).
"""

import argparse
import sys
from pathlib import Path

# Load environment variables from .env file first
import dotenv
dotenv.load_dotenv()

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from twinmarks.core.config import get_record_store


def main():
    parser = argparse.ArgumentParser(
        description="Export saved pages to a JSON snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s pages.json               # Write snapshot to pages.json
  %(prog)s -                        # Write snapshot to stdout

Environment variables:
- DB_PATH=./data/twinmarks.db (database to export)
        """
    )

    parser.add_argument(
        "output_path",
        help="Snapshot file to write, or - for stdout"
    )

    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite an existing snapshot file"
    )

    args = parser.parse_args()

    if args.output_path != "-" and Path(args.output_path).exists() and not args.force:
        print(f"ERROR: {args.output_path} already exists (use --force to overwrite)")
        return 1

    try:
        store = get_record_store()
        snapshot = store.export_snapshot()

        if args.output_path == "-":
            sys.stdout.write(snapshot + "\n")
        else:
            Path(args.output_path).write_text(snapshot, encoding="utf-8")
            print(f"Exported {store.count()} pages to {args.output_path}")
        return 0

    except OSError as e:
        print(f"ERROR: Export failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
