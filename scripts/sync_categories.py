#!/usr/bin/env python3
"""
Rebuild the category taxonomy from the current collection.
"""

import argparse
import sys
from pathlib import Path

# Load environment variables from .env file first
import dotenv
dotenv.load_dotenv()

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from twinmarks.agents.categories import CategorySync
from twinmarks.agents.labeler import LabelAssigner
from twinmarks.core.config import CATEGORY_COUNT, GENERATION_MODEL, get_gateway, get_record_store, get_settings_store
from twinmarks.core.errors import TwinmarksError, describe_error


def main():
    parser = argparse.ArgumentParser(
        description="Cluster all saved pages into broad categories and store the taxonomy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Sync with CATEGORY_COUNT categories
  %(prog)s --count 12               # Sync with 12 categories

Environment variables:
- OLLAMA_HOST=http://localhost:11434
- OLLAMA_API_KEY=... (required for remote hosts)
- GENERATION_MODEL=llama3.2
- CATEGORY_COUNT=20
        """
    )

    parser.add_argument(
        "--count", "-k",
        type=int,
        default=CATEGORY_COUNT,
        help=f"Number of categories (default: {CATEGORY_COUNT})"
    )

    parser.add_argument(
        "--model", "-m",
        default=GENERATION_MODEL,
        help=f"Generation model used to name categories (default: {GENERATION_MODEL})"
    )

    args = parser.parse_args()

    if args.count < 2:
        parser.error("--count must be at least 2")

    try:
        gateway = get_gateway()
        gateway.check_credentials()
        sync = CategorySync(get_record_store(), get_settings_store(), LabelAssigner(gateway, model=args.model))
        stats = sync.sync(args.count)

        if not stats:
            print("No vectorized pages to categorize")
            return 0

        print(f"Synced {len(stats)} categories:")
        for category in stats:
            print(f"  {category.count:5d}  {category.name}")
        return 0

    except TwinmarksError as e:
        print(f"ERROR: {describe_error(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
