#!/usr/bin/env python3
"""
Repair guest pass limit data in the local document store.

1. monthlyLimit values saved as strings ("10") are converted to integers.
2. Legacy per-user limits equal to the community default are removed so those
   users follow the default again (--remove-all removes every user limit).

Usage:
    python scripts/fix_guest_pass_limits.py COMMUNITY_ID [--dry-run] [--remove-all] [--data-file FILE]
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import get_paths_config
from guestpass.errors import GuestPassError
from guestpass.logging_config import setup_logging, stop_logging
from guestpass.quota.maintenance import fix_guest_pass_limits
from guestpass.remote import JsonFileDocumentStore


def default_data_file() -> Path:
    paths_config = get_paths_config()
    return Path(paths_config.data_dir) / paths_config.document_store_file


def main():
    parser = argparse.ArgumentParser(
        description="Fix string monthly limits and remove redundant user limits"
    )
    parser.add_argument("community_id", help="Community to repair")
    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Show what would be done without making changes"
    )
    parser.add_argument(
        "--remove-all",
        action="store_true",
        help="Remove every legacy user limit, not only those equal to the default"
    )
    parser.add_argument(
        "--keep-defaults",
        action="store_true",
        help="Only fix string values; keep user limits equal to the default"
    )
    parser.add_argument(
        "--data-file",
        type=Path,
        default=None,
        help="Path to the document store JSON file (default: from config)"
    )

    args = parser.parse_args()
    data_file = args.data_file or default_data_file()

    setup_logging()
    print("🚀 Guest Pass Limits Fix")
    print("=" * 50)
    print(f"Community: {args.community_id}")
    print(f"Data file: {data_file}")
    print(f"Dry run: {args.dry_run}")
    print()

    store = JsonFileDocumentStore(data_file)
    try:
        result = asyncio.run(fix_guest_pass_limits(
            store,
            args.community_id,
            remove_defaults=not args.keep_defaults,
            remove_all=args.remove_all,
            dry_run=args.dry_run,
        ))
    except GuestPassError as e:
        print(f"❌ Error: {e.message}")
        sys.exit(1)
    finally:
        stop_logging()

    fixed = result["string_limits"]
    print("📊 Summary:")
    print(f"   - Fixed string limits: {fixed['fixed']}")
    print(f"   - Already correct: {fixed['already_correct']}")
    print(f"   - Invalid values: {fixed['errors']}")
    if result["user_limits"] is not None:
        print(f"   - Removed user limits: {result['user_limits']['removed']}")
        print(f"   - Kept custom user limits: {result['user_limits']['kept']}")

    if args.dry_run:
        print("\n🔍 DRY RUN - No changes made")

    if fixed["errors"]:
        sys.exit(1)

    print("\n✅ Fix complete!")


if __name__ == "__main__":
    main()
