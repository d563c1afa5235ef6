#!/usr/bin/env python3
"""
Clear all data.

Deletes every library record and every object in the storage bucket.
Irreversible; refuses to run without --yes.

Usage:
    python scripts/clear_all_data.py --yes
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
_project_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_project_dir, ".env"))

import structlog

from config import get_supabase_client, LIBRARIES_TABLE, settings
from services.storage_service import get_storage_service

logger = structlog.get_logger(__name__)


def clear_libraries() -> int:
    """Delete every row of the libraries table. Returns rows deleted."""
    db = get_supabase_client()
    result = db.table(LIBRARIES_TABLE).delete().gte("timestamp", 0).execute()
    return len(result.data or [])


def clear_storage() -> int:
    """Delete every object in the bucket. Returns objects deleted."""
    storage = get_storage_service()
    paths = storage.list_paths()
    if not paths:
        return 0
    return storage.remove_paths(paths)


def main():
    parser = argparse.ArgumentParser(description="Delete all libraries and stored files")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm deletion of all data"
    )
    args = parser.parse_args()

    if not args.yes:
        print(f"This deletes every library and every object in bucket '{settings.storage_bucket}'.")
        print("Re-run with --yes to confirm.")
        sys.exit(1)

    print("Clearing libraries table...")
    rows = clear_libraries()
    print(f"  deleted {rows} records")

    print("Clearing storage bucket...")
    objects = clear_storage()
    print(f"  deleted {objects} objects")

    logger.info("all_data_cleared", libraries=rows, objects=objects)


if __name__ == "__main__":
    main()
