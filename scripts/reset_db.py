#!/usr/bin/env python3
"""Script to reset the chat database and the uploads directory.

Usage:
  python scripts/reset_db.py [--force] [--only {sqlite,uploads}]
"""

import argparse
import os
import sys
from pathlib import Path

# Add project root to sys.path so we can import modelhub packages
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from modelhub.core.blobs import BlobStore
from modelhub.core.database import ChatStore


def reset_sqlite(force: bool):
    """Drop and recreate tables, then reseed the built-in platforms."""
    print("🧊 Resetting SQLite database...")
    if not force:
        confirm = input("  This will delete all keys, endpoints and chat history. Continue? [y/N]: ")
        if confirm.lower() != 'y':
            print("  Skipping SQLite reset.")
            return

    store = ChatStore(os.environ.get("DATABASE_URL", "sqlite:///data/modelhub.sqlite"))
    store.reset()
    created = store.seed_platforms()
    print(f"  ✅ SQLite tables dropped and recreated ({created} platforms seeded).")


def reset_uploads(force: bool):
    """Delete every stored image blob."""
    blobs = BlobStore()
    files = [p for p in blobs.root.iterdir() if p.is_file()]
    print(f"🧊 Clearing uploads in {blobs.root} ({len(files)} files)...")

    if not force:
        confirm = input("  This will delete all uploaded and generated images. Continue? [y/N]: ")
        if confirm.lower() != 'y':
            print("  Skipping uploads reset.")
            return

    for path in files:
        path.unlink()
    print("  ✅ Uploads directory cleared.")


def main():
    parser = argparse.ArgumentParser(description="Reset modelhub datastores.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompts")
    parser.add_argument("--only", choices=["sqlite", "uploads"], help="Only reset specific datastore")
    args = parser.parse_args()

    # Load environment variables
    load_dotenv(project_root / ".env")

    print("\n⚠️ WARNING: Database Reset ⚠️\n")

    if args.only in ["sqlite", None]:
        reset_sqlite(args.force)
        print("")

    if args.only in ["uploads", None]:
        reset_uploads(args.force)
        print("")

    print("✅ Done!")


if __name__ == "__main__":
    main()
