"""Verify guide ids are consistent across the guides table and both full-text indexes."""

import os
import sys

from dotenv import load_dotenv
from sqlalchemy import text

from faqvault.storage.database import GuideDatabase

load_dotenv()


def get_ids(db, table, column):
    """Retrieve all ids from one table."""
    with db.engine.connect() as conn:
        rows = conn.execute(text(f"SELECT {column} FROM {table}")).fetchall()
    return [row[0] for row in rows]


def main():
    """Compare guide ids between guides, guides_fts_meta and guides_fts_content."""
    db_path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("DB_PATH", "./data/gamefaqs.db")
    db = GuideDatabase(db_path)

    print(f"Reading guide ids from {db_path}...")
    guide_ids = set(get_ids(db, "guides", "id"))
    meta_rows = get_ids(db, "guides_fts_meta", "guide_id")
    content_rows = get_ids(db, "guides_fts_content", "guide_id")
    db.close()

    meta_ids = set(meta_rows)
    content_ids = set(content_rows)

    print(f"\n{'='*60}")
    print("Consistency Report:")
    print(f"{'='*60}")
    print(f"Guides: {len(guide_ids)}")
    print(f"Meta index rows: {len(meta_rows)}")
    print(f"Content index rows: {len(content_rows)}")

    problems = {
        "Guides missing from meta index": guide_ids - meta_ids,
        "Guides missing from content index": guide_ids - content_ids,
        "Orphaned meta index rows": meta_ids - guide_ids,
        "Orphaned content index rows": content_ids - guide_ids,
    }

    duplicates = len(meta_rows) - len(meta_ids) + len(content_rows) - len(content_ids)
    if duplicates:
        print(f"\nDuplicate index rows: {duplicates}")

    failed = duplicates > 0
    for label, ids in problems.items():
        if ids:
            failed = True
            print(f"\n{label}: {len(ids)} (first 10)")
            for guide_id in sorted(ids)[:10]:
                print(f"  - {guide_id}")

    if not failed:
        print("\nPASS: every guide has exactly one row in each index")
        return 0

    print("\nFAIL: index drift detected")
    return 1


if __name__ == "__main__":
    sys.exit(main())
