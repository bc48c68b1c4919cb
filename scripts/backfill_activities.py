"""
Backfill script: project community_activities for source rows that have none.

This script:
1. Finds reflections, quiz attempts, AI chats, daily notes, sent revenue/daily-note
   messages and completed enrollments with no matching activity
2. Projects each one exactly as the live write path would
3. Leaves already-projected rows alone, so it is safe to re-run
4. Removes activities whose source row was deleted underneath them
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from learnfeed.db.base import SessionLocal
import learnfeed.main  # noqa: F401  (registers every model and creates missing tables)
from learnfeed.activities.projection import backfill_activities
from learnfeed.learning.service import purge_orphan_activities


def main():
    db = SessionLocal()

    try:
        counts = backfill_activities(db)
        for source_kind, created in counts.items():
            print(f"  {source_kind}: {created} activities created", flush=True)
        print(f"\n✅ Backfill complete! ({sum(counts.values())} total)", flush=True)
        purged = purge_orphan_activities(db)
        print(f"🧹 Removed {sum(purged.values())} orphaned activities", flush=True)
    except Exception as e:
        db.rollback()
        print(f"❌ Error during backfill: {e}", flush=True)
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
