"""
Report students whose goal assignments and profile pointer disagree.

Read-only: prints every problem found and exits non-zero if there are any.
Fixing the data is a manual decision.
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from learnfeed.db.base import SessionLocal
import learnfeed.main  # noqa: F401
from learnfeed.assignments.sync import check_assignment_consistency


def main() -> int:
    db = SessionLocal()
    try:
        problems = check_assignment_consistency(db)
    finally:
        db.close()

    if not problems:
        print("✅ All assignments in sync", flush=True)
        return 0

    print(f"❌ {len(problems)} problem(s) found:", flush=True)
    for problem in problems:
        details = ", ".join(f"{k}={v}" for k, v in problem.items() if k not in ("user_id", "problem"))
        print(f"  user {problem['user_id']}: {problem['problem']} ({details})", flush=True)
    return 1


if __name__ == "__main__":
    sys.exit(main())
