"""
Seed default leave policies and notice rules. Existing rows are left unchanged.
Run from the project root with .env loaded.

Usage:
  python scripts/seed_policy.py                # effective from 2024-08-19
  python scripts/seed_policy.py 2026-01-01     # a new policy generation from that date
"""
import argparse
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.logging import setup_logging
from app.db.seed import DEFAULT_EFFECTIVE_FROM, seed_defaults
from app.db.session import SessionLocal


def main():
    parser = argparse.ArgumentParser(description="Seed default leave policies and notice rules")
    parser.add_argument(
        "effective_from",
        nargs="?",
        type=date.fromisoformat,
        default=DEFAULT_EFFECTIVE_FROM,
        help="Effective date of the seeded policies (YYYY-MM-DD)",
    )
    args = parser.parse_args()

    setup_logging()
    db = SessionLocal()
    try:
        result = seed_defaults(db, effective_from=args.effective_from)
        print(f"Seeded {result['policies']} policies and {result['leave_rules']} leave rules "
              f"(effective {args.effective_from.isoformat()})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
