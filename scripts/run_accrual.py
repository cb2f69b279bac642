"""
Run one accrual period. Intended to be invoked by a scheduler (cron, Kubernetes CronJob).
Safe to re-run: credits already applied for the period are skipped.

Usage:
  python scripts/run_accrual.py monthly 2026-02
  python scripts/run_accrual.py anniversary 2026-02-14
  python scripts/run_accrual.py year_end 2025
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.logging import setup_logging
from app.db.session import SessionLocal
from app.services.accrual_engine import TRIGGERS, run_accrual


def main():
    parser = argparse.ArgumentParser(description="Credit leave for one accrual period")
    parser.add_argument("trigger", choices=TRIGGERS)
    parser.add_argument("period", help="YYYY-MM (monthly), YYYY-MM-DD (anniversary) or YYYY (year_end)")
    args = parser.parse_args()

    setup_logging()
    db = SessionLocal()
    try:
        try:
            summary = run_accrual(db, args.period, trigger=args.trigger)
        except ValueError as e:
            parser.error(str(e))
        print(
            f"{summary['trigger']} {summary['period']}: "
            f"processed={summary['total_employees_processed']} "
            f"credited={summary['credited_count']} "
            f"no_policy={summary['skipped_no_policy']} "
            f"already_applied={summary['skipped_already_applied']}"
        )
    finally:
        db.close()


if __name__ == "__main__":
    main()
