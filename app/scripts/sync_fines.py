"""
Create missing absence fines and re-align fine amounts with attendance records.

Safe to run repeatedly: a second run without attendance changes creates and updates nothing.
Usage: python -m app.scripts.sync_fines [--class-id UUID] [--start-date YYYY-MM-DD] [--end-date YYYY-MM-DD]
"""

import argparse
import asyncio
import sys
from datetime import date
from typing import List, Optional
from uuid import UUID

# Ensure all models are loaded so ORM relationships resolve (e.g. Fine -> User)
import app.auth.models  # noqa: F401
from app.api.v1.fines.sync import sync_fines
from app.core.exceptions import ServiceError
from app.db.session import AsyncSessionLocal


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile absent attendance records with fines.")
    parser.add_argument("--class-id", type=UUID, default=None, help="Only this class")
    parser.add_argument("--start-date", type=date.fromisoformat, default=None, help="Inclusive, YYYY-MM-DD")
    parser.add_argument("--end-date", type=date.fromisoformat, default=None, help="Inclusive, YYYY-MM-DD")
    return parser.parse_args(argv)


async def run_sync(class_id: Optional[UUID], start_date: Optional[date], end_date: Optional[date]) -> int:
    async with AsyncSessionLocal() as session:
        try:
            stats = await sync_fines(session, class_id, start_date, end_date)
        except ServiceError as e:
            print(f"Sync failed: {e.message}", file=sys.stderr)
            return 1

    print(f"Absent records scanned: {stats.total_absent_records}")
    print(f"Fines created:          {stats.fines_created}")
    print(f"Fines updated:          {stats.fines_updated}")
    print(f"Existing fines:         {stats.existing_fines}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    sys.exit(asyncio.run(run_sync(args.class_id, args.start_date, args.end_date)))


if __name__ == "__main__":
    main()
