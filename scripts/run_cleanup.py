#!/usr/bin/env python3
"""Run one sweep of stale unverified accounts outside the API process.

Usage:
    DATABASE_URL=postgresql://... JWT_SECRET=... python scripts/run_cleanup.py

    # Override the age threshold:
    python scripts/run_cleanup.py --max-age-hours 48

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    UNVERIFIED_ACCOUNT_MAX_AGE_HOURS: default age threshold (24)
"""
from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def run_cleanup(max_age_hours: int | None = None) -> int:
    """Delete unverified accounts past the age threshold; returns the count."""
    # Import here to avoid loading config before env vars are set
    from voyagevault.service.cleanup import CleanupScheduler
    from voyagevault.service.runtime import get_runtime

    runtime = get_runtime()
    hours = max_age_hours or runtime.settings.unverified_account_max_age_hours
    scheduler = CleanupScheduler(runtime.store, max_age=timedelta(hours=hours))
    return scheduler.sweep()


def main():
    parser = argparse.ArgumentParser(
        description="Delete stale unverified VoyageVault accounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--max-age-hours",
        type=int,
        default=None,
        help="Delete unverified accounts older than this many hours",
    )
    args = parser.parse_args()

    if args.max_age_hours is not None and args.max_age_hours <= 0:
        print("Error: --max-age-hours must be positive")
        sys.exit(1)

    try:
        deleted = run_cleanup(args.max_age_hours)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Deleted {deleted} unverified account(s)")


if __name__ == "__main__":
    main()
