#!/usr/bin/env python3
"""HR Flow scheduled jobs — leave accrual, year-end carry-forward, burnout scan.

Meant for cron. Every crediting job is idempotent: re-running it for the
same period (or year) credits nobody twice.

Usage:
    python -m scripts.run_accrual monthly                    # current YYYY-MM
    python -m scripts.run_accrual monthly --period 2026-03
    python -m scripts.run_accrual year-end --year 2026
    python -m scripts.run_accrual burnout --as-of 2026-10-01

Requires in .env (project root):
    DATABASE_URL, JWT_SECRET

Exit codes:
    0 = job finished
    1 = job failed (nothing committed)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

from hrflow.accrual.service import AccrualEngine  # noqa: E402
from hrflow.common.exceptions import AppException  # noqa: E402
from hrflow.config import settings  # noqa: E402
from hrflow.database import async_session_factory, engine  # noqa: E402
from hrflow.logging_config import configure_logging  # noqa: E402

# Model registry: every mapped class must be imported before the first query
import hrflow.core_hr.models  # noqa: E402,F401
import hrflow.leave.models  # noqa: E402,F401
import hrflow.reimbursements.models  # noqa: E402,F401
import hrflow.notifications.models  # noqa: E402,F401

logger = logging.getLogger("run_accrual")


# ══════════════════════════════════════════════════════════════════════
# Jobs
# ══════════════════════════════════════════════════════════════════════


async def run_monthly(period: Optional[str]) -> int:
    async with async_session_factory() as session:
        credited = await AccrualEngine(session).monthly_accrual(period)
        await session.commit()
    print(f"Monthly accrual: {credited} employees credited")
    return credited


async def run_year_end(year: Optional[int]) -> int:
    async with async_session_factory() as session:
        updated = await AccrualEngine(session).year_end_carry_forward(year)
        await session.commit()
    print(f"Year-end carry-forward: {updated} employees updated")
    return updated


async def run_burnout(as_of: Optional[date]) -> int:
    async with async_session_factory() as session:
        flags = await AccrualEngine(session).burnout_scan(as_of)
    print(f"Burnout scan: {len(flags)} employees without leave")
    for flag in flags:
        print(
            f"  {flag.employee_code:<10} {flag.name:<30} {flag.department or '-':<20} "
            f"last leave {flag.last_leave_date or 'never'} (joined {flag.date_of_joining})"
        )
    return len(flags)


# ══════════════════════════════════════════════════════════════════════
# CLI
# ══════════════════════════════════════════════════════════════════════


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="HR Flow scheduled leave jobs")
    sub = parser.add_subparsers(dest="job", required=True)

    monthly = sub.add_parser("monthly", help="Credit monthly earned leave")
    monthly.add_argument("--period", help="YYYY-MM (default: current month)")

    year_end = sub.add_parser("year-end", help="Reset CL/SL and carry EL forward")
    year_end.add_argument("--year", type=int, help="Year being closed (default: current year)")

    burnout = sub.add_parser("burnout", help="List employees without recent leave")
    burnout.add_argument("--as-of", type=date.fromisoformat, help="YYYY-MM-DD (default: today)")
    return parser


async def _main(args: argparse.Namespace) -> None:
    try:
        if args.job == "monthly":
            await run_monthly(args.period)
        elif args.job == "year-end":
            await run_year_end(args.year)
        else:
            await run_burnout(args.as_of)
    finally:
        await engine.dispose()


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL)
    try:
        asyncio.run(_main(args))
    except AppException as exc:
        logger.error("%s: %s %s", args.job, exc.detail, exc.errors or "")
        return 1
    except SQLAlchemyError:
        logger.exception("%s: job failed on a database error", args.job)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
