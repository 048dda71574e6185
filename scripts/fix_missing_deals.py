#!/usr/bin/env python3
"""
Retroactively convert leads in the Won stage into won deals.

Leads with open deals get them closed as won; leads with no deal are
converted. Failures are reported and skipped.

Usage:
    python scripts/fix_missing_deals.py
"""
import argparse
import asyncio
import sys

from ispecia.core.log import configure_logging
from ispecia.db.base import async_session_maker
from ispecia.services.maintenance import repair_won_leads, RepairReport


async def run() -> RepairReport:
    async with async_session_maker() as session:
        report = await repair_won_leads(session)
        await session.commit()
    return report


def main():
    argparse.ArgumentParser(description="Create missing deals for won leads").parse_args()
    configure_logging()

    report = asyncio.run(run())
    print(f"Leads scanned: {report.scanned}")
    print(f"Fixed: {report.fixed}")
    print(f"Failed: {report.failed}")
    for error in report.errors:
        print(f"  {error}")
    if report.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
