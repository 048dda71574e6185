#!/usr/bin/env python3
"""
Database health report: row counts per table and dangling deal references.

Usage:
    python scripts/check_db.py [--fix-orphans]
"""
import argparse
import asyncio

from sqlalchemy import text

from ispecia.core.log import configure_logging
from ispecia.db.base import async_session_maker
from ispecia.services.maintenance import count_rows, find_orphans, fix_orphans


async def run(fix: bool) -> None:
    async with async_session_maker() as session:
        await session.execute(text("SELECT 1"))
        print("Database connection OK\n")

        print("Row counts:")
        for table, count in (await count_rows(session)).items():
            print(f"  {table:<20} {count}")

        orphans = await find_orphans(session)
        total = sum(len(ids) for ids in orphans.values())
        print(f"\nDeals with dangling references: {total}")
        for column, deal_ids in orphans.items():
            if deal_ids:
                print(f"  {column}: {', '.join(deal_ids)}")

        if fix and total:
            fixed = await fix_orphans(session)
            await session.commit()
            print(f"\nCleared references: {fixed}")


def main():
    parser = argparse.ArgumentParser(description="Check CRM database consistency")
    parser.add_argument(
        "--fix-orphans",
        action="store_true",
        help="Null deal references to missing leads, persons and organizations"
    )
    args = parser.parse_args()
    configure_logging()
    asyncio.run(run(args.fix_orphans))


if __name__ == "__main__":
    main()
