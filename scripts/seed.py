#!/usr/bin/env python3
"""
Seed default CRM data.

Creates the default roles, the admin user (ADMIN_EMAIL / admin123), lead
sources and types, the default lead pipeline and the default deal pipeline.
Safe to run repeatedly.

Usage:
    python scripts/seed.py [--create-tables]
"""
import argparse
import asyncio

from ispecia.core.log import configure_logging
from ispecia.db.base import async_session_maker, init_db
from ispecia.services.maintenance import seed_defaults


async def run(create_tables: bool) -> dict:
    if create_tables:
        await init_db()
    async with async_session_maker() as session:
        created = await seed_defaults(session)
        await session.commit()
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed default CRM data")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before seeding (development only)"
    )
    args = parser.parse_args()
    configure_logging()

    created = asyncio.run(run(args.create_tables))
    print("Seed complete:")
    for name, count in created.items():
        print(f"  {name}: {count} created")


if __name__ == "__main__":
    main()
