#!/usr/bin/env python3
"""
Create the default deal pipeline and any missing deal stages.

Usage:
    python scripts/init_deal_stages.py
"""
import argparse
import asyncio

from ispecia.core.log import configure_logging
from ispecia.db.base import async_session_maker
from ispecia.services.maintenance import ensure_deal_stages


async def run() -> int:
    async with async_session_maker() as session:
        count = await ensure_deal_stages(session)
        await session.commit()
    return count


def main():
    argparse.ArgumentParser(description="Initialize default deal stages").parse_args()
    configure_logging()
    count = asyncio.run(run())
    print(f"Deal stages created: {count}")


if __name__ == "__main__":
    main()
