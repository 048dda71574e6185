#!/usr/bin/env python3
"""
Reset a user's password (the admin account by default).

Usage:
    python scripts/reset_admin_password.py --password NEW [--email EMAIL]
"""
import argparse
import asyncio
import sys

from ispecia.core.config import settings
from ispecia.core.errors import NotFoundError
from ispecia.core.log import configure_logging
from ispecia.db.base import async_session_maker
from ispecia.services.maintenance import reset_password


async def run(email: str, password: str) -> None:
    async with async_session_maker() as session:
        await reset_password(session, email, password)
        await session.commit()


def main():
    parser = argparse.ArgumentParser(description="Reset a user's password")
    parser.add_argument("--email", default=settings.ADMIN_EMAIL, help="Account email (default: ADMIN_EMAIL)")
    parser.add_argument("--password", required=True, help="New password (min 6 characters)")
    args = parser.parse_args()
    configure_logging()

    if len(args.password) < 6:
        print("Password must be at least 6 characters")
        sys.exit(1)

    try:
        asyncio.run(run(args.email, args.password))
    except NotFoundError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    print(f"Password reset for {args.email}")


if __name__ == "__main__":
    main()
