#!/usr/bin/env python3
"""
Exchange account credentials for an API token.

Usage:
  python3 scripts/login.py --email you@example.com
  TOKEN=$(python3 scripts/login.py --email you@example.com --quiet)

The password is read from the terminal.  Store the printed token in the
keychain (``secret-tool store --label=dm-archiver service dm-archiver key
token``) or export it as ``TOKEN``.
"""
from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys

from archiver.api_client import DEFAULT_BASE_URL, DiscordClient
from shared.errors import ApiError

logger = logging.getLogger("archiver.login")


async def fetch_token(email: str, password: str, base_url: str) -> str:
    async with DiscordClient(base_url=base_url) as client:
        credentials = await client.login(email, password)
    token = (credentials or {}).get("token")
    if not token:
        raise ApiError("Login response did not contain a token", "POST", "/auth/login")
    return token


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0].strip())
    parser.add_argument("--email", required=True)
    parser.add_argument(
        "--base-url",
        default=os.environ.get("API_BASE_URL", DEFAULT_BASE_URL),
    )
    parser.add_argument("--quiet", action="store_true", help="print only the token")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    password = getpass.getpass("Password: ")
    try:
        token = asyncio.run(fetch_token(args.email, password, args.base_url))
    except ApiError as exc:
        logger.error("Login failed: %s", exc)
        return 1

    if not args.quiet:
        logger.info("Login succeeded for %s", args.email)
    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
