"""
Archiver entry point: loads settings, connects to the REST API and runs
sync passes that archive channel messages to JSON files.

Key behaviours:
    - Configuration comes from the environment (and an optional TOML
      file); missing required settings stop the process before any work.
    - Without ``INTERVAL`` a single pass runs and the exit status reports
      its outcome.  With ``INTERVAL`` passes repeat until SIGTERM / SIGINT.
    - Every pass and channel is recorded in the audit log when enabled.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Mapping, Optional

from archiver.api_client import DiscordClient
from archiver.channel_store import ChannelStore
from archiver.config import Settings, load_settings
from archiver.message_store import MessageStore
from archiver.scheduler import PassScheduler, handle_signal
from archiver.sync import sync_once
from shared.audit import AuditLogger
from shared.errors import ConfigError

logger = logging.getLogger("archiver.main")

EXIT_OK = 0
EXIT_PASS_FAILED = 1
EXIT_CONFIG_ERROR = 2


async def main(settings: Settings, client: Optional[DiscordClient] = None) -> int:
    """Top-level async entry point.

    Args:
        settings: Validated settings.
        client: Optional pre-built API client (tests inject one).

    Returns:
        Process exit status.
    """
    channel_store = ChannelStore(settings.channels_path)
    message_store = MessageStore(settings.messages_path)
    audit = AuditLogger(settings.audit_log_path)

    if client is None:
        client = DiscordClient(token=settings.token, base_url=settings.base_url)

    try:
        async with client:
            await audit.log(
                "archiver",
                "startup",
                {
                    "data_path": str(settings.data_path),
                    "interval_ms": settings.interval_ms,
                    "guild_whitelist": list(settings.guild_whitelist),
                },
                success=True,
            )

            async def run_pass() -> int:
                return await sync_once(
                    client,
                    channel_store,
                    message_store,
                    audit,
                    guild_whitelist=settings.guild_whitelist,
                    limit=settings.page_limit,
                )

            scheduler = PassScheduler(
                run_pass, audit, interval_seconds=settings.interval_seconds
            )
            ok = await scheduler.run()
    finally:
        await audit.close()
        logger.info("Archiver shut down.")

    return EXIT_OK if ok else EXIT_PASS_FAILED


def run(environ: Optional[Mapping[str, str]] = None) -> None:
    """Synchronous entry point (console script / ``python -m archiver.main``)."""
    try:
        settings = load_settings(environ)
    except ConfigError as exc:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        )
        logger.critical("Configuration error: %s", exc)
        sys.exit(EXIT_CONFIG_ERROR)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    sys.exit(asyncio.run(main(settings)))


if __name__ == "__main__":
    run()
