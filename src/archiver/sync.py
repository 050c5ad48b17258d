"""
Incremental channel synchronization.

For every selected channel the synchronizer compares the stored checkpoint
with the ``last_message_id`` reported by the channel listing and picks one
of three strategies:

    - ``backfill``:   no checkpoint; page backwards with ``before`` from
                      the newest message until a short page.
    - ``gap_fill``:   stale checkpoint; page with ``after`` starting at the
                      checkpoint until a short page.
    - ``up_to_date``: checkpoint matches; nothing is fetched or written.

The two loops advance their cursors from different ends of the page:
``before`` pages are newest-first, so the next cursor is the *last* element;
``after`` pages are advanced from the *first* element.  That asymmetry is
the API's contract and must be kept as is.

After either loop the channel object from the listing is written as the new
checkpoint, so the stored ``last_message_id`` is the server-reported value
and never one derived from the fetched pages.

Channels are processed strictly one after another; a failing request
aborts the whole pass and leaves that channel's checkpoint untouched.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from archiver.api_client import DiscordClient
from archiver.channel_store import ChannelStore
from archiver.message_store import MessageStore
from archiver.progress import ChannelProgress, PassProgress
from archiver.scheduler import shutdown_event
from shared.audit import AuditLogger
from shared.errors import NotFoundError

logger = logging.getLogger("archiver.sync")

PAGE_LIMIT = 100

STRATEGY_BACKFILL = "backfill"
STRATEGY_GAP_FILL = "gap_fill"
STRATEGY_UP_TO_DATE = "up_to_date"


def _label(channel: Dict[str, Any]) -> str:
    return f"{channel.get('id')} ({channel.get('name')})"


# ---------------------------------------------------------------------------
# Channel selection
# ---------------------------------------------------------------------------


async def collect_channels(
    client: DiscordClient,
    guild_whitelist: Iterable[str] = (),
) -> List[Dict[str, Any]]:
    """Return DM channels plus the channels of whitelisted guilds.

    Only guilds the account belongs to *and* whose id is whitelisted are
    expanded; whitelist ids matching no guild are ignored.
    """
    channels: List[Dict[str, Any]] = list(await client.get_dm_channels() or [])

    wanted = {str(gid) for gid in guild_whitelist if str(gid)}
    if not wanted:
        return channels

    guilds = await client.get_guilds() or []
    for guild in guilds:
        guild_id = str(guild.get("id"))
        if guild_id not in wanted:
            continue
        guild_channels = await client.get_guild_channels(guild_id) or []
        logger.info(
            "Guild %s (%s): %d channels",
            guild_id,
            guild.get("name"),
            len(guild_channels),
        )
        channels.extend(guild_channels)

    return channels


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------


async def select_strategy(
    channel: Dict[str, Any],
    channel_store: ChannelStore,
) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Decide how to synchronize ``channel``.

    Returns:
        ``(strategy, checkpoint)`` where ``checkpoint`` is the stored record
        (``None`` for a backfill of a never-seen channel).
    """
    channel_id = str(channel["id"])
    if not await channel_store.exists(channel_id):
        return STRATEGY_BACKFILL, None

    try:
        checkpoint = await channel_store.read(channel_id)
    except NotFoundError as exc:
        raise RuntimeError(
            f"Checkpoint for channel {channel_id} vanished between exists() and read()"
        ) from exc

    stored_last = checkpoint.get("last_message_id")
    if stored_last == channel.get("last_message_id"):
        return STRATEGY_UP_TO_DATE, checkpoint
    if stored_last is None:
        # Checkpointed while empty: there is no cursor to resume from.
        return STRATEGY_BACKFILL, checkpoint
    return STRATEGY_GAP_FILL, checkpoint


# ---------------------------------------------------------------------------
# Pagination loops
# ---------------------------------------------------------------------------


async def backfill_channel(
    client: DiscordClient,
    message_store: MessageStore,
    channel: Dict[str, Any],
    limit: int = PAGE_LIMIT,
    progress: Optional[ChannelProgress] = None,
) -> int:
    """Fetch the full history of a channel, newest page first.

    Returns:
        Number of message files written.
    """
    channel_id = str(channel["id"])
    before: Optional[str] = None
    written = 0

    while True:
        messages = await client.get_channel_messages(
            channel_id, limit=limit, before=before
        ) or []
        logger.info("Got %d messages for channel %s", len(messages), _label(channel))

        written += await message_store.write_many(messages)
        if progress is not None:
            progress.update(len(messages))

        if len(messages) < limit:
            break
        # newest-first: the last element is the oldest seen so far
        before = messages[-1]["id"]

    return written


async def gap_fill_channel(
    client: DiscordClient,
    message_store: MessageStore,
    channel: Dict[str, Any],
    after: str,
    limit: int = PAGE_LIMIT,
    progress: Optional[ChannelProgress] = None,
) -> int:
    """Fetch the messages newer than the checkpoint ``after``.

    Returns:
        Number of message files written.
    """
    channel_id = str(channel["id"])
    written = 0

    while True:
        messages = await client.get_channel_messages(
            channel_id, limit=limit, after=after
        ) or []
        logger.info("Got %d messages for channel %s", len(messages), _label(channel))

        written += await message_store.write_many(messages)
        if progress is not None:
            progress.update(len(messages))

        if len(messages) < limit:
            break
        # the after-cursor advances from the first element of the page
        after = messages[0]["id"]

    return written


# ---------------------------------------------------------------------------
# Per-channel and per-pass drivers
# ---------------------------------------------------------------------------


async def sync_channel(
    client: DiscordClient,
    channel_store: ChannelStore,
    message_store: MessageStore,
    channel: Dict[str, Any],
    limit: int = PAGE_LIMIT,
    progress: Optional[ChannelProgress] = None,
) -> str:
    """Synchronize one channel and update its checkpoint.

    Returns:
        The strategy that was applied.
    """
    strategy, checkpoint = await select_strategy(channel, channel_store)
    if progress is not None:
        progress.strategy = strategy

    if strategy == STRATEGY_UP_TO_DATE:
        logger.info("Channel %s is already synchronized", _label(channel))
        return strategy

    if strategy == STRATEGY_GAP_FILL:
        assert checkpoint is not None
        logger.info(
            "Channel %s exists but is missing messages. Synchronizing...",
            _label(channel),
        )
        await gap_fill_channel(
            client,
            message_store,
            channel,
            after=checkpoint["last_message_id"],
            limit=limit,
            progress=progress,
        )
    else:
        logger.info("New channel %s. Synchronizing...", _label(channel))
        await backfill_channel(
            client, message_store, channel, limit=limit, progress=progress
        )

    await channel_store.write(channel)
    return strategy


async def sync_once(
    client: DiscordClient,
    channel_store: ChannelStore,
    message_store: MessageStore,
    audit: AuditLogger,
    guild_whitelist: Iterable[str] = (),
    limit: int = PAGE_LIMIT,
) -> int:
    """Run a single sync pass over every selected channel.

    Any ``ApiError`` propagates and aborts the remaining channels; the
    caller decides whether the process survives.

    Returns:
        Number of message files written in this pass.
    """
    whitelist = sorted({str(gid) for gid in guild_whitelist})
    logger.info("Synchronizing messages...")

    channels = await collect_channels(client, whitelist)
    total = len(channels)
    logger.info("Got %d channels", total)

    await audit.log(
        "archiver",
        "sync_pass_start",
        {"channels": total, "guild_whitelist": whitelist},
        success=True,
    )

    pass_progress = PassProgress(total_channels=total)

    for index, channel in enumerate(channels):
        if shutdown_event.is_set():
            logger.info(
                "Shutdown requested; stopping sync pass after %d/%d channels.",
                index,
                total,
            )
            break

        logger.info("Processing %s channel", _label(channel))
        progress = ChannelProgress(
            channel_index=index + 1,
            total_channels=total,
            channel_name=str(channel.get("name") or channel.get("id")),
        )

        strategy = await sync_channel(
            client,
            channel_store,
            message_store,
            channel,
            limit=limit,
            progress=progress,
        )

        progress.log_complete()
        pass_progress.update_from_channel(progress)

        await audit.log(
            "archiver",
            "sync_channel",
            {
                "channel_id": channel.get("id"),
                "channel_name": channel.get("name"),
                "strategy": strategy,
                "pages": progress.pages,
                "messages": progress.messages,
                "last_message_id": channel.get("last_message_id"),
            },
            success=True,
        )

    pass_progress.log_pass_progress()
    logger.info("All messages synchronized")
    return pass_progress.messages
