"""
Per-channel checkpoint storage.

A checkpoint is the channel object exactly as the channel listing reported
it, written to ``{data_path}/channels/{channel_id}.json``.  Its
``last_message_id`` field records how far the channel has been archived.
A missing file means the channel was never synchronized.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict

from archiver.message_store import encode_record, record_path
from shared.errors import NotFoundError

logger = logging.getLogger("archiver.channel_store")


class ChannelStore:
    """Reads and writes channel checkpoint records.

    Args:
        channels_dir: The pre-existing ``channels/`` directory.
    """

    def __init__(self, channels_dir: Path) -> None:
        self._dir = Path(channels_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    async def exists(self, channel_id: str) -> bool:
        path = record_path(self._dir, channel_id)
        return await asyncio.to_thread(path.is_file)

    def _read_sync(self, path: Path) -> Dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(f"No checkpoint for channel at {path}") from exc
        return json.loads(text)

    async def read(self, channel_id: str) -> Dict[str, Any]:
        """Return the stored channel record.

        Raises:
            NotFoundError: If the channel has no checkpoint.
        """
        path = record_path(self._dir, channel_id)
        return await asyncio.to_thread(self._read_sync, path)

    async def write(self, channel: Dict[str, Any]) -> None:
        """Replace the checkpoint with ``channel`` wholesale (no merge)."""
        if "id" not in channel:
            raise ValueError("Channel payload has no 'id' field")
        path = record_path(self._dir, channel["id"])
        payload = encode_record(channel)
        await asyncio.to_thread(path.write_text, payload, encoding="utf-8")
        logger.debug(
            "Checkpoint written for channel %s (last_message_id=%s)",
            channel["id"],
            channel.get("last_message_id"),
        )
