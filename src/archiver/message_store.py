"""
File-backed message storage for the archiver.

Each message is written to ``{data_path}/messages/{message_id}.json`` as a
single line of compact JSON followed by ``\\n`` so that log shippers can
ingest the directory as JSON Lines.  The path depends only on the message
id, so re-writing a message replaces the file with identical content and
at-least-once delivery is safe.

Messages are never mutated or deleted by the archiver.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable

logger = logging.getLogger("archiver.message_store")


def encode_record(record: Dict[str, Any]) -> str:
    """Serialize a record as one line of compact JSON plus a newline."""
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False) + "\n"


def record_path(directory: Path, record_id: Any) -> Path:
    """Return ``directory / "<record_id>.json"``, rejecting unsafe ids."""
    name = str(record_id) if record_id is not None else ""
    if not name or name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
        raise ValueError(f"Unsafe record id for a file name: {record_id!r}")
    return directory / f"{name}.json"


class MessageStore:
    """Persists fetched messages as individual JSON files.

    Args:
        messages_dir: The pre-existing ``messages/`` directory.
    """

    def __init__(self, messages_dir: Path) -> None:
        self._dir = Path(messages_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, message: Dict[str, Any]) -> Path:
        if "id" not in message:
            raise ValueError("Message payload has no 'id' field")
        return record_path(self._dir, message["id"])

    def _write_sync(self, path: Path, payload: str) -> None:
        path.write_text(payload, encoding="utf-8")

    async def write(self, message: Dict[str, Any]) -> None:
        """Write one message, overwriting any previous copy."""
        path = self._path_for(message)
        await asyncio.to_thread(self._write_sync, path, encode_record(message))
        logger.debug("Stored message_id=%s", message["id"])

    async def write_many(self, messages: Iterable[Dict[str, Any]]) -> int:
        """Write a page of messages in order.

        Returns:
            Number of message files written.
        """
        written = 0
        for message in messages:
            await self.write(message)
            written += 1
        return written

    async def exists(self, message_id: str) -> bool:
        path = record_path(self._dir, message_id)
        return await asyncio.to_thread(path.is_file)
