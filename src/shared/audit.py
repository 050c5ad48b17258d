"""
Structured audit logging: appends archiver events to a JSON Lines file.

Every sync pass and every processed channel is recorded with a timestamp,
service name, action, details dict, and success flag.  One JSON object per
line keeps the file easy to ship to log aggregation tools.

Audit writes never abort a sync pass: a failed write is reported on the
standard logger and dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("shared.audit")


class AuditLogger:
    """Append-only audit logger.

    Args:
        log_path: Path to the JSON Lines audit file.  ``None`` disables
            auditing; :meth:`log` then becomes a no-op.
    """

    def __init__(self, log_path: Optional[Path] = None) -> None:
        self._log_path = log_path
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self._log_path is not None and not self._closed

    def _append(self, line: str) -> None:
        assert self._log_path is not None
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._log_path, "a", encoding="utf-8") as handle:
            handle.write(line)

    async def log(
        self,
        service: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
    ) -> None:
        """Record an audit event.

        Args:
            service: Originating service (``"archiver"``).
            action: Action identifier (e.g. ``"sync_pass"``,
                    ``"sync_channel"``, ``"startup"``).
            details: Arbitrary JSON-serialisable metadata.
            success: Whether the action succeeded.
        """
        if not self.enabled:
            return

        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": service,
            "action": action,
            "details": details or {},
            "success": success,
        }
        line = json.dumps(event, default=str) + "\n"

        async with self._lock:
            try:
                await asyncio.to_thread(self._append, line)
            except OSError:
                logger.exception("Failed to write audit log file")

    async def close(self) -> None:
        """Stop accepting events; later :meth:`log` calls are dropped."""
        async with self._lock:
            self._closed = True
