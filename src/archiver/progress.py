"""
Sync progress tracking for log output.

Provides ``ChannelProgress`` (per-channel) and ``PassProgress`` (overall
pass) trackers that count fetched pages and written messages and log
human-readable progress lines with message rates.
"""

from __future__ import annotations

import logging
import time

logger = logging.getLogger("archiver.progress")


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples: ``"45s"``, ``"2m 30s"``, ``"1h 15m"``.
    """
    if seconds < 0:
        return "0s"
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        if secs:
            return f"{minutes}m {secs}s"
        return f"{minutes}m"
    hours, mins = divmod(minutes, 60)
    if mins:
        return f"{hours}h {mins}m"
    return f"{hours}h"


class ChannelProgress:
    """Tracks progress for a single channel sync.

    Args:
        channel_index: 1-based index of this channel in the pass.
        total_channels: Number of channels in the pass.
        channel_name: Display name for the channel.
        strategy: ``"backfill"``, ``"gap_fill"`` or ``"up_to_date"``.
    """

    def __init__(
        self,
        channel_index: int,
        total_channels: int,
        channel_name: str,
        strategy: str = "",
    ) -> None:
        self.channel_index = channel_index
        self.total_channels = total_channels
        self.channel_name = channel_name
        self.strategy = strategy
        self.pages = 0
        self.messages = 0
        self._start = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start

    @property
    def rate(self) -> float:
        """Messages written per second."""
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0.0
        return self.messages / elapsed

    def update(self, page_size: int) -> None:
        """Record one fetched page of ``page_size`` messages."""
        self.pages += 1
        self.messages += page_size

    def log_complete(self) -> None:
        elapsed = _format_duration(self.elapsed_seconds)
        logger.info(
            '  Completed %d/%d: "%s" | %s | %d messages in %d pages, %s (%.1f msg/s)',
            self.channel_index,
            self.total_channels,
            self.channel_name,
            self.strategy or "-",
            self.messages,
            self.pages,
            elapsed,
            self.rate,
        )


class PassProgress:
    """Tracks overall progress across all channels in a sync pass.

    Args:
        total_channels: Number of channels selected for the pass.
    """

    def __init__(self, total_channels: int) -> None:
        self.total_channels = total_channels
        self.pages = 0
        self.messages = 0
        self.channels_completed = 0
        self.channels_skipped = 0
        self._start = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start

    def update_from_channel(self, channel: ChannelProgress) -> None:
        """Accumulate stats from a finished channel."""
        self.pages += channel.pages
        self.messages += channel.messages
        self.channels_completed += 1
        if channel.strategy == "up_to_date":
            self.channels_skipped += 1

    def log_pass_progress(self) -> None:
        logger.info(
            "  Pass: %d messages across %d/%d channels (%d already synchronized) in %s",
            self.messages,
            self.channels_completed,
            self.total_channels,
            self.channels_skipped,
            _format_duration(self.elapsed_seconds),
        )
