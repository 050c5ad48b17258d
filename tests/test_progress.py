"""
Unit tests for progress tracking and the JSON Lines audit logger.
"""

import json
import time

import pytest

from archiver.progress import ChannelProgress, PassProgress, _format_duration
from shared.audit import AuditLogger


# ---------------------------------------------------------------------------
# Progress tracking
# ---------------------------------------------------------------------------


class TestFormatDuration:
    def test_seconds_only(self):
        assert _format_duration(45) == "45s"

    def test_zero(self):
        assert _format_duration(0) == "0s"

    def test_negative(self):
        assert _format_duration(-5) == "0s"

    def test_minutes_and_seconds(self):
        assert _format_duration(150) == "2m 30s"

    def test_exact_minutes(self):
        assert _format_duration(120) == "2m"

    def test_hours_and_minutes(self):
        assert _format_duration(4500) == "1h 15m"

    def test_exact_hours(self):
        assert _format_duration(3600) == "1h"


class TestChannelProgress:
    def test_update_counts_pages_and_messages(self):
        cp = ChannelProgress(1, 3, "general", strategy="backfill")
        cp.update(100)
        cp.update(42)
        assert cp.pages == 2
        assert cp.messages == 142

    def test_empty_page_still_counts_as_page(self):
        cp = ChannelProgress(1, 1, "quiet")
        cp.update(0)
        assert cp.pages == 1
        assert cp.messages == 0

    def test_rate(self):
        cp = ChannelProgress(1, 1, "general")
        cp._start = time.monotonic() - 10.0
        cp.update(500)
        assert 40.0 < cp.rate < 60.0

    def test_log_complete(self):
        """log_complete should not raise."""
        cp = ChannelProgress(2, 5, "general", strategy="gap_fill")
        cp.update(3)
        cp.log_complete()


class TestPassProgress:
    def test_update_from_channel(self):
        pp = PassProgress(total_channels=3)

        a = ChannelProgress(1, 3, "a", strategy="backfill")
        a.update(100)
        a.update(20)
        b = ChannelProgress(2, 3, "b", strategy="up_to_date")

        pp.update_from_channel(a)
        pp.update_from_channel(b)

        assert pp.messages == 120
        assert pp.pages == 2
        assert pp.channels_completed == 2
        assert pp.channels_skipped == 1

    def test_log_pass_progress(self):
        """log_pass_progress should not raise."""
        pp = PassProgress(total_channels=10)
        pp.log_pass_progress()


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class TestAuditLogger:
    @pytest.mark.asyncio
    async def test_writes_json_lines(self, tmp_path):
        path = tmp_path / "logs" / "audit.log"
        audit = AuditLogger(path)

        await audit.log("archiver", "sync_pass", {"messages": 3}, success=True)
        await audit.log("archiver", "sync_pass", None, success=False)

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first, second = (json.loads(line) for line in lines)
        assert first["service"] == "archiver"
        assert first["action"] == "sync_pass"
        assert first["details"] == {"messages": 3}
        assert first["success"] is True
        assert "timestamp" in first
        assert second["details"] == {}
        assert second["success"] is False

    @pytest.mark.asyncio
    async def test_disabled_without_path(self, tmp_path):
        audit = AuditLogger(None)
        assert not audit.enabled
        await audit.log("archiver", "startup")

    @pytest.mark.asyncio
    async def test_events_after_close_are_dropped(self, tmp_path):
        path = tmp_path / "audit.log"
        audit = AuditLogger(path)
        await audit.close()
        await audit.log("archiver", "startup")
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_write_failure_does_not_raise(self, tmp_path):
        # A directory where the file should be makes open() fail.
        path = tmp_path / "audit.log"
        path.mkdir()
        audit = AuditLogger(path)
        await audit.log("archiver", "startup")
