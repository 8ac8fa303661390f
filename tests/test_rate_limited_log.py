"""
Tests for rate-limited logging.
"""
import logging

from ethbind._rate_limited_log import rate_limited_log, reset_rate_limits


class TestRateLimitedLog:
    """Tests for rate_limited_log."""

    def test_identical_messages_suppressed(self, caplog):
        log = logging.getLogger("ethbind.test")
        with caplog.at_level(logging.WARNING, logger="ethbind.test"):
            assert rate_limited_log("node unreachable", logger_instance=log)
            assert not rate_limited_log("node unreachable", logger_instance=log)
            assert rate_limited_log("filter dropped", logger_instance=log)

        assert caplog.text.count("node unreachable") == 1
        assert "filter dropped" in caplog.text

    def test_levels_are_separate(self, caplog):
        log = logging.getLogger("ethbind.test")
        with caplog.at_level(logging.DEBUG, logger="ethbind.test"):
            assert rate_limited_log("retrying", level="info", logger_instance=log)
            assert rate_limited_log("retrying", level="error", logger_instance=log)

        assert [r.levelno for r in caplog.records] == [logging.INFO, logging.ERROR]

    def test_reset(self):
        assert rate_limited_log("receipt poll failed", interval=30)
        assert not rate_limited_log("receipt poll failed", interval=30)
        reset_rate_limits()
        assert rate_limited_log("receipt poll failed", interval=30)
