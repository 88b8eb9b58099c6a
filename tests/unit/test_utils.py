"""Tests for shared utilities."""

from datetime import datetime, timedelta, timezone

from civicwatch.utils import utc_now


class TestUtcNow:
    """Test the stored timestamp form."""

    def test_is_naive(self):
        assert utc_now().tzinfo is None

    def test_is_utc(self):
        expected = datetime.now(timezone.utc).replace(tzinfo=None)

        assert abs(utc_now() - expected) < timedelta(seconds=5)
