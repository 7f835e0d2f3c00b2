"""
Unit tests for rate_limit.py - per-client request windows.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import ErrorCode, TurnError
from rate_limit import RateLimiter
from tests.test_logger import test_logger


class TestRateLimiter:
    """Test RateLimiter.check."""

    def setup_method(self):
        test_logger.log_section("TESTING: rate_limit.py - RateLimiter")
        self.now = 1000.0
        self.limiter = RateLimiter(max_requests=2, window_seconds=60, clock=lambda: self.now)

    def test_blocks_after_limit(self):
        test_logger.log_test_start("rate_limit.py", "check", "limit")

        try:
            self.limiter.check("10.0.0.1")
            self.limiter.check("10.0.0.1")

            with pytest.raises(TurnError) as exc_info:
                self.limiter.check("10.0.0.1")

            assert exc_info.value.code == ErrorCode.RATE_LIMITED
            assert exc_info.value.status_code == 429

            test_logger.log_test_pass("rate_limit.py", "check", "limit")
        except Exception as e:
            test_logger.log_test_fail("rate_limit.py", "check", "limit", str(e))
            raise

    def test_window_slides(self):
        self.limiter.check("10.0.0.1")
        self.limiter.check("10.0.0.1")
        self.now += 61

        self.limiter.check("10.0.0.1")

    def test_clients_are_independent(self):
        self.limiter.check("10.0.0.1")
        self.limiter.check("10.0.0.1")

        self.limiter.check("10.0.0.2")

    def test_idle_clients_are_forgotten(self):
        test_logger.log_test_start("rate_limit.py", "check", "idle clients purged")

        try:
            for i in range(5000):
                self.limiter.check(f"10.1.{i // 256}.{i % 256}")
            assert len(self.limiter) == 5000

            self.now += 10000
            self.limiter.check("192.168.0.1")

            assert len(self.limiter) == 1

            test_logger.log_test_pass("rate_limit.py", "check", "idle clients purged")
        except Exception as e:
            test_logger.log_test_fail("rate_limit.py", "check", "idle clients purged", str(e))
            raise

    def test_purge_keeps_active_clients(self):
        self.limiter.check("10.0.0.1")
        self.now += 30
        self.limiter.check("10.0.0.2")
        self.now += 40

        assert self.limiter.purge() == 1
        assert len(self.limiter) == 1

        # 10.0.0.2 still has one request in its window
        self.limiter.check("10.0.0.2")
        with pytest.raises(TurnError):
            self.limiter.check("10.0.0.2")
