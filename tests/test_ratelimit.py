import time

import pytest

from stash.errors import RateLimitError
from stash.ratelimit import RequestLimiter


def test_blocks_after_limit_within_window():
    limiter = RequestLimiter(5, 900)
    for _ in range(5):
        limiter.hit("10.0.0.1")
    with pytest.raises(RateLimitError):
        limiter.hit("10.0.0.1")


def test_keys_are_independent():
    limiter = RequestLimiter(1, 900)
    limiter.hit("a")
    limiter.hit("b")
    with pytest.raises(RateLimitError):
        limiter.hit("a")


def test_namespaces_are_independent():
    api = RequestLimiter(1, 900)
    login = RequestLimiter(1, 900, namespace="login")
    api.hit("a")
    login.hit("a")
    with pytest.raises(RateLimitError):
        login.hit("a")


def test_window_slides():
    limiter = RequestLimiter(1, 1)
    limiter.hit("a")
    with pytest.raises(RateLimitError):
        limiter.hit("a")
    time.sleep(1.2)
    limiter.hit("a")


def test_custom_message_and_reset():
    limiter = RequestLimiter(1, 900, message="slow down")
    limiter.hit("a")
    with pytest.raises(RateLimitError, match="slow down") as exc_info:
        limiter.hit("a")
    assert exc_info.value.status_code == 429

    limiter.reset()
    limiter.hit("a")
