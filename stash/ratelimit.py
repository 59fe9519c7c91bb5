import structlog
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from stash.errors import RateLimitError

logger = structlog.get_logger(__name__)


class RequestLimiter:
    """At most ``max_requests`` hits per key within a moving window of ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        namespace: str = "api",
        message: str = "Too many requests, please try again later.",
    ) -> None:
        self.item = parse(f"{max(1, int(max_requests))}/{int(window_seconds)} seconds")
        self.namespace = namespace
        self.message = message
        self._storage = MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self._storage)

    def hit(self, key: str) -> None:
        if not self._limiter.hit(self.item, self.namespace, key):
            logger.warning("rate_limited", namespace=self.namespace, key=key, limit=str(self.item))
            raise RateLimitError(self.message)

    def reset(self) -> None:
        self._storage.reset()
