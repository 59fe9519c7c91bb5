import secrets
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import structlog

from stash.errors import NotFoundError, ShareExpiredError
from stash.models import ShareGrant, StoredObject
from stash.storage import ObjectStore

logger = structlog.get_logger(__name__)

SHARE_ID_BYTES = 32


class ShareRegistry:
    """In-memory share links, each scoped to one stored object and expiring after ttl_seconds."""

    def __init__(self, store: ObjectStore, ttl_seconds: int, clock: Callable[[], float] = time.time):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._grants: dict[str, ShareGrant] = {}
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def __len__(self) -> int:
        with self._lock:
            return len(self._grants)

    def grant(self, storage_name: str) -> ShareGrant:
        if not self.store.exists(storage_name):
            raise NotFoundError("File not found")

        created_at = self._now()
        grant = ShareGrant(
            share_id=secrets.token_urlsafe(SHARE_ID_BYTES),
            storage_name=storage_name,
            created_at=created_at,
            expires_at=datetime.fromtimestamp(created_at.timestamp() + self.ttl_seconds, tz=timezone.utc),
        )
        with self._lock:
            self._purge_expired(created_at)
            self._grants[grant.share_id] = grant
        logger.info("share_granted", storage_name=storage_name, expires_at=grant.expires_at.isoformat())
        return grant

    def redeem(self, share_id: str) -> tuple[Path, StoredObject]:
        """Path and metadata of the shared object. No authentication is involved."""
        with self._lock:
            grant = self._grants.get(share_id)
            if grant is None:
                raise NotFoundError("Invalid or expired share link")
            if self._now() >= grant.expires_at:
                del self._grants[share_id]
                raise ShareExpiredError()

        try:
            return self.store.fetch(grant.storage_name)
        except NotFoundError:
            raise NotFoundError("Shared file not found") from None

    def revoke(self, share_id: str) -> None:
        with self._lock:
            if self._grants.pop(share_id, None) is None:
                raise NotFoundError("Invalid or expired share link")

    def clear(self) -> None:
        with self._lock:
            self._grants.clear()

    def _purge_expired(self, now: datetime) -> None:
        expired = [share_id for share_id, grant in self._grants.items() if now >= grant.expires_at]
        for share_id in expired:
            del self._grants[share_id]
        if expired:
            logger.debug("share_grants_purged", count=len(expired))
