import threading

import pytest

from stash.errors import AccessDeniedError, NotFoundError, ShareExpiredError
from stash.sharing import ShareRegistry
from stash.storage import ObjectStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store(tmp_path):
    store = ObjectStore(str(tmp_path / "uploads"), max_size_bytes=1024, max_files=5)
    store.init()
    (store.root / "1700000000000-abc-report.pdf").write_bytes(b"%PDF")
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(store, clock):
    return ShareRegistry(store, ttl_seconds=24 * 60 * 60, clock=clock)


def test_grant_then_redeem(registry):
    grant = registry.grant("1700000000000-abc-report.pdf")
    assert (grant.expires_at - grant.created_at).total_seconds() == 24 * 60 * 60

    path, stored = registry.redeem(grant.share_id)
    assert path.read_bytes() == b"%PDF"
    assert stored.original_name == "report.pdf"


def test_share_ids_are_random_and_independent(registry):
    first = registry.grant("1700000000000-abc-report.pdf")
    second = registry.grant("1700000000000-abc-report.pdf")
    assert first.share_id != second.share_id
    assert "report" not in first.share_id
    assert len(first.share_id) >= 43
    assert len(registry) == 2


def test_grant_requires_existing_object(registry):
    with pytest.raises(NotFoundError):
        registry.grant("missing.pdf")
    with pytest.raises(AccessDeniedError):
        registry.grant("../outside.pdf")
    assert len(registry) == 0


def test_unknown_share(registry):
    with pytest.raises(NotFoundError) as exc_info:
        registry.redeem("nope")
    assert not isinstance(exc_info.value, ShareExpiredError)


def test_expired_grant_is_removed(registry, clock, store):
    grant = registry.grant("1700000000000-abc-report.pdf")

    clock.now += 24 * 60 * 60 - 1
    registry.redeem(grant.share_id)

    clock.now += 1
    with pytest.raises(ShareExpiredError):
        registry.redeem(grant.share_id)
    assert len(registry) == 0
    with pytest.raises(NotFoundError):
        registry.redeem(grant.share_id)
    # the object itself is untouched
    assert store.exists("1700000000000-abc-report.pdf")


def test_redeem_after_object_removed(registry, store):
    grant = registry.grant("1700000000000-abc-report.pdf")
    store.remove("1700000000000-abc-report.pdf")
    with pytest.raises(NotFoundError, match="Shared file not found"):
        registry.redeem(grant.share_id)


def test_grant_purges_expired_entries(registry, clock):
    registry.grant("1700000000000-abc-report.pdf")
    clock.now += 24 * 60 * 60
    registry.grant("1700000000000-abc-report.pdf")
    assert len(registry) == 1


def test_revoke_and_clear(registry):
    grant = registry.grant("1700000000000-abc-report.pdf")
    registry.revoke(grant.share_id)
    with pytest.raises(NotFoundError):
        registry.revoke(grant.share_id)

    registry.grant("1700000000000-abc-report.pdf")
    registry.clear()
    assert len(registry) == 0


def test_concurrent_grants(registry):
    share_ids = []

    def worker():
        for _ in range(50):
            share_ids.append(registry.grant("1700000000000-abc-report.pdf").share_id)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(set(share_ids)) == 200
    assert len(registry) == 200
