import pytest

from eventcraft.config import refresh_settings
from eventcraft.exceptions import SessionNotFound
from eventcraft.services.rate_limit import MemoryStorage
from eventcraft.services.session import SessionRegistry


class SecondsClock:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        return self.t


def _sid(n: int) -> str:
    return f"{n:032x}"


@pytest.fixture()
def storages():
    return {}


def _registry(storages, **kw) -> SessionRegistry:
    return SessionRegistry(lambda: [], lambda sid: storages.setdefault(sid, MemoryStorage()), **kw)


def test_least_recently_used_session_is_evicted(test_settings, storages):
    reg = _registry(storages, max_sessions=3, idle_seconds=3600)
    for n in range(3):
        reg.create(_sid(n))

    reg.get(_sid(0))
    reg.create(_sid(3))

    assert len(reg) == 3
    assert _sid(1) not in reg
    assert all(_sid(n) in reg for n in (0, 2, 3))
    with pytest.raises(SessionNotFound):
        reg.get(_sid(1))


def test_idle_sessions_are_evicted(test_settings, storages):
    clock = SecondsClock()
    reg = _registry(storages, max_sessions=100, idle_seconds=60, clock=clock)
    reg.create(_sid(0))
    clock.t = 30
    reg.create(_sid(1))

    clock.t = 61
    reg.create(_sid(2))

    assert _sid(0) not in reg
    assert _sid(1) in reg and _sid(2) in reg


def test_returning_visitor_keeps_quota_after_eviction(test_settings, storages):
    reg = _registry(storages, max_sessions=1, idle_seconds=3600)
    first = reg.get_or_create(_sid(7))
    for _ in range(3):
        assert first.limiter.check_and_record("inquiry")
    first.store.toggle_item("anything")

    reg.create(_sid(8))
    assert _sid(7) not in reg

    back = reg.get_or_create(_sid(7))
    assert back is not first
    assert back.limiter.remaining_quota("inquiry") == 0


def test_invalid_session_id_gets_a_fresh_one(test_settings, storages):
    reg = _registry(storages)

    sess = reg.get_or_create("../../etc/passwd")

    assert sess.session_id != "../../etc/passwd"
    assert len(sess.session_id) == 32
    assert reg.get_or_create(sess.session_id) is sess


def test_limits_default_to_settings(test_settings, storages, monkeypatch):
    monkeypatch.setenv("SESSION_MAX", "2")
    refresh_settings()
    reg = _registry(storages)
    for n in range(5):
        reg.create(_sid(n))

    assert len(reg) == 2
