from __future__ import annotations

import pytest

from auth_plugin.auth.handshake import ReturnToStore, safe_return_to


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_pop_returns_pending_once() -> None:
    store = ReturnToStore(ttl_seconds=60)
    state = store.begin("google", "/dashboard")

    pending = store.pop(state)

    assert pending is not None
    assert pending.provider == "google"
    assert pending.return_to == "/dashboard"
    assert store.pop(state) is None
    assert len(store) == 0


def test_entry_without_return_to_is_still_consumed() -> None:
    store = ReturnToStore(ttl_seconds=60)
    state = store.begin("microsoft", None)

    pending = store.pop(state)

    assert pending is not None
    assert pending.return_to is None
    assert store.pop(state) is None


def test_states_are_unique_and_unknown_state_is_none() -> None:
    store = ReturnToStore(ttl_seconds=60)

    states = {store.begin("google", None) for _ in range(20)}

    assert len(states) == 20
    assert store.pop("forged") is None
    assert store.pop(None) is None
    assert len(store) == 20


def test_expired_entries_are_dropped() -> None:
    clock = _Clock()
    store = ReturnToStore(ttl_seconds=60, clock=clock)
    stale = store.begin("google", "/a")
    clock.now += 61

    assert store.pop(stale) is None

    leftover = store.begin("google", "/b")
    clock.now += 61
    store.begin("google", "/c")

    assert len(store) == 1
    assert store.pop(leftover) is None


@pytest.mark.parametrize("value", ["/dashboard", "/a/b?x=1#frag", " /spaced "])
def test_safe_return_to_accepts_local_paths(value: str) -> None:
    assert safe_return_to(value) == value.strip()


@pytest.mark.parametrize(
    "value",
    [None, "", "//evil.test/x", "/\\evil.test", "https://evil.test/", "javascript:alert(1)"],
)
def test_safe_return_to_rejects_foreign_targets(value: str | None) -> None:
    assert safe_return_to(value) is None


def test_safe_return_to_allows_configured_origins() -> None:
    allowed = ("https://app.test/",)

    assert safe_return_to("https://APP.test/home", allowed) == "https://APP.test/home"
    assert safe_return_to("https://other.test/home", allowed) is None
    assert safe_return_to("http://app.test/home", allowed) is None
