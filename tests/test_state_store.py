import pytest

from authflow.csrf import CSRFGuard
from authflow.errors import InvalidRequest, ServerError
from authflow.state_store import StateStore


def test_consume_returns_created_payload(kv) -> None:
    store = StateStore(kv)
    payload = {"provider": "gmail", "request": None, "nested": {"scopes": ["a", "b"]}, "n": 3}

    token = store.create(payload)

    assert store.consume(token) == payload


def test_second_consume_fails(kv) -> None:
    store = StateStore(kv)
    token = store.create({"provider": "github"})
    store.consume(token)

    with pytest.raises(InvalidRequest) as exc:
        store.consume(token)

    assert exc.value.status_code == 400
    assert exc.value.code == "invalid_request"


def test_expired_state_reads_like_unknown_state(kv, clock) -> None:
    store = StateStore(kv, ttl=600)
    token = store.create({"provider": "github"})
    clock.advance(601)

    with pytest.raises(InvalidRequest) as expired:
        store.consume(token)
    with pytest.raises(InvalidRequest) as unknown:
        store.consume("never-issued")

    assert expired.value.description == unknown.value.description


def test_state_alive_until_ttl(kv, clock) -> None:
    store = StateStore(kv, ttl=600)
    token = store.create({"provider": "github"})
    clock.advance(599)

    assert store.consume(token) == {"provider": "github"}


def test_tokens_are_unique(kv) -> None:
    store = StateStore(kv)
    tokens = {store.create({}) for _ in range(50)}
    assert len(tokens) == 50


def test_missing_token_is_invalid_request(kv) -> None:
    with pytest.raises(InvalidRequest, match="Missing state"):
        StateStore(kv).consume("")


def test_corrupted_payload_is_server_error_and_still_consumed(kv) -> None:
    kv.put("state:broken", "{not json")
    store = StateStore(kv)

    with pytest.raises(ServerError) as exc:
        store.consume("broken")

    assert exc.value.status_code == 500
    assert kv.get("state:broken") is None


def test_abandoned_entries_are_swept_on_later_writes(kv, clock) -> None:
    store = StateStore(kv)
    guard = CSRFGuard(kv)
    for _ in range(100):
        store.create({"provider": "github"})
        guard.issue()
    assert len(kv) == 200

    clock.advance(3600)
    token = store.create({"provider": "gmail"})

    assert len(kv) == 1
    assert store.consume(token) == {"provider": "gmail"}
