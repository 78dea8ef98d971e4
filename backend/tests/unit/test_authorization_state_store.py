"""Unit tests for the authorization state store."""

import threading
from datetime import timedelta

from services.authorization_state_store import (
    STATE_TTL,
    AuthorizationStateStore,
    generate_state_token,
)
from tests.fixtures import FakeClock


class TestGenerateStateToken:
    def test_url_safe_without_padding(self):
        token = generate_state_token("user-1")
        assert "=" not in token
        assert "+" not in token and "/" not in token
        # 32-byte digest -> 43 base64url characters
        assert len(token) == 43

    def test_tokens_are_unique(self):
        tokens = {generate_state_token("user-1") for _ in range(200)}
        assert len(tokens) == 200


class TestPutAndConsume:
    def test_consume_returns_user_once(self):
        store = AuthorizationStateStore(clock=FakeClock())
        store.put("tok", "user-1")

        assert store.try_consume("tok") == "user-1"
        assert store.try_consume("tok") is None

    def test_unknown_token(self):
        store = AuthorizationStateStore(clock=FakeClock())
        assert store.try_consume("never-issued") is None

    def test_put_overwrites_existing_entry(self):
        store = AuthorizationStateStore(clock=FakeClock())
        store.put("tok", "user-1")
        store.put("tok", "user-2")
        assert store.try_consume("tok") == "user-2"

    def test_default_ttl_is_ten_minutes(self):
        assert STATE_TTL == timedelta(minutes=10)
        assert AuthorizationStateStore().ttl == STATE_TTL


class TestExpiry:
    def test_consume_just_before_expiry(self):
        clock = FakeClock()
        store = AuthorizationStateStore(clock=clock)
        store.put("tok", "user-1")

        clock.advance(minutes=9, seconds=59)
        assert store.try_consume("tok") == "user-1"

    def test_expired_token_is_indistinguishable_from_absent(self):
        clock = FakeClock()
        store = AuthorizationStateStore(clock=clock)
        store.put("tok", "user-1")

        clock.advance(minutes=10, seconds=1)
        assert store.try_consume("tok") is None
        # and it is gone afterwards
        assert len(store) == 0

    def test_custom_ttl(self):
        clock = FakeClock()
        store = AuthorizationStateStore(clock=clock)
        store.put("tok", "user-1", ttl=timedelta(seconds=30))

        clock.advance(seconds=31)
        assert store.try_consume("tok") is None

    def test_sweep_removes_only_expired_entries(self):
        clock = FakeClock()
        store = AuthorizationStateStore(clock=clock)
        store.put("old", "user-1")
        store.put_consent_id("old", "C-old")
        clock.advance(minutes=5)
        store.put("new", "user-2")

        clock.advance(minutes=6)
        removed = store.sweep()

        assert removed == 2
        assert len(store) == 1
        assert store.try_consume("new") == "user-2"

    def test_sweep_with_explicit_now(self):
        clock = FakeClock()
        store = AuthorizationStateStore(clock=clock)
        store.put("tok", "user-1")

        assert store.sweep(clock.now + timedelta(minutes=11)) == 1
        assert len(store) == 0


class TestConsentCorrelation:
    def test_take_consent_once(self):
        store = AuthorizationStateStore(clock=FakeClock())
        store.put("tok", "user-1")
        store.put_consent_id("tok", "C1")

        assert store.try_take_consent_id("tok") == "C1"
        assert store.try_take_consent_id("tok") is None

    def test_consent_missing(self):
        store = AuthorizationStateStore(clock=FakeClock())
        store.put("tok", "user-1")
        assert store.try_take_consent_id("tok") is None

    def test_consent_shares_state_expiry(self):
        clock = FakeClock()
        store = AuthorizationStateStore(clock=clock)
        store.put("tok", "user-1")
        clock.advance(minutes=8)
        store.put_consent_id("tok", "C1")

        clock.advance(minutes=3)
        assert store.try_take_consent_id("tok") is None

    def test_consuming_state_leaves_consent_for_taking(self):
        store = AuthorizationStateStore(clock=FakeClock())
        store.put("tok", "user-1")
        store.put_consent_id("tok", "C1")

        assert store.try_consume("tok") == "user-1"
        assert store.try_take_consent_id("tok") == "C1"


class TestConcurrency:
    def test_exactly_one_concurrent_consumer_wins(self):
        store = AuthorizationStateStore()
        store.put("tok", "user-1")

        results: list[str | None] = []
        results_lock = threading.Lock()
        barrier = threading.Barrier(16)

        def consume():
            barrier.wait()
            value = store.try_consume("tok")
            with results_lock:
                results.append(value)

        threads = [threading.Thread(target=consume) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("user-1") == 1
        assert results.count(None) == 15
