"""
tests/test_tokens.py -- Unit tests for TokenManager (auth/tokens.py).

Covers claim shape, key separation between access and refresh tokens,
rotation (old token dead, replay rejected), concurrent rotation of the same
token (exactly one winner), and revocation.
"""

from __future__ import annotations

import threading

import pytest
from jose import jwt

from auth.errors import AuthenticationError
from auth.models import User
from auth.store import UserStore
from auth.tokens import INVALID_REFRESH_TOKEN, INVALID_TOKEN, TokenManager

_ACCESS_KEY = "a" * 32 + "-access"
_REFRESH_KEY = "r" * 32 + "-refresh"


@pytest.fixture
def tokens(store: UserStore) -> TokenManager:
    return TokenManager(store, _ACCESS_KEY, _REFRESH_KEY, access_expire_seconds=900, refresh_expire_days=30)


class TestAccessToken:
    def test_claims(self, tokens: TokenManager, user_factory) -> None:
        user = user_factory(role="vendor")
        claims = tokens.verify_access_token(tokens.create_access_token(user))
        assert claims["sub"] == user.id
        assert claims["email"] == user.email
        assert claims["role"] == "vendor"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 900

    def test_expired_token_rejected(self, tokens: TokenManager, user_factory) -> None:
        token = tokens.create_access_token(user_factory(), expire_seconds=-1)
        with pytest.raises(AuthenticationError, match=INVALID_TOKEN):
            tokens.verify_access_token(token)

    def test_tampered_token_rejected(self, tokens: TokenManager, user_factory) -> None:
        token = tokens.create_access_token(user_factory())
        with pytest.raises(AuthenticationError):
            tokens.verify_access_token(token[:-2] + ("AA" if token[-2:] != "AA" else "BB"))

    def test_refresh_token_is_not_an_access_token(self, tokens: TokenManager, user_factory) -> None:
        pair = tokens.issue_pair(user_factory())
        with pytest.raises(AuthenticationError):
            tokens.verify_access_token(pair.refresh_token)

    def test_access_key_cannot_forge_refresh(self, tokens: TokenManager, user_factory) -> None:
        """A refresh-typed token signed with the access key fails refresh verification."""
        user = user_factory()
        forged = jwt.encode({"sub": user.id, "type": "refresh", "jti": "x"}, _ACCESS_KEY, algorithm="HS256")
        with pytest.raises(AuthenticationError):
            tokens.verify_refresh_token(forged)

    def test_missing_subject_rejected(self, tokens: TokenManager) -> None:
        token = jwt.encode({"type": "access"}, _ACCESS_KEY, algorithm="HS256")
        with pytest.raises(AuthenticationError):
            tokens.verify_access_token(token)


class TestRefreshLifecycle:
    def test_issue_pair_persists_refresh(self, tokens: TokenManager, store: UserStore, user_factory) -> None:
        user = user_factory()
        pair = tokens.issue_pair(user)
        assert store.get_refresh_token(pair.refresh_token).user_id == user.id
        assert tokens.is_valid(pair.refresh_token)

    def test_refresh_tokens_are_unique(self, tokens: TokenManager, user_factory) -> None:
        user = user_factory()
        assert tokens.issue_pair(user).refresh_token != tokens.issue_pair(user).refresh_token

    def test_rotate_consumes_old_token(self, tokens: TokenManager, user_factory) -> None:
        user = user_factory()
        old = tokens.issue_pair(user)
        rotated_user, new = tokens.rotate(old.refresh_token)
        assert rotated_user.id == user.id
        assert new.refresh_token != old.refresh_token
        assert not tokens.is_valid(old.refresh_token)
        assert tokens.is_valid(new.refresh_token)

    def test_replay_after_rotation_rejected(self, tokens: TokenManager, user_factory) -> None:
        old = tokens.issue_pair(user_factory())
        tokens.rotate(old.refresh_token)
        with pytest.raises(AuthenticationError, match=INVALID_REFRESH_TOKEN):
            tokens.rotate(old.refresh_token)

    def test_concurrent_rotation_has_one_winner(self, tmp_path) -> None:
        """Several threads exchange the same token; exactly one gets a new pair."""
        store = UserStore(f"sqlite:///{tmp_path / 'race.db'}")
        try:
            manager = TokenManager(store, _ACCESS_KEY, _REFRESH_KEY)
            user_id = store.create_user(User(email="racer@example.com", full_name="Racer", role="planner"), "Passw0rdOK")
            pair = manager.issue_pair(store.get_by_id(user_id))

            barrier = threading.Barrier(4)
            wins: list[str] = []
            losses: list[Exception] = []
            lock = threading.Lock()

            def worker() -> None:
                barrier.wait()
                try:
                    _, new = manager.rotate(pair.refresh_token)
                except AuthenticationError as exc:
                    with lock:
                        losses.append(exc)
                else:
                    with lock:
                        wins.append(new.refresh_token)

            threads = [threading.Thread(target=worker) for _ in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert len(wins) == 1
            assert len(losses) == 3
            assert store.count_refresh_tokens(user_id) == 1
        finally:
            store.close()

    def test_expired_record_is_not_valid(self, store: UserStore, clock, user_factory) -> None:
        manager = TokenManager(store, _ACCESS_KEY, _REFRESH_KEY, refresh_expire_days=30, now=clock)
        pair = manager.issue_pair(user_factory())
        clock.advance(days=31)
        assert not manager.is_valid(pair.refresh_token)
        with pytest.raises(AuthenticationError):
            manager.rotate(pair.refresh_token)

    def test_rotate_rejects_deactivated_user(self, tokens: TokenManager, store: UserStore, user_factory) -> None:
        user = user_factory()
        pair = tokens.issue_pair(user)
        store.set_active(user.id, False)
        with pytest.raises(AuthenticationError):
            tokens.rotate(pair.refresh_token)

    def test_revoke_is_idempotent(self, tokens: TokenManager, user_factory) -> None:
        pair = tokens.issue_pair(user_factory())
        assert tokens.revoke(pair.refresh_token) == 1
        assert tokens.revoke(pair.refresh_token) == 0
        assert not tokens.is_valid(pair.refresh_token)

    def test_revoke_all(self, tokens: TokenManager, store: UserStore, user_factory) -> None:
        user = user_factory()
        other = user_factory()
        pairs = [tokens.issue_pair(user) for _ in range(3)]
        kept = tokens.issue_pair(other)
        assert tokens.revoke_all(user.id) == 3
        assert tokens.revoke_all(user.id) == 0
        assert not any(tokens.is_valid(p.refresh_token) for p in pairs)
        assert tokens.is_valid(kept.refresh_token)

    def test_garbage_is_not_valid(self, tokens: TokenManager) -> None:
        assert tokens.is_valid("not-a-jwt") is False
