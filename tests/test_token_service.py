"""
Tests for JWT minting, verification, refresh and role checks.
"""
from datetime import timedelta
from types import SimpleNamespace

import pytest
from jose import jwt

from bothive.core.config import TokenConfig
from bothive.core.errors import ConfigurationError, TokenError
from bothive.core.security import TokenService, check_role, hash_password, verify_password


def test_access_token_round_trip(tokens):
    """Access token verifies under the strategy it was issued for."""
    token = tokens.create_access_token("u1", "u1@example.com", "builder", "bearer")
    payload = tokens.verify_token(token, "bearer")
    assert payload.user_id == "u1"
    assert payload.email == "u1@example.com"
    assert payload.role == "builder"
    assert payload.strategy == "bearer"


def test_access_token_claims_use_camel_case(tokens, token_config):
    """Claims carry userId, strategy, iat and exp."""
    token = tokens.create_access_token("u1", "u1@example.com", "admin", "cookie")
    claims = jwt.decode(token, token_config.secret, algorithms=["HS256"])
    assert claims["userId"] == "u1"
    assert claims["strategy"] == "cookie"
    assert claims["exp"] - claims["iat"] == 7 * 24 * 60 * 60


def test_cross_strategy_replay_rejected(tokens):
    """A cookie token presented as bearer fails with the opaque message."""
    token = tokens.create_access_token("u1", "u1@example.com", "builder", "cookie")
    with pytest.raises(TokenError) as exc:
        tokens.verify_token(token, "bearer")
    assert str(exc.value) == "Invalid token"


def test_refresh_token_is_not_an_access_token(tokens):
    """Refresh token is signed with the other secret and never verifies as access."""
    refresh = tokens.create_refresh_token("u1")
    with pytest.raises(TokenError, match="Invalid token"):
        tokens.verify_token(refresh, "bearer")
    payload = tokens.verify_refresh_token(refresh)
    assert payload.user_id == "u1"
    assert payload.strategy == "refresh"


def test_access_token_is_not_a_refresh_token(tokens):
    access = tokens.create_access_token("u1", "u1@example.com", "builder")
    with pytest.raises(TokenError) as exc:
        tokens.verify_refresh_token(access)
    assert str(exc.value) == "Invalid refresh token"


def test_expired_token_rejected(tokens):
    token = tokens.create_access_token("u1", "e@x.io", "builder", "bearer", expires_delta=timedelta(seconds=-5))
    with pytest.raises(TokenError, match="Invalid token"):
        tokens.verify_token(token, "bearer")


def test_tampered_and_garbage_tokens_rejected(tokens):
    token = tokens.create_access_token("u1", "e@x.io", "builder")
    for bad in (token[:-2] + "xx", "not-a-jwt", ""):
        with pytest.raises(TokenError, match="Invalid token"):
            tokens.verify_token(bad, "bearer")


def test_token_signed_with_other_secret_rejected(tokens):
    forged = jwt.encode(
        {"userId": "u1", "email": "e@x.io", "role": "admin", "strategy": "bearer"},
        "attacker-secret",
        algorithm="HS256",
    )
    with pytest.raises(TokenError):
        tokens.verify_token(forged, "bearer")


def test_refresh_issues_new_pair_for_owner(tokens):
    user = SimpleNamespace(id="u1", email="u1@example.com", role="recruiter")
    pair = tokens.refresh(tokens.create_refresh_token("u1"), "cookie", user)
    payload = tokens.verify_token(pair.access_token, "cookie")
    assert payload.role == "recruiter"
    assert tokens.verify_refresh_token(pair.refresh_token).user_id == "u1"


def test_refresh_rejects_other_users_token(tokens):
    user = SimpleNamespace(id="u2", email="u2@example.com", role="builder")
    with pytest.raises(TokenError, match="Invalid refresh token"):
        tokens.refresh(tokens.create_refresh_token("u1"), "bearer", user)
    with pytest.raises(TokenError, match="Invalid refresh token"):
        tokens.refresh(tokens.create_refresh_token("u1"), "bearer", None)


def test_unknown_strategy_cannot_be_minted(tokens):
    with pytest.raises(ValueError):
        tokens.create_access_token("u1", "e@x.io", "builder", "refresh")


@pytest.mark.parametrize(
    "secret, refresh_secret",
    [(None, "r"), ("s", None), ("same", "same"), ("", "")],
)
def test_token_config_requires_distinct_secrets(secret, refresh_secret):
    with pytest.raises(ConfigurationError):
        TokenConfig(secret=secret, refresh_secret=refresh_secret)


def test_check_role():
    """Role predicate is pure and tolerates missing users."""
    is_staff = check_role(["admin", "recruiter"])
    assert is_staff(SimpleNamespace(role="admin"))
    assert not is_staff(SimpleNamespace(role="builder"))
    assert not is_staff(None)


def test_password_hash_round_trip():
    hashed = hash_password("SecurePass123")
    assert hashed != "SecurePass123"
    assert verify_password("SecurePass123", hashed)
    assert not verify_password("wrong-pass", hashed)
    assert not verify_password("SecurePass123", "not-a-hash")
