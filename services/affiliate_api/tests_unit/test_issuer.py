from datetime import datetime, timedelta, timezone

from affiliate_api.issuer import (
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
    compute_expiry,
    generate_token,
    looks_like_token,
)
from affiliate_api.models import Token, TokenKind


def test_generate_token_shape():
    token = generate_token()
    assert len(token) == TOKEN_LENGTH == 64
    assert set(token) <= set(TOKEN_ALPHABET)
    assert looks_like_token(token)


def test_generate_token_is_not_repeated():
    tokens = {generate_token() for _ in range(500)}
    assert len(tokens) == 500


def test_compute_expiry_uses_given_now():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert compute_expiry(TokenKind.MAGIC_LINK, now) == now + timedelta(minutes=15)
    assert compute_expiry(TokenKind.SESSION, now) == now + timedelta(days=30)


def test_looks_like_token_rejects_other_shapes():
    assert not looks_like_token("A" * 64)
    assert not looks_like_token("a" * 63)
    assert not looks_like_token("a" * 63 + "-")


def test_token_expiry_boundary():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    token = Token(
        id=1,
        email="a@example.com",
        value="a" * 64,
        kind=TokenKind.SESSION,
        subject_id="c-1",
        expires_at=now,
        created_at=now,
    )
    assert token.is_expired(now)
    assert not token.is_expired(now - timedelta(seconds=1))
