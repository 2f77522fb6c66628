import secrets
from datetime import datetime, timedelta, timezone

from affiliate_api.models import TokenKind

TOKEN_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
TOKEN_LENGTH = 64

MAGIC_LINK_TTL = timedelta(minutes=15)
SESSION_TTL = timedelta(days=30)

_TTL_BY_KIND = {
    TokenKind.MAGIC_LINK: MAGIC_LINK_TTL,
    TokenKind.SESSION: SESSION_TTL,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token() -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def compute_expiry(kind: TokenKind, now: datetime | None = None) -> datetime:
    """Absolute expiry for a freshly minted token of ``kind``.

    Pass the request's ``now`` so every comparison in one request shares a
    single clock reading.
    """
    return (now or utcnow()) + _TTL_BY_KIND[kind]


def looks_like_token(value: str) -> bool:
    return len(value) == TOKEN_LENGTH and all(ch in TOKEN_ALPHABET for ch in value)
