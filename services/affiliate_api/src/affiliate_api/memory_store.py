import itertools
import threading
from datetime import datetime

from affiliate_api.issuer import utcnow
from affiliate_api.models import Token, TokenKind
from affiliate_api.token_store import DuplicateTokenError


class MemoryTokenStore:
    """In-process token store for development and tests.

    State lives in this object only; restarting the process drops every
    token. A single lock serialises all mutations.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._by_id: dict[int, Token] = {}
        self._id_by_value: dict[str, int] = {}

    async def insert(
        self,
        email: str,
        value: str,
        kind: TokenKind,
        subject_id: str,
        expires_at: datetime,
    ) -> Token:
        with self._lock:
            if value in self._id_by_value:
                raise DuplicateTokenError("token value already exists")
            token = Token(
                id=next(self._ids),
                email=email,
                value=value,
                kind=kind,
                subject_id=subject_id,
                expires_at=expires_at,
                created_at=utcnow(),
            )
            self._by_id[token.id] = token
            self._id_by_value[value] = token.id
            return token

    async def find_by_value(self, value: str, kind: TokenKind | None = None) -> Token | None:
        with self._lock:
            token_id = self._id_by_value.get(value)
            token = self._by_id.get(token_id) if token_id is not None else None
        if token is None or (kind is not None and token.kind != kind):
            return None
        return token

    async def find_by_value_and_email(
        self, value: str, email: str, kind: TokenKind
    ) -> Token | None:
        token = await self.find_by_value(value, kind)
        if token is None or token.email != email:
            return None
        return token

    async def delete_by_email_and_kind(self, email: str, kind: TokenKind) -> int:
        with self._lock:
            doomed = [t for t in self._by_id.values() if t.email == email and t.kind == kind]
            for token in doomed:
                self._remove(token)
        return len(doomed)

    async def delete_by_id(self, token_id: int) -> bool:
        with self._lock:
            token = self._by_id.get(token_id)
            if token is None:
                return False
            self._remove(token)
        return True

    async def consume_and_issue_session(
        self,
        link_id: int,
        email: str,
        value: str,
        subject_id: str,
        expires_at: datetime,
    ) -> Token | None:
        with self._lock:
            link = self._by_id.get(link_id)
            if link is None or link.kind != TokenKind.MAGIC_LINK:
                return None
            doomed = [link] + [
                t for t in self._by_id.values() if t.email == email and t.kind == TokenKind.SESSION
            ]
            holder = self._id_by_value.get(value)
            if holder is not None and holder not in {t.id for t in doomed}:
                raise DuplicateTokenError("token value already exists")
            for token in doomed:
                self._remove(token)
            session = Token(
                id=next(self._ids),
                email=email,
                value=value,
                kind=TokenKind.SESSION,
                subject_id=subject_id,
                expires_at=expires_at,
                created_at=utcnow(),
            )
            self._by_id[session.id] = session
            self._id_by_value[value] = session.id
            return session

    async def sweep_expired(self, now: datetime) -> int:
        with self._lock:
            doomed = [t for t in self._by_id.values() if t.expires_at < now]
            for token in doomed:
                self._remove(token)
        return len(doomed)

    async def count(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        with self._lock:
            return sum(1 for t in self._by_id.values() if t.expires_at > now)

    async def close(self) -> None:
        return None

    def _remove(self, token: Token) -> None:
        del self._by_id[token.id]
        del self._id_by_value[token.value]
