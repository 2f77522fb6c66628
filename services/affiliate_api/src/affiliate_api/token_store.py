import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from affiliate_api.issuer import utcnow
from affiliate_api.models import AuthToken, Token, TokenKind

logger = logging.getLogger(__name__)


class TokenStoreError(Exception):
    pass


class DuplicateTokenError(TokenStoreError):
    pass


class TokenStore(Protocol):
    async def insert(
        self,
        email: str,
        value: str,
        kind: TokenKind,
        subject_id: str,
        expires_at: datetime,
    ) -> Token: ...

    async def find_by_value(self, value: str, kind: TokenKind | None = None) -> Token | None: ...

    async def find_by_value_and_email(
        self, value: str, email: str, kind: TokenKind
    ) -> Token | None: ...

    async def delete_by_email_and_kind(self, email: str, kind: TokenKind) -> int: ...

    async def delete_by_id(self, token_id: int) -> bool: ...

    async def consume_and_issue_session(
        self,
        link_id: int,
        email: str,
        value: str,
        subject_id: str,
        expires_at: datetime,
    ) -> Token | None: ...


    async def sweep_expired(self, now: datetime) -> int: ...

    async def count(self, now: datetime | None = None) -> int: ...

    async def close(self) -> None: ...


class SqlTokenStore:
    """Token store on any SQLAlchemy async engine (PostgreSQL or SQLite).

    Uniqueness of ``value`` is enforced by the table's unique constraint, so
    concurrent inserts racing on the same value cannot both succeed.
    """

    def __init__(self, engine: AsyncEngine, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._engine = engine
        self._session_maker = session_maker

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("token store failure: %s", exc.__class__.__name__)
            raise TokenStoreError("token store unavailable") from exc

    async def insert(
        self,
        email: str,
        value: str,
        kind: TokenKind,
        subject_id: str,
        expires_at: datetime,
    ) -> Token:
        row = AuthToken(
            email=email,
            value=value,
            kind=kind.value,
            subject_id=subject_id,
            expires_at=expires_at,
            created_at=utcnow(),
        )
        async with self._session() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateTokenError("token value already exists") from exc
            return Token.from_row(row)

    async def find_by_value(self, value: str, kind: TokenKind | None = None) -> Token | None:
        stmt = select(AuthToken).where(AuthToken.value == value)
        if kind is not None:
            stmt = stmt.where(AuthToken.kind == kind.value)
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return Token.from_row(row) if row else None

    async def find_by_value_and_email(
        self, value: str, email: str, kind: TokenKind
    ) -> Token | None:
        stmt = select(AuthToken).where(
            AuthToken.value == value,
            AuthToken.email == email,
            AuthToken.kind == kind.value,
        )
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return Token.from_row(row) if row else None

    async def delete_by_email_and_kind(self, email: str, kind: TokenKind) -> int:
        async with self._session() as session:
            result = await session.execute(
                delete(AuthToken).where(AuthToken.email == email, AuthToken.kind == kind.value)
            )
            await session.commit()
        return result.rowcount or 0

    async def delete_by_id(self, token_id: int) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(AuthToken).where(AuthToken.id == token_id))
            await session.commit()
        return bool(result.rowcount)

    async def consume_and_issue_session(
        self,
        link_id: int,
        email: str,
        value: str,
        subject_id: str,
        expires_at: datetime,
    ) -> Token | None:
        """Claim a magic link and replace the email's sessions in one transaction.

        Returns None when the link row was already claimed. On a duplicate
        session value nothing is committed, so the link stays usable.
        """
        row = AuthToken(
            email=email,
            value=value,
            kind=TokenKind.SESSION.value,
            subject_id=subject_id,
            expires_at=expires_at,
            created_at=utcnow(),
        )
        async with self._session() as session:
            claimed = await session.execute(
                delete(AuthToken).where(
                    AuthToken.id == link_id,
                    AuthToken.kind == TokenKind.MAGIC_LINK.value,
                )
            )
            if not claimed.rowcount:
                await session.rollback()
                return None
            await session.execute(
                delete(AuthToken).where(
                    AuthToken.email == email,
                    AuthToken.kind == TokenKind.SESSION.value,
                )
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateTokenError("token value already exists") from exc
            return Token.from_row(row)

    async def sweep_expired(self, now: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(delete(AuthToken).where(AuthToken.expires_at < now))
            await session.commit()
        return result.rowcount or 0

    async def count(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        async with self._session() as session:
            result = await session.execute(
                select(func.count()).select_from(AuthToken).where(AuthToken.expires_at > now)
            )
        return int(result.scalar_one())

    async def close(self) -> None:
        await self._engine.dispose()
