"""Magic-link and session lifecycle for the affiliate portal.

Per email the flow is ``anonymous -> link issued -> authenticated``:

* ``request_link`` mints a 15 minute magic-link token and mails it.
* ``verify_link`` consumes that token and mints a 30 day session token.
* ``validate_session`` checks a session token bound to its email.

Every denial, whatever its cause, is reported with one fixed message per
flow so callers cannot tell which emails or tokens exist.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from pydantic import EmailStr, TypeAdapter, ValidationError

from affiliate_api.crm_client import CrmError
from affiliate_api.identity import Identity, IdentityResolver, normalize_email
from affiliate_api.issuer import compute_expiry, generate_token, looks_like_token, utcnow
from affiliate_api.models import TokenKind
from affiliate_api.notifier import NotificationError
from affiliate_api.token_store import TokenStore, TokenStoreError

logger = logging.getLogger(__name__)

LINK_REQUEST_ACK = "If an account exists, a login link has been sent."
LINK_INVALID = "This link has expired or is invalid. Please request a new one."
SESSION_EXPIRED = "Session expired. Please log in again."

_EMAIL_ADAPTER = TypeAdapter(EmailStr)


class Notifier(Protocol):
    async def send_magic_link(self, identity: Identity, link: str) -> None: ...


@dataclass(frozen=True)
class LinkRequestResult:
    success: bool = True
    message: str = LINK_REQUEST_ACK


@dataclass(frozen=True)
class VerifyResult:
    success: bool
    message: str | None = None
    session_token: str | None = None
    email: str | None = None
    profile: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionResult:
    success: bool
    message: str | None = None
    profile: dict[str, str] = field(default_factory=dict)


def is_valid_email(value: str | None) -> bool:
    if not value or not value.strip():
        return False
    try:
        _EMAIL_ADAPTER.validate_python(value.strip())
    except ValidationError:
        return False
    return True


class AuthLifecycle:
    def __init__(
        self,
        store: TokenStore,
        resolver: IdentityResolver,
        notifier: Notifier,
        link_builder: Callable[[str], str],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._notifier = notifier
        self._link_builder = link_builder
        self._clock = clock

    async def request_link(self, email: str | None) -> LinkRequestResult:
        if not is_valid_email(email):
            return LinkRequestResult()
        email = normalize_email(email)
        now = self._clock()

        try:
            identity = await self._resolver.resolve_by_email(email)
            if not self._resolver.is_authorized(identity):
                logger.info("link request denied: no authorized contact")
                return LinkRequestResult()
            # Last issued wins: an older link stops working immediately.
            await self._store.delete_by_email_and_kind(email, TokenKind.MAGIC_LINK)
            token = await self._store.insert(
                email=email,
                value=generate_token(),
                kind=TokenKind.MAGIC_LINK,
                subject_id=identity.contact_id,
                expires_at=compute_expiry(TokenKind.MAGIC_LINK, now),
            )
        except (CrmError, TokenStoreError):
            logger.exception("link request failed")
            return LinkRequestResult()
        except Exception:  # noqa: BLE001
            logger.exception("link request failed unexpectedly")
            return LinkRequestResult()

        # The token stays valid if delivery fails; the user can simply ask again.
        try:
            await self._notifier.send_magic_link(identity, self._link_builder(token.value))
        except NotificationError:
            logger.exception("magic link delivery failed contact_id=%s", identity.contact_id)
        except Exception:  # noqa: BLE001
            logger.exception("magic link delivery failed unexpectedly contact_id=%s", identity.contact_id)
        return LinkRequestResult()

    async def verify_link(self, token_value: str | None) -> VerifyResult:
        denied = VerifyResult(success=False, message=LINK_INVALID)
        if not token_value or not looks_like_token(token_value):
            return denied
        now = self._clock()

        try:
            link = await self._store.find_by_value(token_value, TokenKind.MAGIC_LINK)
            if link is None:
                return denied
            if link.is_expired(now):
                await self._store.delete_by_id(link.id)
                return denied

            identity = await self._resolver.resolve_by_contact_id(link.subject_id)
            if not self._resolver.is_authorized(identity):
                logger.info("link verify denied: contact no longer authorized")
                return denied
            profile = identity.profile()

            # None means a concurrent verification already consumed the link.
            session = await self._store.consume_and_issue_session(
                link_id=link.id,
                email=link.email,
                value=generate_token(),
                subject_id=identity.contact_id,
                expires_at=compute_expiry(TokenKind.SESSION, now),
            )
            if session is None:
                return denied
        except (CrmError, TokenStoreError):
            logger.exception("link verify failed")
            return denied
        except Exception:  # noqa: BLE001
            logger.exception("link verify failed unexpectedly")
            return denied

        logger.info("session issued contact_id=%s", identity.contact_id)
        return VerifyResult(
            success=True,
            session_token=session.value,
            email=link.email,
            profile=profile,
        )

    async def validate_session(self, token_value: str | None, email: str | None) -> SessionResult:
        denied = SessionResult(success=False, message=SESSION_EXPIRED)
        if not token_value or not looks_like_token(token_value):
            return denied
        if not email or not email.strip():
            return denied
        email = normalize_email(email)
        now = self._clock()

        try:
            session = await self._store.find_by_value_and_email(token_value, email, TokenKind.SESSION)
            if session is None:
                return denied
            if session.is_expired(now):
                await self._store.delete_by_id(session.id)
                return denied

            identity = await self._resolver.resolve_by_contact_id(session.subject_id)
            if not self._resolver.is_authorized(identity):
                logger.info("session denied: contact no longer authorized")
                return denied
            profile = identity.profile()
        except (CrmError, TokenStoreError):
            logger.exception("session validation failed")
            return denied
        except Exception:  # noqa: BLE001
            logger.exception("session validation failed unexpectedly")
            return denied

        return SessionResult(success=True, profile=profile)
