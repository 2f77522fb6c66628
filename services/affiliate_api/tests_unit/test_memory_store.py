from datetime import timedelta

import pytest

from affiliate_api.issuer import generate_token, utcnow
from affiliate_api.memory_store import MemoryTokenStore
from affiliate_api.models import TokenKind
from affiliate_api.token_store import DuplicateTokenError

pytestmark = pytest.mark.asyncio


async def test_insert_and_find():
    store = MemoryTokenStore()
    now = utcnow()
    value = generate_token()

    token = await store.insert("a@example.com", value, TokenKind.MAGIC_LINK, "c-1", now + timedelta(minutes=15))

    assert token.id == 1
    assert await store.find_by_value(value) == token
    assert await store.find_by_value(value, TokenKind.MAGIC_LINK) == token
    assert await store.find_by_value(value, TokenKind.SESSION) is None
    assert await store.find_by_value_and_email(value, "a@example.com", TokenKind.MAGIC_LINK) == token
    assert await store.find_by_value_and_email(value, "b@example.com", TokenKind.MAGIC_LINK) is None


async def test_duplicate_value_rejected_across_kinds_and_emails():
    store = MemoryTokenStore()
    value = generate_token()
    expires = utcnow() + timedelta(days=1)
    await store.insert("a@example.com", value, TokenKind.MAGIC_LINK, "c-1", expires)

    with pytest.raises(DuplicateTokenError):
        await store.insert("b@example.com", value, TokenKind.SESSION, "c-2", expires)

    original = await store.find_by_value(value)
    assert original.email == "a@example.com"


async def test_delete_by_email_and_kind_is_scoped_and_idempotent():
    store = MemoryTokenStore()
    expires = utcnow() + timedelta(days=1)
    await store.insert("a@example.com", generate_token(), TokenKind.MAGIC_LINK, "c-1", expires)
    session = await store.insert("a@example.com", generate_token(), TokenKind.SESSION, "c-1", expires)
    other = await store.insert("b@example.com", generate_token(), TokenKind.MAGIC_LINK, "c-2", expires)

    assert await store.delete_by_email_and_kind("a@example.com", TokenKind.MAGIC_LINK) == 1
    assert await store.delete_by_email_and_kind("a@example.com", TokenKind.MAGIC_LINK) == 0
    assert await store.find_by_value(session.value) is not None
    assert await store.find_by_value(other.value) is not None


async def test_delete_by_id_reports_whether_removed():
    store = MemoryTokenStore()
    token = await store.insert(
        "a@example.com", generate_token(), TokenKind.SESSION, "c-1", utcnow() + timedelta(days=1)
    )

    assert await store.delete_by_id(token.id) is True
    assert await store.delete_by_id(token.id) is False
    assert await store.find_by_value(token.value) is None


async def test_value_reusable_after_delete():
    store = MemoryTokenStore()
    value = generate_token()
    expires = utcnow() + timedelta(days=1)
    token = await store.insert("a@example.com", value, TokenKind.SESSION, "c-1", expires)
    await store.delete_by_id(token.id)

    again = await store.insert("a@example.com", value, TokenKind.SESSION, "c-1", expires)
    assert again.id != token.id


async def test_sweep_and_count():
    store = MemoryTokenStore()
    now = utcnow()
    live = await store.insert("a@example.com", generate_token(), TokenKind.SESSION, "c-1", now + timedelta(hours=1))
    stale = await store.insert("b@example.com", generate_token(), TokenKind.MAGIC_LINK, "c-2", now - timedelta(seconds=1))

    assert await store.count(now) == 1
    assert await store.sweep_expired(now) == 1
    assert await store.sweep_expired(now) == 0
    assert await store.find_by_value(stale.value) is None
    assert await store.find_by_value(live.value) is not None


async def test_consume_and_issue_session_replaces_sessions():
    store = MemoryTokenStore()
    expires = utcnow() + timedelta(days=30)
    link = await store.insert("a@example.com", generate_token(), TokenKind.MAGIC_LINK, "c-1", expires)
    old = await store.insert("a@example.com", generate_token(), TokenKind.SESSION, "c-1", expires)
    neighbour = await store.insert("b@example.com", generate_token(), TokenKind.SESSION, "c-2", expires)
    value = generate_token()

    session = await store.consume_and_issue_session(link.id, "a@example.com", value, "c-1", expires)

    assert session is not None
    assert session.kind is TokenKind.SESSION
    assert await store.find_by_value(value, TokenKind.SESSION) == session
    assert await store.find_by_value(link.value) is None
    assert await store.find_by_value(old.value) is None
    assert await store.find_by_value(neighbour.value) == neighbour


async def test_consume_and_issue_session_claims_link_once():
    store = MemoryTokenStore()
    expires = utcnow() + timedelta(days=30)
    link = await store.insert("a@example.com", generate_token(), TokenKind.MAGIC_LINK, "c-1", expires)

    first = await store.consume_and_issue_session(link.id, "a@example.com", generate_token(), "c-1", expires)
    second = await store.consume_and_issue_session(link.id, "a@example.com", generate_token(), "c-1", expires)

    assert first is not None
    assert second is None
    assert await store.count() == 1


async def test_consume_and_issue_session_collision_changes_nothing():
    store = MemoryTokenStore()
    expires = utcnow() + timedelta(days=30)
    link = await store.insert("a@example.com", generate_token(), TokenKind.MAGIC_LINK, "c-1", expires)
    current = await store.insert("a@example.com", generate_token(), TokenKind.SESSION, "c-1", expires)
    foreign = await store.insert("b@example.com", generate_token(), TokenKind.SESSION, "c-2", expires)

    with pytest.raises(DuplicateTokenError):
        await store.consume_and_issue_session(link.id, "a@example.com", foreign.value, "c-1", expires)

    assert await store.find_by_value(link.value) == link
    assert await store.find_by_value(current.value) == current
    assert await store.find_by_value(foreign.value) == foreign
