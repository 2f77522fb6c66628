import os
import sys
from functools import partial
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.append(str(SRC))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "memory://")
os.environ.setdefault("GHL_API_KEY", "test-crm-key")
os.environ.setdefault("GHL_LOCATION_ID", "test-location")
os.environ.setdefault("SITE_URL", "https://portal.example.test")

from affiliate_api import settings as settings_module

settings_module.get_settings.cache_clear()

from sqlalchemy import text

from affiliate_api.db.base import Base
from affiliate_api.db.engine import build_engine
from affiliate_api.db.session import build_session_maker
from affiliate_api.identity import IdentityResolver
from affiliate_api.lifecycle import AuthLifecycle
from affiliate_api.notifier import MagicLinkNotifier, build_magic_link
from affiliate_api.token_store import SqlTokenStore

from tests_unit.utils import AFFILIATE_TAG, FakeCrm, MutableClock, make_contact


@pytest.fixture()
def db_url(tmp_path) -> str:
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'tokens.db'}"


@pytest.fixture()
async def engine(db_url: str):
    engine = build_engine(db_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text("DELETE FROM auth_tokens"))
    except Exception:
        await engine.dispose()
        pytest.skip("Database not available")
    yield engine
    await engine.dispose()


@pytest.fixture()
def sql_store(engine) -> SqlTokenStore:
    return SqlTokenStore(engine, build_session_maker(engine))


@pytest.fixture()
def clock():
    return MutableClock()


@pytest.fixture()
def crm():
    return FakeCrm(
        [
            make_contact("c-active", "affiliate@example.com", fields={"tier": "gold"}),
            make_contact("c-other", "other@example.com", first_name="Grace", last_name="Hopper"),
        ]
    )


@pytest.fixture()
def sql_lifecycle(sql_store, crm, clock):
    settings = settings_module.get_settings()
    return AuthLifecycle(
        store=sql_store,
        resolver=IdentityResolver(crm, AFFILIATE_TAG),
        notifier=MagicLinkNotifier(settings, crm),
        link_builder=partial(build_magic_link, settings),
        clock=clock,
    )
