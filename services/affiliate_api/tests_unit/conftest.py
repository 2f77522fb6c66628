import os
import sys
from functools import partial
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[3]
SRC = REPO_ROOT / "services" / "affiliate_api" / "src"
if str(SRC) not in sys.path:
    sys.path.append(str(SRC))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "memory://")
os.environ.setdefault("GHL_API_KEY", "test-crm-key")
os.environ.setdefault("GHL_LOCATION_ID", "test-location")
os.environ.setdefault("SITE_URL", "https://portal.example.test")

from affiliate_api import settings as settings_module

settings_module.get_settings.cache_clear()

from affiliate_api.bootstrap import get_lifecycle, get_token_store
from affiliate_api.identity import IdentityResolver
from affiliate_api.lifecycle import AuthLifecycle
from affiliate_api.main import app as fastapi_app
from affiliate_api.memory_store import MemoryTokenStore
from affiliate_api.notifier import MagicLinkNotifier, build_magic_link
from affiliate_api.routers.portal import link_rate_limiter

from .utils import AFFILIATE_TAG, FakeCrm, MutableClock, make_contact


@pytest.fixture()
def settings():
    return settings_module.get_settings()


@pytest.fixture()
def clock():
    return MutableClock()


@pytest.fixture()
def store():
    return MemoryTokenStore()


@pytest.fixture()
def crm():
    return FakeCrm(
        [
            make_contact(
                "c-active",
                "affiliate@example.com",
                fields={"affiliateCode": "ADA10", "totalReferrals": 7, "tier": "gold"},
            ),
            make_contact("c-other", "other@example.com", first_name="Grace", last_name="Hopper"),
            make_contact("c-lapsed", "lapsed@example.com", tags=["customer"]),
        ]
    )


@pytest.fixture()
def lifecycle(store, crm, settings, clock):
    return AuthLifecycle(
        store=store,
        resolver=IdentityResolver(crm, AFFILIATE_TAG),
        notifier=MagicLinkNotifier(settings, crm),
        link_builder=partial(build_magic_link, settings),
        clock=clock,
    )


@pytest.fixture()
async def async_client(lifecycle, store):
    fastapi_app.dependency_overrides[get_lifecycle] = lambda: lifecycle
    fastapi_app.dependency_overrides[get_token_store] = lambda: store
    link_rate_limiter.reset()
    try:
        import httpx

        transport = httpx.ASGITransport(app=fastapi_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        fastapi_app.dependency_overrides.clear()
        link_rate_limiter.reset()
