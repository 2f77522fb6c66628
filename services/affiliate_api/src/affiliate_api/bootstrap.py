import logging
from dataclasses import dataclass
from functools import partial

from fastapi import Request

from affiliate_api.crm_client import CrmClient
from affiliate_api.db.engine import build_engine
from affiliate_api.db.session import build_session_maker
from affiliate_api.identity import IdentityResolver
from affiliate_api.lifecycle import AuthLifecycle
from affiliate_api.memory_store import MemoryTokenStore
from affiliate_api.notifier import MagicLinkNotifier, build_magic_link
from affiliate_api.settings import Settings
from affiliate_api.sweeper import ExpiredTokenSweeper
from affiliate_api.token_store import SqlTokenStore, TokenStore

logger = logging.getLogger(__name__)

MEMORY_STORE_URL = "memory://"


@dataclass
class Services:
    store: TokenStore
    lifecycle: AuthLifecycle
    sweeper: ExpiredTokenSweeper


def build_token_store(settings: Settings) -> TokenStore:
    if settings.database_url == MEMORY_STORE_URL:
        if settings.app_env.lower() == "prod":
            logger.warning("in-memory token store in prod: tokens are lost on restart")
        return MemoryTokenStore()
    engine = build_engine(settings.database_url)
    return SqlTokenStore(engine, build_session_maker(engine))


def build_services(settings: Settings) -> Services:
    store = build_token_store(settings)
    client = CrmClient(settings)
    lifecycle = AuthLifecycle(
        store=store,
        resolver=IdentityResolver(client, settings.affiliate_tag),
        notifier=MagicLinkNotifier(settings, client),
        link_builder=partial(build_magic_link, settings),
    )
    sweeper = ExpiredTokenSweeper(store, interval_seconds=settings.token_sweep_interval_seconds)
    return Services(store=store, lifecycle=lifecycle, sweeper=sweeper)


def get_lifecycle(request: Request) -> AuthLifecycle:
    return request.app.state.services.lifecycle


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.services.store
