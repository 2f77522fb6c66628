import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from affiliate_api.bootstrap import build_services, get_token_store
from affiliate_api.issuer import utcnow
from affiliate_api.lifecycle import LINK_INVALID, LINK_REQUEST_ACK, SESSION_EXPIRED
from affiliate_api.logging_config import configure_logging
from affiliate_api.request_id import REQUEST_ID_HEADER, resolve_request_id, set_request_id
from affiliate_api.routers.portal import router as portal_router
from affiliate_api.schemas import HealthOut
from affiliate_api.settings import get_settings
from affiliate_api.token_store import TokenStore, TokenStoreError

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Malformed bodies get the same answer as any other denial on that endpoint.
_GENERIC_RESPONSES = {
    "/api/magic-link-request": {"success": True, "message": LINK_REQUEST_ACK},
    "/api/magic-link-verify": {"success": False, "message": LINK_INVALID},
    "/api/affiliate-validate": {"success": False, "message": SESSION_EXPIRED},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(settings)
    app.state.services = services
    services.sweeper.start()
    logger.info("affiliate auth api ready env=%s port=%s", settings.app_env, settings.port)
    try:
        yield
    finally:
        await services.sweeper.stop()
        await services.store.close()


app = FastAPI(title="Affiliate Auth API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.include_router(portal_router)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    if settings.app_env.lower() == "prod":
        if request.url.path in ("/docs", "/redoc", "/openapi.json"):
            return Response(status_code=404)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    body = _GENERIC_RESPONSES.get(request.url.path)
    if body is None:
        return await request_validation_exception_handler(request, exc)
    logger.info("rejected malformed request path=%s", request.url.path)
    return JSONResponse(status_code=200, content=body)


@app.get("/health", response_model=HealthOut)
async def health(store: TokenStore = Depends(get_token_store)):
    now = utcnow()
    status = "ok"
    try:
        active_tokens = await store.count(now)
    except TokenStoreError:
        logger.exception("health check could not reach token store")
        status = "degraded"
        active_tokens = None
    return HealthOut(
        status=status,
        timestamp=now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        active_tokens=active_tokens,
    )
