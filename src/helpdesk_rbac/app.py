"""
FastAPI application factory.

create_app wires settings, logging, the session middleware, the RBAC engine
and the routers. Tests pass their own engine/provider; in production both
are built from the environment.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.sessions import SessionMiddleware

from .access import create_access_router
from .engine import RBACEngine, build_engine
from .log import clear_log_context, configure_logging, set_log_context
from .microsoft import GraphClient, MicrosoftOAuthProvider, app_http_client, create_oauth
from .protocol import OAuthProvider
from .router import create_auth_router
from .session import touch_session_activity
from .settings import Settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[RBACEngine] = None,
    provider: Optional[OAuthProvider] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.environment, settings.log_level)

    app_graph = None
    if engine is None:
        if settings.client_id and settings.client_secret and settings.tenant_id:
            app_graph = GraphClient(app_http_client(settings))
        else:
            logger.warning("App-only Graph credentials not configured; RBAC lists will not be read")
        engine = build_engine(settings, app_graph)
    provider = provider or MicrosoftOAuthProvider(create_oauth(settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if app_graph is not None:
            await app_graph.http.aclose()

    app = FastAPI(title="Helpdesk RBAC", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Tag log lines with a request id and keep last_activity_at current."""
        set_log_context(request_id=request.headers.get("x-request-id") or uuid.uuid4().hex[:12])
        try:
            response = await call_next(request)
            if "user" in request.session:
                touch_session_activity(request)
            return response
        finally:
            clear_log_context()

    # Added last so it wraps the middleware above and request.session is available there
    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret)

    app.include_router(create_auth_router(provider, engine, debug=settings.debug))
    app.include_router(create_access_router(engine))

    @app.get("/")
    async def home(request: Request):
        user = request.session.get("user")
        return {"logged_in": bool(user), "user": user}

    @app.get("/health", tags=["monitoring"])
    async def health_check():
        return {"status": "healthy"}

    return app
