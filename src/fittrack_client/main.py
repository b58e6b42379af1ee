# src/fittrack_client/main.py

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from .config import load_settings
from .context import AppContext
from .errors import AllTiersExhausted, AuthFailure
from .guards import GuardDecision

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)

# Liveness polling must not count as user activity
UNTRACKED_PREFIXES = ("/api/bff/health",)


class ActivityTrackingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        context: Optional[AppContext] = getattr(request.app.state, "context", None)
        if context is not None and not request.url.path.startswith(UNTRACKED_PREFIXES):
            context.session.update_activity()
        return await call_next(request)


class LoginRequest(BaseModel):
    email: str
    password: str


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def _redirect(decision: GuardDecision) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
        detail=decision.reason or "Redirect",
        headers={"Location": decision.redirect_to},
    )


# --- Guard dependencies ---

async def require_auth(request: Request, context: AppContext = Depends(get_context)) -> dict:
    decision = await context.guard.require_auth(request.url.path)
    if not decision.allowed:
        raise _redirect(decision)
    return context.auth.user


async def require_admin(request: Request, context: AppContext = Depends(get_context)) -> dict:
    decision = await context.guard.require_admin(request.url.path)
    if not decision.allowed:
        raise _redirect(decision)
    return context.auth.user


async def guest_only(request: Request, context: AppContext = Depends(get_context)) -> None:
    decision = await context.guard.guest_only(request.url.path)
    if not decision.allowed:
        raise _redirect(decision)


router = APIRouter()


@router.get("/")
async def read_root(context: AppContext = Depends(get_context)):
    await context.auth.ensure_initialized()
    return {
        "message": "FitTrack BFF is running",
        "authenticated": context.auth.is_authenticated,
        "user": context.auth.user,
        "loading": context.store.is_any_loading,
        "errors": context.store.error_messages,
    }


# --- Authentication Routes ---

@router.get("/login", dependencies=[Depends(guest_only)])
async def login_page(session: Optional[str] = None):
    return {
        "login": True,
        "session_expired": session == "expired",
        "demo_users_url": "/api/bff/demo-users",
    }


@router.post("/login")
async def login(credentials: LoginRequest, context: AppContext = Depends(get_context)):
    ok = await context.auth.login(credentials.email, credentials.password)
    if not ok:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=context.auth.auth_error)
    redirect_to = context.guard.after_login()
    logger.info(f"MAIN: /login - {credentials.email} logged in, redirecting to {redirect_to}")
    return {
        "success": True,
        "user": context.auth.user,
        "degraded": context.auth.last_result_degraded,
        "redirect_to": redirect_to,
    }


@router.get("/logout")
async def logout(context: AppContext = Depends(get_context)):
    await context.auth.logout()
    return RedirectResponse(url="/login", status_code=status.HTTP_302_FOUND)


# --- BFF API Endpoints (called by the frontend) ---

@router.get("/api/bff/userinfo")
async def get_user_info(user: dict = Depends(require_auth), context: AppContext = Depends(get_context)):
    return {"user": user, "degraded": context.auth.last_result_degraded}


@router.get("/api/bff/activities")
async def get_activities(
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(0, ge=0),
    mine: bool = False,
    user: dict = Depends(require_auth),
    context: AppContext = Depends(get_context),
):
    result = await context.data.activity_feed(user_id=user["id"] if mine else None, limit=limit, page=page)
    return result.to_payload()


@router.get("/api/bff/friends/activities")
async def get_friend_activities(
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(require_auth),
    context: AppContext = Depends(get_context),
):
    result = await context.data.friend_activity(user["id"], limit=limit)
    return result.to_payload()


@router.get("/api/bff/admin/users", dependencies=[Depends(require_admin)])
async def get_all_users(context: AppContext = Depends(get_context)):
    result = await context.data.all_users()
    return result.to_payload()


@router.get("/api/bff/demo-users")
async def get_demo_users(context: AppContext = Depends(get_context)):
    result = await context.data.demo_users()
    return result.to_payload()


@router.get("/api/bff/session")
async def get_session_info(context: AppContext = Depends(get_context)):
    session = context.session
    return {
        "state": session.state.value,
        "expired": session.expired,
        "timeout_seconds": session.timeout,
        "time_remaining": session.formatted_time_remaining,
        "timer_running": session.timer_running,
    }


@router.get("/api/bff/health")
async def get_health(context: AppContext = Depends(get_context)):
    health = await context.health.probe_chain()
    return health.model_dump(mode="json")


@router.get("/api/bff/health/diagnostics")
async def get_diagnostics(context: AppContext = Depends(get_context)):
    diagnosis = await context.health.diagnose()
    network = await context.health.run_network_diagnostics(context.backend)
    return {
        "connection": diagnosis.model_dump(mode="json"),
        "network": network.model_dump(mode="json"),
    }


# --- Error mapping ---

async def all_tiers_exhausted_handler(request: Request, exc: AllTiersExhausted):
    logger.error(f"MAIN: {request.url.path} - service unavailable: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "success": False,
            "message": "Service unavailable",
            "resource": exc.resource,
            "failures": [f.model_dump() for f in exc.failures],
        },
    )


async def auth_failure_handler(request: Request, exc: AuthFailure):
    return JSONResponse(
        status_code=exc.status,
        content={"success": False, "message": exc.message},
        headers={"WWW-Authenticate": "Bearer"} if exc.status == 401 else None,
    )


def create_app(context_factory: Optional[Callable[[], AppContext]] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("--- FitTrack BFF (FastAPI) Starting Up ---")
        context = context_factory() if context_factory is not None else AppContext(load_settings())
        app.state.context = context
        try:
            await context.start()
            logger.info(f"API base URL: {context.settings.api_base_url}")
            logger.info(f"Direct backend configured: {'Yes' if context.backend.configured else 'No'}")
            yield
        finally:
            await context.aclose()
            logger.info("--- FitTrack BFF shut down ---")

    app = FastAPI(
        title="FitTrack BFF API",
        description="Backend-For-Frontend for the FitTrack UI: resilient data access and session lifecycle.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(ActivityTrackingMiddleware)
    app.add_exception_handler(AllTiersExhausted, all_tiers_exhausted_handler)
    app.add_exception_handler(AuthFailure, auth_failure_handler)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    uvicorn.run("fittrack_client.main:app", host="127.0.0.1", port=8000)
