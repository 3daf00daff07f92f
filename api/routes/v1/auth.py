"""
api/routes/v1/auth.py -- Account admission REST endpoints.

Routes:
  POST /api/v1/auth/login     -- password login; sets session cookie
  POST /api/v1/auth/register  -- create account; sets session cookie unless whitelisted
  POST /api/v1/auth/logout    -- clears session cookie; 200
  GET  /api/v1/auth/me        -- current account (requires auth)

The admission decisions live in auth/admission.py. These handlers only map
the request body in, attach the issued token to the response, and map the
outcome out. AdmissionError subclasses propagate to the handler registered in
api/main.py, which renders {"error": {"code", "message"}}.

login and register are sync def handlers: FastAPI runs them in its threadpool,
so bcrypt work never blocks the event loop.

Security:
  POST /login and /register are rate-limited per IP (Settings.*_rate_limit).
  Cache-Control: no-store on responses that carry a session.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthRequest, LoginResponse, MeResponse, RegisterResponse
from auth import admission
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse, response_model_by_alias=True)
def login(request: Request, body: AuthRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    Responds with {"userId": ...}, or {"hasTempPassword": true} when the
    account logged in with a temporary password and must change it.
    """
    user_store: UserStore = request.app.state.user_store
    outcome = admission.login(user_store, body.username, body.password)

    resp = JSONResponse(status_code=200, content=outcome.body())
    set_session_cookie(resp, outcome.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.register_rate_limit)
@router.post("/auth/register", response_model=RegisterResponse, response_model_by_alias=True)
def register(request: Request, body: AuthRequest) -> JSONResponse:
    """Create an account and, unless it awaits whitelist approval, start a session.

    The first account of the installation becomes its owner. On a whitelisted
    deployment every later account is stored as PENDING and the request fails
    with WhitelistPending; no cookie is set.
    """
    user_store: UserStore = request.app.state.user_store
    outcome = admission.register(user_store, body.username, body.password)

    resp = JSONResponse(status_code=200, content=outcome.body())
    set_session_cookie(resp, outcome.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the session cookie."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse, response_model_by_alias=True)
async def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity and standing of the currently authenticated account."""
    return MeResponse.from_user(current_user)
