"""
Authentication routes for Perspective.
Sign in, sign up and sign out against the hosted auth service; the
resulting session is kept in a signed cookie.
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import RedirectResponse, Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from slowapi import Limiter
from slowapi.util import get_remote_address

from perspective import config
from perspective.backend.auth import AuthClient
from perspective.backend.client import BackendClient, BackendError, get_backend
from perspective.models import AuthSession
from perspective.routes.pages import render
from perspective.services.session import SessionTracker

router = APIRouter(prefix="/auth", tags=["auth"])

SESSION_COOKIE_NAME = "perspective_session"
SESSION_MAX_AGE = 60 * 60 * 24 * 30  # 30 days in seconds
CSRF_COOKIE_NAME = "perspective_csrf_token"

limiter = Limiter(key_func=get_remote_address)

serializer = URLSafeTimedSerializer(config.SECRET_KEY, salt="perspective-session")


# =============================================================================
# SESSION COOKIE
# =============================================================================

def load_session(request: Request) -> Optional[AuthSession]:
    """Read the signed session cookie, ignoring anything tampered or stale."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    try:
        return AuthSession.from_dict(serializer.loads(token, max_age=SESSION_MAX_AGE))
    except (BadSignature, SignatureExpired, KeyError, TypeError, ValueError):
        return None


def persist_session(response: Response, auth: AuthClient) -> Response:
    """Write the session cookie back if it changed during this request."""
    if not auth.changed:
        return response
    if auth.session is None:
        response.delete_cookie(
            key=SESSION_COOKIE_NAME,
            httponly=True,
            secure=config.IS_PRODUCTION,
            samesite="lax"
        )
    else:
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=serializer.dumps(auth.session.to_dict()),
            httponly=True,
            secure=config.IS_PRODUCTION,
            samesite="lax",
            max_age=SESSION_MAX_AGE
        )
    return response


async def get_session_tracker(
    request: Request,
    backend: BackendClient = Depends(get_backend)
):
    """Dependency that tracks the signed-in user for one request."""
    async with SessionTracker(AuthClient(backend, load_session(request))) as tracker:
        yield tracker


def login_redirect() -> RedirectResponse:
    """Send an anonymous visitor to the sign-in page."""
    response = RedirectResponse(url="/auth", status_code=303)
    response.delete_cookie(key=SESSION_COOKIE_NAME)
    return response


# =============================================================================
# CSRF
# =============================================================================

def generate_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def verify_csrf_token(request: Request, submitted_token: str) -> bool:
    """Verify CSRF token from cookie matches submitted token."""
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
    if not cookie_token or not submitted_token:
        return False
    return secrets.compare_digest(cookie_token, submitted_token)


def render_auth_page(
    request: Request,
    tracker: SessionTracker,
    mode: str = "login",
    error: Optional[str] = None,
    notice: Optional[str] = None,
    email: str = "",
    status_code: int = 200
):
    csrf_token = generate_csrf_token()
    response = render(
        request,
        "auth.html",
        {
            "mode": mode,
            "error": error,
            "notice": notice,
            "email": email,
            "csrf_token": csrf_token,
        },
        tracker=tracker,
        status_code=status_code,
    )
    # Double-submit pattern
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=csrf_token,
        httponly=True,
        secure=config.IS_PRODUCTION,
        samesite="strict",
        max_age=3600
    )
    return persist_session(response, tracker.auth)


# =============================================================================
# ROUTES
# =============================================================================

@router.get("")
async def auth_page(
    request: Request,
    mode: str = "login",
    tracker: SessionTracker = Depends(get_session_tracker)
):
    """Sign in / sign up page."""
    if tracker.user is not None:
        return persist_session(RedirectResponse(url="/my-blogs", status_code=303), tracker.auth)
    if mode not in ("login", "signup"):
        mode = "login"
    return render_auth_page(request, tracker, mode=mode)


@router.post("/login")
@limiter.limit("5/minute")
async def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    csrf_token: str = Form(...),
    tracker: SessionTracker = Depends(get_session_tracker)
):
    """Process the sign in form."""
    if not verify_csrf_token(request, csrf_token):
        raise HTTPException(status_code=403, detail="Invalid CSRF token")

    try:
        await tracker.auth.sign_in_with_password(email, password)
    except BackendError as exc:
        return render_auth_page(
            request, tracker, mode="login", error=exc.message, email=email, status_code=401
        )

    response = RedirectResponse(url="/my-blogs", status_code=303)
    response.delete_cookie(key=CSRF_COOKIE_NAME)
    return persist_session(response, tracker.auth)


@router.post("/signup")
@limiter.limit("5/minute")
async def signup(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    csrf_token: str = Form(...),
    tracker: SessionTracker = Depends(get_session_tracker)
):
    """Process the sign up form."""
    if not verify_csrf_token(request, csrf_token):
        raise HTTPException(status_code=403, detail="Invalid CSRF token")

    try:
        session = await tracker.auth.sign_up(email, password)
    except BackendError as exc:
        return render_auth_page(
            request, tracker, mode="signup", error=exc.message, email=email, status_code=400
        )

    if session is None:
        return render_auth_page(
            request, tracker, mode="login", email=email,
            notice="Check your email to confirm your account, then sign in."
        )

    response = RedirectResponse(url="/my-blogs", status_code=303)
    response.delete_cookie(key=CSRF_COOKIE_NAME)
    return persist_session(response, tracker.auth)


@router.post("/logout")
async def logout(tracker: SessionTracker = Depends(get_session_tracker)):
    """Sign out and clear the session cookie."""
    await tracker.auth.sign_out()
    response = RedirectResponse(url="/", status_code=303)
    return persist_session(response, tracker.auth)
