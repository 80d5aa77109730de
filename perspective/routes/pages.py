from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Form, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from perspective.models import CATEGORIES
from perspective.services.session import SessionTracker, ThemePreference

router = APIRouter()
templates = Jinja2Templates(directory=Path(__file__).parent.parent / "templates")

THEME_MAX_AGE = 60 * 60 * 24 * 365

# Dismissible notifications shown after a redirect (?notice=... / ?error=...)
NOTICES = {
    "created": ("Blog created!", "Your blog is now live."),
    "drafted": ("Blog created!", "Your blog has been saved as a draft."),
    "updated": ("Blog updated", "Your changes have been saved."),
    "published": ("Published", "Blog is now live"),
    "unpublished": ("Unpublished", "Blog is now a draft"),
    "deleted": ("Deleted", "Blog has been removed"),
}
ERRORS = {
    "status": "Failed to update blog status",
    "delete": "Failed to delete blog",
    "missing": "That blog no longer exists",
}


def theme_for(request: Request) -> ThemePreference:
    prefers_dark = request.headers.get("Sec-CH-Prefers-Color-Scheme") == "dark"
    return ThemePreference(request.cookies, prefers_dark=prefers_dark)


def render(
    request: Request,
    name: str,
    context: dict,
    tracker: Optional[SessionTracker] = None,
    status_code: int = 200
):
    """Render a page with the shared header state filled in."""
    notice = NOTICES.get(request.query_params.get("notice", ""))
    error = ERRORS.get(request.query_params.get("error", ""))
    page = {
        "user": tracker.user if tracker else None,
        "theme": theme_for(request).current,
        "categories": CATEGORIES,
        "toast": notice,
        "toast_error": error,
        **context,
    }
    return templates.TemplateResponse(request, name, page, status_code=status_code)


def is_safe_redirect_url(url: str) -> bool:
    """Only relative, same-origin paths may be redirected to."""
    if not url:
        return False
    parsed = urlparse(url)
    return not parsed.scheme and not parsed.netloc and url.startswith('/')


@router.post("/theme")
async def toggle_theme(request: Request, next: str = Form("/")):
    """Flip the stored theme and go back to the page the toggle was on."""
    if not is_safe_redirect_url(next):
        next = "/"
    stored: dict[str, str] = {}
    theme = theme_for(request).toggle(stored)
    response = RedirectResponse(url=next, status_code=303)
    response.set_cookie(
        key=ThemePreference.KEY,
        value=theme,
        max_age=THEME_MAX_AGE,
        samesite="lax"
    )
    return response
