"""
Security headers for every Perspective response.

Cover images are served straight from the backend's storage host, so
img-src has to allow that origin.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from perspective import config


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    PERMISSIONS_POLICY = ", ".join([
        "camera=()",
        "geolocation=()",
        "microphone=()",
        "payment=()",
        "usb=()",
    ])

    CSP_DIRECTIVES = {
        "default-src": "'self'",
        "script-src": "'self' 'unsafe-inline'",
        "style-src": "'self' 'unsafe-inline'",
        "img-src": f"'self' data: {config.BACKEND_URL}",
        "frame-ancestors": "'none'",
        "base-uri": "'self'",
        "form-action": "'self'",
    }

    def __init__(self, app, csp_overrides: dict | None = None):
        super().__init__(app)
        directives = {**self.CSP_DIRECTIVES, **(csp_overrides or {})}
        self.csp = "; ".join(
            f"{key} {value}".strip() if value else key
            for key, value in directives.items()
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["Content-Security-Policy"] = self.csp
        response.headers["Permissions-Policy"] = self.PERMISSIONS_POLICY
        # Ask browsers for the colour-scheme hint used by the theme default
        response.headers["Accept-CH"] = "Sec-CH-Prefers-Color-Scheme"

        if config.IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
