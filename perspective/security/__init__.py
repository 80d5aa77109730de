"""Security modules for Perspective."""

from perspective.security.headers import SecurityHeadersMiddleware

__all__ = ["SecurityHeadersMiddleware"]
