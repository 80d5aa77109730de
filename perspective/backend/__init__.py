"""Hosted backend access for Perspective."""

from perspective.backend.client import BackendClient, BackendError, get_backend, close_backend
from perspective.backend.auth import AuthClient, AuthEvent, Subscription
from perspective.backend.storage import StorageBucket

__all__ = [
    "BackendClient",
    "BackendError",
    "get_backend",
    "close_backend",
    "AuthClient",
    "AuthEvent",
    "Subscription",
    "StorageBucket",
]
