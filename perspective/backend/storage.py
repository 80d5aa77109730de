"""Object storage bucket access."""

from typing import Optional
from urllib.parse import quote

from perspective.backend.client import BackendClient


class StorageBucket:
    def __init__(self, backend: BackendClient, name: str, token: Optional[str] = None):
        self.backend = backend
        self.name = name
        self.token = token

    async def upload(self, key: str, content: bytes, content_type: str) -> str:
        """Store bytes under key and return the key."""
        await self.backend.request(
            "POST",
            f"/storage/v1/object/{self.name}/{quote(key)}",
            token=self.token,
            headers={"Content-Type": content_type, "x-upsert": "false"},
            content=content,
        )
        return key

    def public_url(self, key: str) -> str:
        return f"{self.backend.url}/storage/v1/object/public/{self.name}/{quote(key)}"
