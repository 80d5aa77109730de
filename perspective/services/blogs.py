"""
Blog repository for Perspective.
CRUD against the hosted "blogs" table plus cover uploads to "blog-images".
"""

import logging
import time
from typing import TYPE_CHECKING, Any, Optional

from perspective import config
from perspective.backend.auth import AuthClient
from perspective.backend.client import BackendClient, BackendError, eq
from perspective.backend.storage import StorageBucket
from perspective.models import BlogPost, CoverImage

if TYPE_CHECKING:
    from perspective.services.forms import BlogDraft

logger = logging.getLogger(__name__)

LIST_COLUMNS = "id,title,excerpt,image_url,category,published,created_at,user_id"
MUTABLE_FIELDS = {"title", "content", "excerpt", "category", "image_url", "published"}
RETURN_ROWS = {"Prefer": "return=representation"}


def cover_key(user_id: str, image: CoverImage, now: Optional[float] = None) -> str:
    """Per-user object key: {user_id}/{epoch millis}.{ext}."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"{user_id}/{millis}.{image.extension}"


class BlogRepository:
    def __init__(self, backend: BackendClient, auth: AuthClient):
        self.backend = backend
        self.auth = auth
        self.path = f"/rest/v1/{config.BLOGS_TABLE}"

    @property
    def bucket(self) -> StorageBucket:
        return StorageBucket(self.backend, config.IMAGE_BUCKET, token=self.auth.access_token)

    async def _rows(self, method: str, params: dict[str, str], **kwargs: Any) -> list[dict]:
        response = await self.backend.request(
            method, self.path, token=self.auth.access_token, params=params, **kwargs
        )
        if not response.content:
            return []
        return response.json()

    @staticmethod
    def _match(post_id: str, owner_id: Optional[str] = None) -> dict[str, str]:
        params = {"id": eq(post_id)}
        if owner_id is not None:
            params["user_id"] = eq(owner_id)
        return params

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def list_owned(self, user_id: str) -> list[BlogPost]:
        """Posts owned by user_id, newest first."""
        rows = await self._rows("GET", {
            "select": LIST_COLUMNS,
            "user_id": eq(user_id),
            "order": "created_at.desc",
        })
        return [BlogPost.from_row(row) for row in rows]

    async def list_published(
        self,
        category: Optional[str] = None,
        limit: int = 24
    ) -> list[BlogPost]:
        """Published posts for the public pages, newest first."""
        params = {
            "select": LIST_COLUMNS,
            "published": eq("true"),
            "order": "created_at.desc",
            "limit": str(limit),
        }
        if category:
            params["category"] = eq(category)
        rows = await self._rows("GET", params)
        return [BlogPost.from_row(row) for row in rows]

    async def fetch_by_id(self, post_id: str) -> Optional[BlogPost]:
        """A single post, or None when no row has this id."""
        if not post_id:
            return None
        rows = await self._rows("GET", {"select": "*", "id": eq(post_id), "limit": "1"})
        return BlogPost.from_row(rows[0]) if rows else None

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    async def upload_cover(self, user_id: str, image: CoverImage) -> str:
        """Upload a cover image and return its public URL."""
        key = cover_key(user_id, image)
        bucket = self.bucket
        try:
            await bucket.upload(key, image.content, image.content_type)
        except BackendError as exc:
            logger.error("Image upload error: %s", exc.message)
            raise BackendError("Failed to upload image", status_code=exc.status_code) from exc
        return bucket.public_url(key)

    async def create(
        self,
        user_id: str,
        draft: "BlogDraft",
        image: Optional[CoverImage] = None
    ) -> BlogPost:
        """Insert a post, uploading its cover image first when given.

        An image uploaded before a failed insert stays in the bucket.
        """
        image_url = None
        if image is not None:
            image_url = await self.upload_cover(user_id, image)

        record = {**draft.to_record(), "user_id": user_id, "image_url": image_url}
        try:
            rows = await self._rows("POST", {}, json=record, headers=RETURN_ROWS)
        except BackendError:
            if image_url:
                logger.warning("Insert failed after upload; orphaned image at %s", image_url)
            raise
        if not rows:
            raise BackendError("Failed to create blog")
        post = BlogPost.from_row(rows[0])
        logger.info("Created blog %s for user %s", post.id, user_id)
        return post

    async def update_field(
        self,
        post_id: str,
        patch: dict[str, Any],
        owner_id: Optional[str] = None
    ) -> Optional[BlogPost]:
        """Partial update; returns the updated post, or None if nothing matched.

        With owner_id the row must also belong to that user.
        """
        unknown = set(patch) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        rows = await self._rows(
            "PATCH", self._match(post_id, owner_id), json=patch, headers=RETURN_ROWS
        )
        return BlogPost.from_row(rows[0]) if rows else None

    async def set_published(
        self,
        post_id: str,
        published: bool,
        owner_id: Optional[str] = None
    ) -> Optional[BlogPost]:
        return await self.update_field(post_id, {"published": published}, owner_id)

    async def toggle_published(self, post: BlogPost) -> Optional[BlogPost]:
        return await self.set_published(post.id, not post.published)

    async def delete(self, post_id: str, owner_id: Optional[str] = None) -> bool:
        """Permanently remove a post. Its cover image is left in storage.

        Returns False when no row matched.
        """
        rows = await self._rows(
            "DELETE", self._match(post_id, owner_id), headers=RETURN_ROWS
        )
        if not rows:
            return False
        logger.info("Deleted blog %s", post_id)
        return True
