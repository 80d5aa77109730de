"""
Blog form validation and submission.

validate_draft() is pure and performs no I/O, so the same rules can be
checked anywhere. BlogFormController drives one form through a submission
and talks to the repository only after validation passes.
"""

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from perspective import config
from perspective.backend.client import BackendError
from perspective.models import BlogPost, CATEGORIES, CoverImage
from perspective.services.blogs import BlogRepository

logger = logging.getLogger(__name__)

TITLE_MIN = 3
TITLE_MAX = 200
CONTENT_MIN = 50
EXCERPT_MAX = 300
DERIVED_EXCERPT_LENGTH = 150


class DraftInvalid(ValueError):
    """First violated form constraint; message is user-facing."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class BlogDraft(BaseModel):
    """Validated blog form payload."""
    model_config = ConfigDict(validate_default=True)

    title: str = ""
    content: str = ""
    excerpt: Optional[str] = None
    category: str = ""
    published: bool = False

    @field_validator("title")
    @classmethod
    def check_title(cls, value: str) -> str:
        if len(value) < TITLE_MIN:
            raise PydanticCustomError("title_short", "Title must be at least 3 characters")
        if len(value) > TITLE_MAX:
            raise PydanticCustomError("title_long", "Title is too long")
        return value

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        if len(value) < CONTENT_MIN:
            raise PydanticCustomError("content_short", "Content must be at least 50 characters")
        return value

    @field_validator("excerpt")
    @classmethod
    def check_excerpt(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > EXCERPT_MAX:
            raise PydanticCustomError("excerpt_long", "Excerpt is too long")
        return value or None

    @field_validator("category")
    @classmethod
    def check_category(cls, value: str) -> str:
        if not value:
            raise PydanticCustomError("category_missing", "Please select a category")
        if value not in CATEGORIES:
            raise PydanticCustomError("category_unknown", "Unknown category")
        return value

    @property
    def resolved_excerpt(self) -> str:
        return derive_excerpt(self.content, self.excerpt)

    def to_record(self) -> dict[str, Any]:
        """Columns written to the blogs table."""
        return {
            "title": self.title,
            "content": self.content,
            "excerpt": self.resolved_excerpt,
            "category": self.category,
            "published": self.published,
        }


def derive_excerpt(content: str, excerpt: Optional[str] = None) -> str:
    """Authored excerpt, or the first 150 characters of content plus an ellipsis."""
    if excerpt:
        return excerpt
    return content[:DERIVED_EXCERPT_LENGTH] + "..."


def validate_draft(data: dict[str, Any]) -> BlogDraft:
    """Validate raw form data, raising DraftInvalid for the first failure only."""
    try:
        return BlogDraft.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        raise DraftInvalid(first["msg"], field=field) from None


def validate_image(image: CoverImage) -> CoverImage:
    if image.size > config.MAX_IMAGE_BYTES:
        raise DraftInvalid("Please select an image under 5MB", field="image")
    if not image.content_type.startswith("image/"):
        raise DraftInvalid("Please select an image file", field="image")
    return image


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    REJECTED = "rejected"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SubmissionInProgress(RuntimeError):
    pass


class BlogFormController:
    """
    One form's submission lifecycle.

    idle -> validating -> rejected -> idle
                       -> submitting -> succeeded
                                     -> failed -> idle

    Rejections and failures leave the controller idle with `error` set, so
    the user can retry with the same or corrected input.
    """

    def __init__(self, repository: BlogRepository):
        self.repository = repository
        self.state = SubmissionState.IDLE
        self.transitions: list[SubmissionState] = [SubmissionState.IDLE]
        self.error: Optional[str] = None
        self.image: Optional[CoverImage] = None

    def _move(self, state: SubmissionState) -> None:
        self.state = state
        self.transitions.append(state)

    @property
    def succeeded(self) -> bool:
        return self.state is SubmissionState.SUCCEEDED

    def select_image(self, image: Optional[CoverImage]) -> bool:
        """Hold the chosen cover image if it passes the local checks."""
        if image is None:
            self.image = None
            return True
        try:
            self.image = validate_image(image)
        except DraftInvalid as exc:
            self.error = exc.message
            return False
        return True

    def _validate(self, data: dict[str, Any]) -> Optional[BlogDraft]:
        if self.state is SubmissionState.SUBMITTING or self.state is SubmissionState.VALIDATING:
            raise SubmissionInProgress("A submission is already in flight")
        self.error = None
        self._move(SubmissionState.VALIDATING)
        try:
            draft = validate_draft(data)
            if self.image is not None:
                validate_image(self.image)
        except DraftInvalid as exc:
            self.error = exc.message
            self._move(SubmissionState.REJECTED)
            self._move(SubmissionState.IDLE)
            return None
        self._move(SubmissionState.SUBMITTING)
        return draft

    def _fail(self, exc: BackendError, fallback: str) -> None:
        self.error = exc.message or fallback
        self._move(SubmissionState.FAILED)
        self._move(SubmissionState.IDLE)

    async def submit_new(self, user_id: str, data: dict[str, Any]) -> Optional[BlogPost]:
        """Validate and create a post; returns it, or None with `error` set."""
        draft = self._validate(data)
        if draft is None:
            return None
        try:
            post = await self.repository.create(user_id, draft, self.image)
        except BackendError as exc:
            logger.error("Blog creation error: %s", exc.message)
            self._fail(exc, "Failed to create blog")
            return None
        self._move(SubmissionState.SUCCEEDED)
        return post

    async def submit_edit(self, post: BlogPost, data: dict[str, Any]) -> Optional[BlogPost]:
        """Validate and apply a full edit to an existing post."""
        draft = self._validate(data)
        if draft is None:
            return None
        patch = draft.to_record()
        try:
            if self.image is not None:
                patch["image_url"] = await self.repository.upload_cover(post.user_id, self.image)
            updated = await self.repository.update_field(post.id, patch)
        except BackendError as exc:
            logger.error("Blog update error: %s", exc.message)
            self._fail(exc, "Failed to update blog")
            return None
        if updated is None:
            self._fail(BackendError("Blog not found"), "Blog not found")
            return None
        self._move(SubmissionState.SUCCEEDED)
        return updated
