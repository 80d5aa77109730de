"""
Domain records for Perspective.
Rows come back from the hosted backend as JSON and are mapped onto these.
"""

import time
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Category(str, Enum):
    WELLNESS = "wellness"
    TRAVEL = "travel"
    CREATIVITY = "creativity"
    GROWTH = "growth"
    LIFESTYLE = "lifestyle"
    TECHNOLOGY = "technology"
    GENERAL = "general"


CATEGORIES = [c.value for c in Category]


@dataclass
class User:
    id: str
    email: str = ""

    @property
    def display_name(self) -> str:
        return self.email.split("@")[0] if self.email else self.id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(id=data["id"], email=data.get("email") or "")


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    expires_at: int
    user: User

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= int(time.time())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthSession":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=int(data["expires_at"]),
            user=User.from_dict(data["user"]),
        )

    @classmethod
    def from_token_response(cls, data: dict[str, Any]) -> "AuthSession":
        """Build a session from an auth service token payload."""
        expires_at = data.get("expires_at")
        if expires_at is None:
            expires_at = int(time.time()) + int(data.get("expires_in", 3600))
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=int(expires_at),
            user=User.from_dict(data["user"]),
        )


@dataclass
class BlogPost:
    """
    A single blog entry.
    Listing queries project a subset of columns, so content may be empty.
    """
    id: str
    title: str
    category: str
    published: bool
    created_at: Optional[datetime]
    user_id: Optional[str] = None
    content: str = ""
    excerpt: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def paragraphs(self) -> list[str]:
        return self.content.split("\n")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "BlogPost":
        created_at = row.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            category=row.get("category") or Category.GENERAL.value,
            published=bool(row.get("published")),
            created_at=created_at,
            user_id=row.get("user_id"),
            content=row.get("content") or "",
            excerpt=row.get("excerpt"),
            image_url=row.get("image_url"),
        )

    def __repr__(self):
        return f"<BlogPost {self.id}>"


@dataclass
class CoverImage:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1]
