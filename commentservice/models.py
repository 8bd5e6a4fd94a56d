"""Domain records for posts and their threaded comments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def _iso(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment is not None else None


@dataclass
class Post:
    """A post that readers may comment on."""

    title: str
    content: str
    author_id: str
    comments_enabled: bool = True
    id: str = ""
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the post in its wire (JSON) shape."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "authorId": self.author_id,
            "commentsEnabled": self.comments_enabled,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Comment:
    """A comment on a post; a reply when ``parent_id`` is set."""

    post_id: str
    author_id: str
    content: str
    parent_id: str | None = None
    id: str = ""
    created_at: datetime | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        """Return the comment in its wire (JSON) shape; ``parentId`` only for replies."""
        data: dict[str, Any] = {
            "id": self.id,
            "postId": self.post_id,
            "authorId": self.author_id,
            "content": self.content,
            "createdAt": _iso(self.created_at),
        }
        if self.parent_id is not None:
            data["parentId"] = self.parent_id
        return data