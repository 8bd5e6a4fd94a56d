"""Storage contract shared by every backend, with its errors and pagination arguments."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from commentservice.models import Comment, Post

MAX_COMMENT_BYTES = 2000


class StorageError(Exception):
    """Base class for errors raised by a storage backend."""


class NotFoundError(StorageError, LookupError):
    """A post or comment that was asked for does not exist."""


class ValidationError(StorageError, ValueError):
    """Input that a backend refuses to store."""


class CommentsDisabledError(StorageError):
    """The post does not accept new comments."""


@dataclass(frozen=True)
class PaginationArgs:
    """Page size and the id of the last item already seen."""

    limit: int
    cursor: str | None = None


def validate_comment_content(content: str) -> None:
    """Raise ValidationError unless the content is non-blank and at most 2000 bytes."""
    if len(content.encode("utf-8")) > MAX_COMMENT_BYTES:
        raise ValidationError("comment content is too long")
    if not content.strip():
        raise ValidationError("comment content cannot be empty")


class Storage(ABC):
    """What a backend for posts and comments must provide."""

    @abstractmethod
    def get_posts(self, limit: int, offset: int) -> list[Post]:
        """Return posts, newest first, skipping ``offset`` and taking at most ``limit``."""

    @abstractmethod
    def get_post(self, post_id: str) -> Post:
        """Return the post or raise NotFoundError."""

    @abstractmethod
    def create_post(self, post: Post) -> Post:
        """Store the post, filling in its id and creation time."""

    @abstractmethod
    def toggle_comments(self, post_id: str, enable: bool) -> Post:
        """Switch commenting on or off for a post."""

    @abstractmethod
    def create_comment(self, comment: Comment) -> Comment:
        """Validate and store a comment, filling in its id and creation time."""

    @abstractmethod
    def get_comment(self, comment_id: str) -> Comment:
        """Return the comment or raise NotFoundError."""

    @abstractmethod
    def comments_by_post(self, post_id: str, args: PaginationArgs) -> list[Comment]:
        """Return a page of a post's top-level comments, oldest first."""

    @abstractmethod
    def comments_by_parent(self, parent_id: str, args: PaginationArgs) -> list[Comment]:
        """Return a page of replies to a comment, oldest first."""

    @abstractmethod
    def children_by_parent_ids(self, parent_ids: list[str]) -> dict[str, list[Comment]]:
        """Return all replies for each of the given comments, oldest first."""