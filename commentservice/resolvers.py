"""Query, mutation and subscription resolvers for posts and threaded comments."""

from __future__ import annotations

import queue
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

from commentservice.models import Comment, Post
from commentservice.storage import (
    NotFoundError,
    PaginationArgs,
    Storage,
    StorageError,
)

DEFAULT_CHILDREN_LIMIT = 5
DEFAULT_POST_COMMENTS_LIMIT = 10
DEFAULT_POSTS_LIMIT = 10
DEFAULT_POSTS_OFFSET = 0


class Subscription:
    """A live feed of comments added to one post.

    It buffers a single comment; comments published while the buffer is full are dropped.
    """

    def __init__(self, observer: CommentObserver, post_id: str, sub_id: str) -> None:
        self.observer = observer
        self.post_id = post_id
        self.id = sub_id
        self._queue: queue.Queue[Comment] = queue.Queue(maxsize=1)
        self._closed = False

    def _offer(self, comment: Comment) -> bool:
        try:
            self._queue.put_nowait(comment)
        except queue.Full:
            return False
        return True

    def get(self, timeout: float | None = None) -> Comment:
        """Wait for the next comment; raise TimeoutError if none arrives in time."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("no comment arrived in time") from None

    def close(self) -> None:
        """Stop receiving comments."""
        if not self._closed:
            self._closed = True
            self.observer.unsubscribe(self.post_id, self.id)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class CommentObserver:
    """Keeps the subscribers of each post and hands new comments to them."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subs: dict[str, dict[str, Subscription]] = {}

    def subscribe(self, post_id: str) -> Subscription:
        """Register a new subscriber for comments on ``post_id``."""
        sub = Subscription(self, post_id, str(uuid.uuid4()))
        with self._lock:
            self._subs.setdefault(post_id, {})[sub.id] = sub
        return sub

    def unsubscribe(self, post_id: str, sub_id: str) -> None:
        """Remove a subscriber; the post's entry goes once it has none left."""
        with self._lock:
            post_subs = self._subs.get(post_id)
            if post_subs is None:
                return
            post_subs.pop(sub_id, None)
            if not post_subs:
                del self._subs[post_id]

    def publish(self, comment: Comment) -> int:
        """Offer a comment to every subscriber of its post without blocking.

        Returns how many subscribers took it.
        """
        with self._lock:
            targets = list(self._subs.get(comment.post_id, {}).values())
        return sum(1 for sub in targets if sub._offer(comment))

    def subscriber_count(self, post_id: str) -> int:
        """Number of live subscribers for a post."""
        with self._lock:
            return len(self._subs.get(post_id, {}))


@dataclass(frozen=True)
class NewPost:
    """Input for creating a post."""

    title: str
    content: str
    author_id: str


@dataclass(frozen=True)
class NewComment:
    """Input for creating a comment or a reply."""

    post_id: str
    author_id: str
    content: str
    parent_id: str | None = None


@dataclass(frozen=True)
class CommentEdge:
    """A comment together with the cursor that points at it."""

    node: Comment
    cursor: str


@dataclass(frozen=True)
class PageInfo:
    """Whether more comments follow and where this page ended."""

    has_next_page: bool
    end_cursor: str | None = None


@dataclass(frozen=True)
class CommentConnection:
    """One page of comments."""

    edges: list[CommentEdge] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=lambda: PageInfo(False))


def _connection(comments: list[Comment], limit: int) -> CommentConnection:
    has_next_page = len(comments) > limit
    page = comments[:limit]
    edges = [CommentEdge(node=c, cursor=c.id) for c in page]
    end_cursor = edges[-1].cursor if edges else None
    return CommentConnection(
        edges=edges,
        page_info=PageInfo(has_next_page=has_next_page, end_cursor=end_cursor),
    )


class Resolver:
    """Answers every field of the schema from a storage backend."""

    def __init__(self, storage: Storage, observer: CommentObserver | None = None) -> None:
        self.storage = storage
        self.observer = observer if observer is not None else CommentObserver()

    # Comment fields

    def parent(self, comment: Comment) -> Comment | None:
        """The comment this one replies to, or None for a top-level comment."""
        if comment.parent_id is None:
            return None
        return self.storage.get_comment(comment.parent_id)

    def children(
        self, comment: Comment, limit: int | None = None, cursor: str | None = None
    ) -> CommentConnection:
        """A page of replies to ``comment``."""
        size = DEFAULT_CHILDREN_LIMIT if limit is None else limit
        try:
            found = self.storage.comments_by_parent(
                comment.id, PaginationArgs(limit=size + 1, cursor=cursor)
            )
        except StorageError as exc:
            raise StorageError(f"failed to get children comments: {exc}") from exc
        return _connection(found, size)

    # Mutations

    def create_post(self, new: NewPost) -> Post:
        """Create a post with comments enabled."""
        post = Post(
            title=new.title,
            content=new.content,
            author_id=new.author_id,
            comments_enabled=True,
        )
        return self.storage.create_post(post)

    def toggle_comments(self, post_id: str, enable: bool) -> Post:
        """Switch commenting on a post on or off."""
        try:
            self.storage.get_post(post_id)
        except StorageError:
            raise NotFoundError("post not found") from None
        return self.storage.toggle_comments(post_id, enable)

    def create_comment(self, new: NewComment) -> Comment:
        """Store a comment and notify the post's subscribers."""
        comment = Comment(
            post_id=new.post_id,
            parent_id=new.parent_id,
            author_id=new.author_id,
            content=new.content,
        )
        created = self.storage.create_comment(comment)
        self.observer.publish(created)
        return created

    # Post fields

    def post_comments(
        self, post: Post, limit: int | None = None, cursor: str | None = None
    ) -> CommentConnection:
        """A page of a post's top-level comments."""
        size = DEFAULT_POST_COMMENTS_LIMIT if limit is None else limit
        try:
            found = self.storage.comments_by_post(
                post.id, PaginationArgs(limit=size + 1, cursor=cursor)
            )
        except StorageError as exc:
            raise StorageError(f"failed to get post comments: {exc}") from exc
        return _connection(found, size)

    # Queries

    def posts(self, limit: int | None = None, offset: int | None = None) -> list[Post]:
        """Posts, newest first."""
        return self.storage.get_posts(
            DEFAULT_POSTS_LIMIT if limit is None else limit,
            DEFAULT_POSTS_OFFSET if offset is None else offset,
        )

    def post(self, post_id: str) -> Post:
        """A single post."""
        return self.storage.get_post(post_id)

    # Subscriptions

    def comment_added(self, post_id: str) -> Subscription:
        """Subscribe to new comments on an existing post."""
        try:
            self.storage.get_post(post_id)
        except StorageError:
            raise NotFoundError("post not found") from None
        return self.observer.subscribe(post_id)