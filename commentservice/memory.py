"""Storage backend that keeps everything in process memory."""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone

from commentservice.models import Comment, Post
from commentservice.storage import (
    CommentsDisabledError,
    NotFoundError,
    PaginationArgs,
    Storage,
    validate_comment_content,
)


def _by_creation(comment: Comment) -> datetime:
    return comment.created_at or datetime.min.replace(tzinfo=timezone.utc)


class MemoryStore(Storage):
    """Thread-safe in-memory storage of posts and comments."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._posts: dict[str, Post] = {}
        self._comments: dict[str, Comment] = {}
        self._roots_by_post: defaultdict[str, list[str]] = defaultdict(list)
        self._children_by_parent: defaultdict[str, list[str]] = defaultdict(list)

    # Posts

    def create_post(self, post: Post) -> Post:
        with self._lock:
            post.id = str(uuid.uuid4())
            post.created_at = datetime.now(timezone.utc)
            self._posts[post.id] = post
            return post

    def get_post(self, post_id: str) -> Post:
        with self._lock:
            try:
                return self._posts[post_id]
            except KeyError:
                raise NotFoundError(f"post with id {post_id} not found") from None

    def get_posts(self, limit: int, offset: int) -> list[Post]:
        with self._lock:
            ordered = sorted(
                self._posts.values(),
                key=lambda p: p.created_at or datetime.min.replace(tzinfo=timezone.utc),
                reverse=True,
            )
        return ordered[offset : offset + limit]

    def toggle_comments(self, post_id: str, enable: bool) -> Post:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                raise NotFoundError(f"post with id {post_id} not found")
            post.comments_enabled = enable
            return post

    # Comments

    def create_comment(self, comment: Comment) -> Comment:
        with self._lock:
            post = self._posts.get(comment.post_id)
            if post is None:
                raise NotFoundError("post not found")
            if not post.comments_enabled:
                raise CommentsDisabledError("comments are disabled for this post")
            validate_comment_content(comment.content)
            if comment.parent_id is not None and comment.parent_id not in self._comments:
                raise NotFoundError("parent comment not found")

            comment.id = str(uuid.uuid4())
            comment.created_at = datetime.now(timezone.utc)
            self._comments[comment.id] = comment
            if comment.parent_id is None:
                self._roots_by_post[comment.post_id].append(comment.id)
            else:
                self._children_by_parent[comment.parent_id].append(comment.id)
            return comment

    def get_comment(self, comment_id: str) -> Comment:
        with self._lock:
            try:
                return self._comments[comment_id]
            except KeyError:
                raise NotFoundError("comment not found") from None

    # Pagination

    def comments_by_post(self, post_id: str, args: PaginationArgs) -> list[Comment]:
        with self._lock:
            ids = self._roots_by_post.get(post_id, [])
            return self._paginate(ids, args)

    def comments_by_parent(self, parent_id: str, args: PaginationArgs) -> list[Comment]:
        with self._lock:
            ids = self._children_by_parent.get(parent_id, [])
            return self._paginate(ids, args)

    def _resolve_sorted(self, ids: list[str]) -> list[Comment]:
        found = [self._comments[i] for i in ids if i in self._comments]
        return sorted(found, key=_by_creation)

    def _paginate(self, ids: list[str], args: PaginationArgs) -> list[Comment]:
        ordered = self._resolve_sorted(ids)
        start = 0
        if args.cursor is not None:
            start = next(
                (pos + 1 for pos, c in enumerate(ordered) if c.id == args.cursor),
                0,
            )
        return ordered[start : start + args.limit]

    # Batch loading

    def children_by_parent_ids(self, parent_ids: list[str]) -> dict[str, list[Comment]]:
        with self._lock:
            return {
                parent_id: self._resolve_sorted(self._children_by_parent.get(parent_id, []))
                for parent_id in parent_ids
            }