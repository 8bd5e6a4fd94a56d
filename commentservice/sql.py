"""Storage backend on a relational database reached through SQLAlchemy."""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import ColumnElement

from commentservice.models import Comment, Post
from commentservice.storage import (
    CommentsDisabledError,
    NotFoundError,
    PaginationArgs,
    Storage,
    StorageError,
    validate_comment_content,
)

_metadata = MetaData()

posts_table = Table(
    "posts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("content", Text, nullable=False),
    Column("author_id", String(255), nullable=False),
    Column("comments_enabled", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

comments_table = Table(
    "comments",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("post_id", String(36), ForeignKey("posts.id"), nullable=False, index=True),
    Column("parent_id", String(36), ForeignKey("comments.id"), nullable=True, index=True),
    Column("author_id", String(255), nullable=False),
    Column("content", String(2000), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


def _aware(moment: datetime | None) -> datetime | None:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _post_from_row(row: Any) -> Post:
    return Post(
        id=row.id,
        title=row.title,
        content=row.content,
        author_id=row.author_id,
        comments_enabled=bool(row.comments_enabled),
        created_at=_aware(row.created_at),
    )


def _comment_from_row(row: Any) -> Comment:
    return Comment(
        id=row.id,
        post_id=row.post_id,
        parent_id=row.parent_id,
        author_id=row.author_id,
        content=row.content,
        created_at=_aware(row.created_at),
    )


def _make_engine(url: str) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
        # One shared connection, or every checkout would see a fresh empty database.
        return create_engine(
            parsed,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(parsed)


class SqlStore(Storage):
    """Posts and comments kept in an SQL database; the schema is created on start."""

    def __init__(self, url: str) -> None:
        try:
            self._engine = _make_engine(url)
            with self._engine.connect():
                pass
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to connect to database: {exc}") from exc
        try:
            _metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to migrate database: {exc}") from exc
        self._clock_lock = threading.Lock()
        self._last_stamp: datetime | None = None

    def _now(self) -> datetime:
        """Current UTC time, strictly later than any stamp this store handed out before."""
        with self._clock_lock:
            now = datetime.now(timezone.utc)
            if self._last_stamp is not None and now <= self._last_stamp:
                now = self._last_stamp + timedelta(microseconds=1)
            self._last_stamp = now
            return now

    # Posts

    def create_post(self, post: Post) -> Post:
        new_id = str(uuid.uuid4())
        created = self._now()
        with self._engine.begin() as conn:
            conn.execute(
                insert(posts_table).values(
                    id=new_id,
                    title=post.title,
                    content=post.content,
                    author_id=post.author_id,
                    comments_enabled=post.comments_enabled,
                    created_at=created,
                )
            )
        post.id = new_id
        post.created_at = created
        return post

    def get_post(self, post_id: str) -> Post:
        with self._engine.connect() as conn:
            row = conn.execute(select(posts_table).where(posts_table.c.id == post_id)).first()
        if row is None:
            raise NotFoundError(f"post with id {post_id} not found")
        return _post_from_row(row)

    def get_posts(self, limit: int, offset: int) -> list[Post]:
        stmt = (
            select(posts_table)
            .order_by(posts_table.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._engine.connect() as conn:
            return [_post_from_row(row) for row in conn.execute(stmt)]

    def toggle_comments(self, post_id: str, enable: bool) -> Post:
        with self._engine.begin() as conn:
            row = conn.execute(select(posts_table).where(posts_table.c.id == post_id)).first()
            if row is None:
                raise NotFoundError(f"post with id {post_id} not found")
            conn.execute(
                update(posts_table)
                .where(posts_table.c.id == post_id)
                .values(comments_enabled=enable)
            )
        post = _post_from_row(row)
        post.comments_enabled = enable
        return post

    # Comments

    def create_comment(self, comment: Comment) -> Comment:
        validate_comment_content(comment.content)
        new_id = str(uuid.uuid4())
        created = self._now()
        with self._engine.begin() as conn:
            enabled = conn.execute(
                select(posts_table.c.comments_enabled).where(posts_table.c.id == comment.post_id)
            ).first()
            if enabled is None:
                raise NotFoundError("post not found")
            if not enabled.comments_enabled:
                raise CommentsDisabledError("comments are disabled for this post")
            if comment.parent_id is not None:
                parent = conn.execute(
                    select(comments_table.c.id).where(comments_table.c.id == comment.parent_id)
                ).first()
                if parent is None:
                    raise NotFoundError("parent comment not found")
            conn.execute(
                insert(comments_table).values(
                    id=new_id,
                    post_id=comment.post_id,
                    parent_id=comment.parent_id,
                    author_id=comment.author_id,
                    content=comment.content,
                    created_at=created,
                )
            )
        comment.id = new_id
        comment.created_at = created
        return comment

    def get_comment(self, comment_id: str) -> Comment:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(comments_table).where(comments_table.c.id == comment_id)
            ).first()
        if row is None:
            raise NotFoundError("comment not found")
        return _comment_from_row(row)

    # Pagination

    def comments_by_post(self, post_id: str, args: PaginationArgs) -> list[Comment]:
        return self._page(
            (comments_table.c.post_id == post_id) & comments_table.c.parent_id.is_(None),
            args,
        )

    def comments_by_parent(self, parent_id: str, args: PaginationArgs) -> list[Comment]:
        return self._page(comments_table.c.parent_id == parent_id, args)

    def _page(self, condition: ColumnElement[bool], args: PaginationArgs) -> list[Comment]:
        stmt = (
            select(comments_table)
            .where(condition)
            .order_by(comments_table.c.created_at.asc())
            .limit(args.limit)
        )
        with self._engine.connect() as conn:
            if args.cursor is not None:
                cursor_time = conn.execute(
                    select(comments_table.c.created_at).where(comments_table.c.id == args.cursor)
                ).scalar()
                if cursor_time is not None:
                    stmt = stmt.where(comments_table.c.created_at > cursor_time)
            return [_comment_from_row(row) for row in conn.execute(stmt)]

    # Batch loading

    def children_by_parent_ids(self, parent_ids: list[str]) -> dict[str, list[Comment]]:
        if not parent_ids:
            return {}
        stmt = (
            select(comments_table)
            .where(comments_table.c.parent_id.in_(list(parent_ids)))
            .order_by(comments_table.c.parent_id, comments_table.c.created_at.asc())
        )
        grouped: defaultdict[str, list[Comment]] = defaultdict(list)
        with self._engine.connect() as conn:
            for row in conn.execute(stmt):
                comment = _comment_from_row(row)
                if comment.parent_id is not None:
                    grouped[comment.parent_id].append(comment)
        return dict(grouped)