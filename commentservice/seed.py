"""Choosing a storage backend and filling it with sample content."""

from __future__ import annotations

import logging
import os

from commentservice.memory import MemoryStore
from commentservice.models import Comment, Post
from commentservice.sql import SqlStore
from commentservice.storage import Storage

log = logging.getLogger(__name__)

IN_MEMORY = "in-memory"
POSTGRES = "postgres"


def create_store(storage_type: str = IN_MEMORY, dsn: str | None = None) -> Storage:
    """Open the requested backend.

    ``postgres`` needs a database URL, taken from ``dsn`` or ``DATABASE_URL``;
    any other type gives an in-memory store filled with sample data.
    """
    log.info("Starting server with %s storage", storage_type)
    if storage_type == POSTGRES:
        url = dsn if dsn else os.environ.get("DATABASE_URL", "")
        if not url:
            raise ValueError("DATABASE_URL must be set for postgres storage")
        return SqlStore(url)
    store = MemoryStore()
    fill_with_mock_data(store)
    return store


def fill_with_mock_data(store: Storage) -> tuple[Post, Post]:
    """Add a commented post and a post with comments disabled; return both."""
    post = store.create_post(
        Post(
            title="Тестовый пост о GraphQL",
            content="Это содержимое тестового поста. Здесь мы обсуждаем GraphQL и Go.",
            author_id="user-1",
            comments_enabled=True,
        )
    )
    first = store.create_comment(
        Comment(
            post_id=post.id,
            author_id="user-2",
            content="Отличный пост! Очень информативно.",
        )
    )
    store.create_comment(
        Comment(
            post_id=post.id,
            parent_id=first.id,
            author_id="user-1",
            content="Спасибо! Рад, что вам понравилось.",
        )
    )
    store.create_comment(
        Comment(
            post_id=post.id,
            author_id="user-3",
            content="А как насчет производительности при большой вложенности?",
        )
    )
    disabled = store.create_post(
        Post(
            title="Пост с выключенными комментариями",
            content="К этому посту нельзя оставлять комментарии.",
            author_id="user-admin",
            comments_enabled=False,
        )
    )
    log.info(
        "Mock data filled successfully. Created post ID: %s, "
        "and post with disabled comments ID: %s",
        post.id,
        disabled.id,
    )
    return post, disabled