import pytest

from commentservice.storage import (
    CommentsDisabledError,
    NotFoundError,
    PaginationArgs,
    Storage,
    StorageError,
    ValidationError,
    validate_comment_content,
)


def test_storage_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Storage()


def test_validation_error_is_value_error():
    with pytest.raises(ValueError, match="comment content cannot be empty"):
        validate_comment_content("")


def test_validation_error_raised_for_long_content():
    with pytest.raises(ValidationError) as info:
        validate_comment_content("a" * 2001)
    assert isinstance(info.value, ValueError)
    assert str(info.value) == "comment content is too long"


def test_not_found_error_is_lookup_and_storage_error():
    err = NotFoundError("post not found")
    assert isinstance(err, LookupError)
    assert isinstance(err, StorageError)
    assert str(err) == "post not found"


def test_comments_disabled_error_is_storage_error():
    err = CommentsDisabledError("comments are disabled for this post")
    assert isinstance(err, StorageError)
    assert str(err) == "comments are disabled for this post"


def test_pagination_args_default_cursor():
    args = PaginationArgs(limit=3)
    assert args.cursor is None
    assert args.limit == 3


def test_pagination_args_frozen():
    args = PaginationArgs(limit=3, cursor="c1")
    with pytest.raises(AttributeError):
        args.limit = 4  # type: ignore[misc]
    assert args.limit == 3
    assert args.cursor == "c1"


def test_content_at_limit_is_accepted():
    assert validate_comment_content("a" * 2000) is None


def test_content_too_long():
    with pytest.raises(ValidationError, match="comment content is too long"):
        validate_comment_content("a" * 2001)


def test_content_length_counts_bytes():
    # 1000 two-byte characters make 2000 bytes; one more crosses the limit.
    assert validate_comment_content("é" * 1000) is None
    with pytest.raises(ValidationError, match="too long"):
        validate_comment_content("é" * 1001)


@pytest.mark.parametrize("content", ["", "  ", "\n\t "])
def test_blank_content_rejected(content):
    with pytest.raises(ValidationError, match="comment content cannot be empty"):
        validate_comment_content(content)