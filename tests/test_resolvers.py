import pytest

from commentservice.memory import MemoryStore
from commentservice.models import Post
from commentservice.resolvers import (
    CommentObserver,
    NewComment,
    NewPost,
    Resolver,
)
from commentservice.storage import CommentsDisabledError, NotFoundError


@pytest.fixture
def resolver():
    return Resolver(MemoryStore())


@pytest.fixture
def post(resolver):
    return resolver.create_post(NewPost(title="T", content="C", author_id="user-1"))


def _comment(resolver, post, content="hello", parent_id=None):
    return resolver.create_comment(
        NewComment(post_id=post.id, author_id="user-2", content=content, parent_id=parent_id)
    )


def test_create_post_enables_comments(resolver, post):
    assert post.comments_enabled is True
    assert resolver.post(post.id).title == "T"


def test_parent_of_root_is_none(resolver, post):
    root = _comment(resolver, post)
    assert resolver.parent(root) is None


def test_parent_of_reply(resolver, post):
    root = _comment(resolver, post)
    reply = _comment(resolver, post, parent_id=root.id)
    assert resolver.parent(reply).id == root.id


def test_children_default_limit_and_cursor(resolver, post):
    root = _comment(resolver, post)
    replies = [_comment(resolver, post, f"r{i}", parent_id=root.id) for i in range(7)]

    first = resolver.children(root)
    assert [e.node.id for e in first.edges] == [r.id for r in replies[:5]]
    assert first.page_info.has_next_page is True
    assert first.page_info.end_cursor == replies[4].id

    second = resolver.children(root, cursor=first.page_info.end_cursor)
    assert [e.node.id for e in second.edges] == [r.id for r in replies[5:]]
    assert second.page_info.has_next_page is False
    assert second.page_info.end_cursor == replies[6].id


def test_children_empty(resolver, post):
    root = _comment(resolver, post)
    conn = resolver.children(root)
    assert conn.edges == []
    assert conn.page_info.has_next_page is False
    assert conn.page_info.end_cursor is None


def test_edge_cursor_is_node_id(resolver, post):
    root = _comment(resolver, post)
    _comment(resolver, post, parent_id=root.id)
    conn = resolver.children(root, limit=1)
    assert all(edge.cursor == edge.node.id for edge in conn.edges)


def test_post_comments_default_limit(resolver, post):
    roots = [_comment(resolver, post, f"c{i}") for i in range(12)]
    conn = resolver.post_comments(post)
    assert len(conn.edges) == 10
    assert conn.page_info.has_next_page is True
    rest = resolver.post_comments(post, cursor=conn.page_info.end_cursor)
    assert [e.node.id for e in rest.edges] == [r.id for r in roots[10:]]
    assert rest.page_info.has_next_page is False


def test_post_comments_exact_limit_has_no_next_page(resolver, post):
    for i in range(3):
        _comment(resolver, post, f"c{i}")
    conn = resolver.post_comments(post, limit=3)
    assert len(conn.edges) == 3
    assert conn.page_info.has_next_page is False


def test_posts_defaults(resolver):
    made = [resolver.create_post(NewPost(f"t{i}", "c", "u")) for i in range(12)]
    listed = resolver.posts()
    assert len(listed) == 10
    assert {p.id for p in resolver.posts(offset=10)} <= {p.id for p in made}
    assert len(resolver.posts(offset=10)) == 2


def test_toggle_comments(resolver, post):
    toggled = resolver.toggle_comments(post.id, False)
    assert toggled.comments_enabled is False
    with pytest.raises(CommentsDisabledError):
        _comment(resolver, post)


def test_toggle_comments_unknown_post(resolver):
    with pytest.raises(NotFoundError, match="post not found"):
        resolver.toggle_comments("missing", True)


def test_comment_added_unknown_post(resolver):
    with pytest.raises(NotFoundError, match="post not found"):
        resolver.comment_added("missing")


def test_subscription_receives_new_comment(resolver, post):
    with resolver.comment_added(post.id) as sub:
        created = _comment(resolver, post, "news")
        assert sub.get(timeout=1).id == created.id


def test_subscription_close_removes_subscriber(resolver, post):
    sub = resolver.comment_added(post.id)
    assert resolver.observer.subscriber_count(post.id) == 1
    sub.close()
    assert resolver.observer.subscriber_count(post.id) == 0


def test_subscription_timeout(resolver, post):
    with resolver.comment_added(post.id) as sub:
        with pytest.raises(TimeoutError):
            sub.get(timeout=0.01)


def test_rejected_comment_is_not_published(resolver, post):
    resolver.toggle_comments(post.id, False)
    with resolver.comment_added(post.id) as sub:
        with pytest.raises(CommentsDisabledError):
            _comment(resolver, post)
        with pytest.raises(TimeoutError):
            sub.get(timeout=0.01)


def test_observer_drops_when_buffer_full():
    observer = CommentObserver()
    post = Post(title="t", content="c", author_id="u", id="p1")
    sub = observer.subscribe(post.id)
    store = MemoryStore()
    stored = store.create_post(Post(title="t", content="c", author_id="u"))
    del stored
    from commentservice.models import Comment

    first = Comment(post_id="p1", author_id="u", content="a", id="c1")
    second = Comment(post_id="p1", author_id="u", content="b", id="c2")
    assert observer.publish(first) == 1
    assert observer.publish(second) == 0
    assert sub.get(timeout=1).id == "c1"
    with pytest.raises(TimeoutError):
        sub.get(timeout=0.01)


def test_observer_only_notifies_matching_post():
    from commentservice.models import Comment

    observer = CommentObserver()
    sub_a = observer.subscribe("a")
    sub_b = observer.subscribe("b")
    observer.publish(Comment(post_id="a", author_id="u", content="x", id="c1"))
    assert sub_a.get(timeout=1).id == "c1"
    with pytest.raises(TimeoutError):
        sub_b.get(timeout=0.01)


def test_unsubscribe_unknown_is_harmless():
    observer = CommentObserver()
    sub = observer.subscribe("a")
    observer.unsubscribe("a", "other")
    observer.unsubscribe("zzz", sub.id)
    assert observer.subscriber_count("a") == 1