from datetime import datetime

import pytest

from common.models import Comment, Follow, Like, Post, User
from common.schemas import PostCreate, UserUpdate
from socialfeed.services.comment_service import CommentNotFound, CommentService, NotCommentAuthor
from socialfeed.services.feed_service import FeedComposer
from socialfeed.services.follow_service import FollowService
from socialfeed.services.post_service import NotPostAuthor, PostNotFound, PostService, PostStore
from socialfeed.services.user_service import UserService, UsernameTaken
from .conftest import at


@pytest.fixture
async def seeded(session_maker):
    """u follows v and w; x is a stranger"""
    async with session_maker() as db:
        users = {name: User(username=name, email=f"{name}@example.com") for name in ("u", "v", "w", "x")}
        db.add_all(users.values())
        await db.flush()
        ids = {name: user.id for name, user in users.items()}

        db.add_all([
            Follow(follower_id=ids["u"], following_id=ids["v"]),
            Follow(follower_id=ids["u"], following_id=ids["w"]),
        ])
        posts = {
            "v": Post(author_id=ids["v"], caption="from v", media_urls=[], created_at=at(10)),
            "w": Post(author_id=ids["w"], caption="from w", media_urls=["a.jpg"], created_at=at(20)),
            "u": Post(author_id=ids["u"], caption="from u", media_urls=[], created_at=at(5)),
            "x": Post(author_id=ids["x"], caption="from x", media_urls=[], created_at=at(30)),
            "gone": Post(author_id=ids["v"], caption="deleted", media_urls=[], created_at=at(40),
                         deleted_at=datetime(2024, 2, 1)),
        }
        db.add_all(posts.values())
        await db.flush()
        ids.update({f"post_{name}": post.id for name, post in posts.items()})

        db.add(Like(user_id=ids["u"], post_id=ids["post_v"]))
        db.add(Like(user_id=ids["x"], post_id=ids["post_v"]))
        db.add(Comment(post_id=ids["post_w"], author_id=ids["u"], content="nice"))
        await db.commit()
    return ids


async def test_follow_service_lists_graph_edges(session_maker, seeded):
    async with session_maker() as db:
        graph = FollowService(db)
        assert sorted(await graph.list_following(seeded["u"])) == sorted([seeded["v"], seeded["w"]])
        assert await graph.list_followers(seeded["v"]) == [seeded["u"]]
        assert await graph.list_followers(seeded["x"]) == []


async def test_toggle_follow_and_self_follow(session_maker, seeded):
    async with session_maker() as db:
        graph = FollowService(db)
        assert await graph.toggle_follow(seeded["x"], seeded["u"]) is True
        assert await graph.is_following(seeded["x"], seeded["u"])
        assert await graph.toggle_follow(seeded["x"], seeded["u"]) is False
        assert not await graph.is_following(seeded["x"], seeded["u"])
        assert await graph.follow(seeded["x"], seeded["x"]) is None


async def test_post_store_queries_live_posts_with_counts(session_maker, seeded):
    store = PostStore(session_maker)
    authors = [seeded["u"], seeded["v"], seeded["w"]]

    records = await store.find_posts(authors, offset=0, limit=10)

    assert [r.caption for r in records] == ["from w", "from v", "from u"]
    assert await store.count_posts(authors) == 3
    by_caption = {r.caption: r for r in records}
    assert by_caption["from v"].like_count == 2
    assert by_caption["from w"].comment_count == 1
    assert by_caption["from w"].media_urls == ["a.jpg"]
    assert by_caption["from w"].author_username == "w"


async def test_post_store_like_lookups(session_maker, seeded):
    store = PostStore(session_maker)

    assert await store.find_like(seeded["u"], seeded["post_v"])
    assert not await store.find_like(seeded["u"], seeded["post_w"])
    liked = await store.find_liked_post_ids(seeded["u"], [seeded["post_v"], seeded["post_w"]])
    assert liked == {seeded["post_v"]}


async def test_composer_over_sql_stores(session_maker, seeded):
    async with session_maker() as db:
        composer = FeedComposer(FollowService(db), PostStore(session_maker))

        first = await composer.compose_feed(seeded["u"], page=1, limit=2)
        second = await composer.compose_feed(seeded["u"], page=2, limit=2)

    assert [p.caption for p in first.posts] == ["from w", "from v"]
    assert first.pagination.total == 3
    assert first.pagination.pages == 2
    assert [p.caption for p in second.posts] == ["from u"]
    assert [p.is_liked for p in first.posts] == [False, True]


async def test_post_mutations_notify_hook(session_maker, seeded):
    events = []

    async def hook(author_id, post_id, action):
        events.append((author_id, post_id, action))

    async with session_maker() as db:
        service = PostService(db, on_mutation=hook)
        post = await service.create_post(seeded["v"], PostCreate(caption="new"))
        await service.update_post(post.id, seeded["v"], "edited")
        await service.delete_post(post.id, seeded["v"])

    assert events == [
        (seeded["v"], post.id, "created"),
        (seeded["v"], post.id, "updated"),
        (seeded["v"], post.id, "deleted"),
    ]


async def test_idempotent_create_returns_existing_post(session_maker, seeded):
    events = []

    async def hook(*args):
        events.append(args)

    async with session_maker() as db:
        service = PostService(db, on_mutation=hook)
        first = await service.create_post(seeded["v"], PostCreate(caption="once", idempotency_key="k-1"))
        again = await service.create_post(seeded["v"], PostCreate(caption="once", idempotency_key="k-1"))

    assert again.id == first.id
    assert len(events) == 1


async def test_deleted_post_is_gone(session_maker, seeded):
    async with session_maker() as db:
        service = PostService(db)
        await service.delete_post(seeded["post_u"], seeded["u"])

        with pytest.raises(PostNotFound):
            await service.get_post(seeded["post_u"])
        with pytest.raises(PostNotFound):
            await service.delete_post(seeded["post_u"], seeded["u"])

    assert await PostStore(session_maker).count_posts([seeded["u"]]) == 0


async def test_only_author_may_change_post(session_maker, seeded):
    async with session_maker() as db:
        service = PostService(db)
        with pytest.raises(NotPostAuthor):
            await service.update_post(seeded["post_v"], seeded["u"], "hijacked")
        with pytest.raises(NotPostAuthor):
            await service.delete_post(seeded["post_v"], seeded["u"])


async def test_toggle_like(session_maker, seeded):
    async with session_maker() as db:
        service = PostService(db)
        liked = await service.toggle_like(seeded["post_w"], seeded["u"])
        unliked = await service.toggle_like(seeded["post_w"], seeded["u"])

        with pytest.raises(PostNotFound):
            await service.toggle_like(seeded["post_gone"], seeded["u"])

    assert liked.liked and liked.like_count == 1
    assert not unliked.liked and unliked.like_count == 0


async def test_list_posts_is_global_and_skips_deleted(session_maker, seeded):
    async with session_maker() as db:
        page = await PostService(db).list_posts(1, 10, viewer_id=seeded["u"])

    assert [p.caption for p in page.posts] == ["from x", "from w", "from v", "from u"]
    assert page.pagination.total == 4
    assert [p.is_liked for p in page.posts] == [False, False, True, False]


async def test_list_posts_for_one_author(session_maker, seeded):
    async with session_maker() as db:
        page = await PostService(db).list_posts(1, 10, author_id=seeded["v"])

    assert [p.caption for p in page.posts] == ["from v"]
    assert page.pagination.total == 1


async def test_post_likers_newest_first(session_maker, seeded):
    async with session_maker() as db:
        service = PostService(db)
        page = await service.list_post_likes(seeded["post_v"])

        with pytest.raises(PostNotFound):
            await service.list_post_likes(seeded["post_gone"])

    assert [like.user.username for like in page.likes] == ["x", "u"]
    assert page.pagination.total == 2


async def test_comments_feed_comment_count(session_maker, seeded):
    async with session_maker() as db:
        service = CommentService(db)
        comment = await service.create_comment(seeded["post_v"], seeded["w"], "first!")
        await service.create_comment(seeded["post_v"], seeded["u"], "second")
        page = await service.list_comments(seeded["post_v"])

        with pytest.raises(PostNotFound):
            await service.create_comment(seeded["post_gone"], seeded["u"], "late")

    assert comment.author.username == "w"
    assert [c.content for c in page.comments] == ["first!", "second"]
    assert page.pagination.total == 2

    records = await PostStore(session_maker).find_posts([seeded["v"]], offset=0, limit=10)
    assert records[0].comment_count == 2


async def test_only_comment_author_may_change_it(session_maker, seeded):
    async with session_maker() as db:
        service = CommentService(db)
        comment = await service.create_comment(seeded["post_w"], seeded["v"], "draft")

        with pytest.raises(NotCommentAuthor):
            await service.update_comment(comment.id, seeded["u"], "hijacked")
        with pytest.raises(NotCommentAuthor):
            await service.delete_comment(comment.id, seeded["u"])

        updated = await service.update_comment(comment.id, seeded["v"], "final")
        await service.delete_comment(comment.id, seeded["v"])

        with pytest.raises(CommentNotFound):
            await service.delete_comment(comment.id, seeded["v"])

    assert updated.content == "final"


async def test_profile_counts(session_maker, seeded):
    async with session_maker() as db:
        service = UserService(db)
        u = await service.get_profile(seeded["u"])
        v = await service.get_profile(seeded["v"])
        missing = await service.get_profile(999)

    assert (u.following_count, u.follower_count, u.post_count) == (2, 0, 1)
    # The soft-deleted post is not counted
    assert (v.following_count, v.follower_count, v.post_count) == (0, 1, 1)
    assert missing is None


async def test_update_profile_rejects_taken_username(session_maker, seeded):
    async with session_maker() as db:
        service = UserService(db)
        with pytest.raises(UsernameTaken):
            await service.update_profile(seeded["u"], UserUpdate(username="v"))

        user = await service.update_profile(seeded["u"], UserUpdate(first_name="Uma"))

    assert user.username == "u"
    assert user.first_name == "Uma"
