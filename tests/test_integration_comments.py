from uuid import uuid4

import pytest

from blog.db import DatabaseManager
from blog.models.comment import CommentCreate, CommentUpdate
from blog.models.identity import Identity, Role
from blog.models.post import PostCreate, PostStatus
from blog.models.user import UserCreate, UserProfileUpdate
from blog.services.auth import AuthService
from blog.services.comment import (
    CommentAlreadyLikedError,
    CommentForbiddenError,
    CommentNotFoundError,
    CommentService,
    CommentValidationError,
)
from blog.services.post import PostService
from blog.services.user import UserService

pytestmark = pytest.mark.integration


async def register(auth_service: AuthService, name: str) -> Identity:
    token = await auth_service.register(
        UserCreate(name=name, email=f"{name.lower()}@example.com", password="secret123")
    )
    return token.user.identity


@pytest.mark.asyncio
async def test_comment_thread_lifecycle(live_db: DatabaseManager):
    auth_service = AuthService()
    post_service = PostService()
    comment_service = CommentService(post_service=post_service)

    alice = await register(auth_service, "Alice")
    bob = await register(auth_service, "Bob")
    admin = await register(auth_service, "Admin")
    with live_db.driver.session(database=live_db.database) as session:
        session.run(
            "MATCH (u:User {user_id: $user_id}) SET u.role = 'admin'",
            user_id=str(admin.user_id),
        ).consume()
    admin = Identity(user_id=admin.user_id, role=Role.ADMIN)

    post = await post_service.create_post(
        PostCreate(
            title="Threads",
            content="Body",
            excerpt="Excerpt",
            status=PostStatus.PUBLISHED,
        ),
        alice,
    )

    # A top-level comment and a reply to it
    c1 = await comment_service.create_comment(
        CommentCreate(content="First!", post_id=post.post_id), alice
    )
    r1 = await comment_service.create_comment(
        CommentCreate(content="Reply", post_id=post.post_id, parent_id=c1.comment_id),
        bob,
    )
    assert r1.parent_id == c1.comment_id

    with pytest.raises(CommentValidationError):
        await comment_service.create_comment(
            CommentCreate(
                content="Too deep", post_id=post.post_id, parent_id=r1.comment_id
            ),
            alice,
        )

    # Likes are unique per user, most recent first
    assert await comment_service.like_comment(c1.comment_id, bob) == [bob.user_id]
    with pytest.raises(CommentAlreadyLikedError):
        await comment_service.like_comment(c1.comment_id, bob)
    likes = await comment_service.like_comment(c1.comment_id, alice)
    assert likes == [alice.user_id, bob.user_id]
    assert await comment_service.unlike_comment(c1.comment_id, alice) == [bob.user_id]

    # Only the author or an admin may edit
    with pytest.raises(CommentForbiddenError):
        await comment_service.update_comment(
            c1.comment_id, CommentUpdate(content="Hijacked"), bob
        )
    edited = await comment_service.update_comment(
        c1.comment_id, CommentUpdate(content="First, edited"), alice
    )
    assert edited.content == "First, edited"

    thread = await comment_service.get_post_thread(post.post_id)
    assert [c.comment_id for c in thread] == [c1.comment_id]
    assert [r.comment_id for r in thread[0].replies] == [r1.comment_id]

    # Deleting the top-level comment removes its reply in the same transaction
    assert await comment_service.delete_comment(c1.comment_id, admin) == 2
    with pytest.raises(CommentNotFoundError):
        await comment_service.get_comment(r1.comment_id)
    assert await comment_service.get_post_thread(post.post_id) == []


@pytest.mark.asyncio
async def test_comment_on_missing_post(live_db: DatabaseManager):
    alice = await register(AuthService(), "Alice")

    with pytest.raises(CommentNotFoundError, match="Post not found"):
        await CommentService().create_comment(
            CommentCreate(content="Hello", post_id=uuid4()), alice
        )


@pytest.mark.asyncio
async def test_profile_update(live_db: DatabaseManager):
    alice = await register(AuthService(), "Alice")
    user_service = UserService()

    updated = await user_service.update_profile(
        alice,
        UserProfileUpdate(name="Alice L.", social_links={"website": "https://a.dev"}),
    )

    assert updated.name == "Alice L."
    assert updated.social_links.website == "https://a.dev"
    assert (await user_service.get_user(alice.user_id)).name == "Alice L."
