import os
from datetime import UTC, datetime, timedelta
from typing import Callable, Generator
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from neo4j import Driver, GraphDatabase
from neo4j.exceptions import AuthError, ServiceUnavailable
from pydantic import UUID4

from blog.db import DatabaseManager
from blog.dependencies import get_current_user
from blog.main import app
from blog.models.comment import Comment
from blog.models.identity import Identity, Role
from blog.models.post import Post, PostStatus
from blog.models.user import User
from blog.services.auth import AuthService
from blog.services.category import CategoryService
from blog.services.comment import CommentService
from blog.services.post import PostService
from blog.services.tag import TagService
from blog.services.user import UserService

# Test configuration
TEST_NEO4J_URI = os.getenv("TEST_NEO4J_URI", "bolt://localhost:7687")
TEST_NEO4J_USER = os.getenv("TEST_NEO4J_USER", "neo4j")
TEST_NEO4J_PASSWORD = os.getenv("TEST_NEO4J_PASSWORD", "password")
TEST_NEO4J_DATABASE = os.getenv("TEST_NEO4J_DATABASE", "neo4j")

SERVICE_MODULES = (
    "blog.services.auth",
    "blog.services.category",
    "blog.services.comment",
    "blog.services.post",
    "blog.services.tag",
    "blog.services.user",
)


# Service fixtures
@pytest.fixture
def auth_service() -> AuthService:
    return AuthService()


@pytest.fixture
def post_service() -> PostService:
    return PostService()


@pytest.fixture
def comment_service(post_service: PostService) -> CommentService:
    return CommentService(post_service=post_service)


@pytest.fixture
def category_service() -> CategoryService:
    return CategoryService()


@pytest.fixture
def tag_service() -> TagService:
    return TagService()


@pytest.fixture
def user_service() -> UserService:
    return UserService()


# Database fixtures
@pytest.fixture
def mock_tx() -> MagicMock:
    return MagicMock(name="tx")


@pytest.fixture(autouse=True)
def mock_db(
    request: pytest.FixtureRequest, mock_tx: MagicMock
) -> Generator[MagicMock | None, None, None]:
    """Replace the Neo4j driver in every service with a mock session.

    The session runs transaction functions inline against `mock_tx`, so
    tests can patch the private transaction functions of a service or
    script `mock_tx.run` directly. Integration tests keep the real driver.
    """
    if request.node.get_closest_marker("integration"):
        yield None
        return

    manager = MagicMock(name="DatabaseManager")
    session = manager.return_value.driver.session.return_value.__enter__.return_value
    session.execute_read.side_effect = lambda fn, *args: fn(mock_tx, *args)
    session.execute_write.side_effect = lambda fn, *args: fn(mock_tx, *args)

    patchers = [
        patch(f"{module}.DatabaseManager", manager) for module in SERVICE_MODULES
    ]
    for patcher in patchers:
        patcher.start()
    yield session
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def db_driver() -> Generator[Driver, None, None]:
    driver = GraphDatabase.driver(
        TEST_NEO4J_URI, auth=(TEST_NEO4J_USER, TEST_NEO4J_PASSWORD)
    )
    try:
        driver.verify_connectivity()
    except (ServiceUnavailable, AuthError) as e:
        driver.close()
        pytest.skip(f"Neo4j not reachable at {TEST_NEO4J_URI}: {e}")
    yield driver
    driver.close()


@pytest.fixture
def live_db(db_driver: Driver) -> Generator[DatabaseManager, None, None]:
    """Point the shared DatabaseManager at the test database, and wipe it after.

    Only run this against a dedicated test database.
    """
    manager = DatabaseManager()
    manager._driver = db_driver
    manager._database = TEST_NEO4J_DATABASE
    manager.ensure_constraints()
    yield manager
    with db_driver.session(database=TEST_NEO4J_DATABASE) as session:
        session.run("MATCH (n) DETACH DELETE n").consume()
    manager._driver = None


# Test data fixtures
def make_user(role: Role = Role.USER, name: str = "Test User") -> User:
    return User(
        user_id=uuid4(),
        name=name,
        email=f"{uuid4().hex[:8]}@example.com",
        bio="Test user bio",
        role=role,
        created_at=datetime.now(UTC),
    )


@pytest.fixture
def test_user() -> User:
    return make_user()


@pytest.fixture
def another_test_user() -> User:
    return make_user(name="Another Test User")


@pytest.fixture
def admin_user() -> User:
    return make_user(role=Role.ADMIN, name="Admin User")


@pytest.fixture
def editor_user() -> User:
    return make_user(role=Role.EDITOR, name="Editor User")


@pytest.fixture
def test_identity(test_user: User) -> Identity:
    return test_user.identity


@pytest.fixture
def admin_identity(admin_user: User) -> Identity:
    return admin_user.identity


@pytest.fixture
def editor_identity(editor_user: User) -> Identity:
    return editor_user.identity


@pytest.fixture
def test_post(test_user: User) -> Post:
    current_time = datetime.now(UTC)
    return Post(
        post_id=uuid4(),
        title="Test post",
        content="Some words about testing",
        excerpt="About testing",
        slug="test-post-1234",
        author=test_user.summary,
        status=PostStatus.PUBLISHED,
        created_at=current_time,
        updated_at=current_time,
    )


@pytest.fixture
def make_comment(test_user: User, test_post: Post) -> Callable[..., Comment]:
    """Factory for comments on `test_post`, aged by `minutes_ago`."""

    def factory(
        parent_id: UUID4 | None = None,
        author: User | None = None,
        approved: bool = True,
        minutes_ago: int = 0,
        content: str = "Test comment",
    ) -> Comment:
        created_at = datetime.now(UTC) - timedelta(minutes=minutes_ago)
        return Comment(
            comment_id=uuid4(),
            post_id=test_post.post_id,
            author=(author or test_user).summary,
            parent_id=parent_id,
            approved=approved,
            content=content,
            created_at=created_at,
            updated_at=created_at,
        )

    return factory


# API fixtures
@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client: TestClient) -> Callable[[User], None]:
    """Authenticate every following request of `client` as the given user."""

    def login(user: User) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    return login
