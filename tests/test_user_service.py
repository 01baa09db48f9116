from datetime import UTC, datetime
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from blog.models.identity import Identity, Role
from blog.models.user import SocialLinks, User, UserProfileUpdate
from blog.services.user import (
    UserForbiddenError,
    UserNotFoundError,
    UserService,
    social_properties,
    user_from_node,
)


@pytest.mark.unit
class TestUserService:
    def test_user_from_node_hides_password_and_rebuilds_links(self):
        user_id = uuid4()
        user = user_from_node(
            {
                "user_id": str(user_id),
                "name": "Ada",
                "email": "ada@example.com",
                "password_hash": "$2b$12$secret",
                "social_website": "https://ada.dev",
                "social_twitter": "",
                "created_at": datetime.now(UTC),
            }
        )

        assert user.user_id == user_id
        assert user.social_links.website == "https://ada.dev"
        assert "password_hash" not in user.model_dump()

    def test_social_properties(self):
        props = social_properties(SocialLinks(github="ignored", twitter="@ada"))

        assert props["social_twitter"] == "@ada"
        assert set(props) == {
            "social_twitter",
            "social_facebook",
            "social_instagram",
            "social_linkedin",
            "social_website",
        }

    @pytest.mark.asyncio
    async def test_get_user_not_found(
        self, user_service: UserService, mock_tx: MagicMock
    ):
        mock_tx.run.return_value.single.return_value = None

        with pytest.raises(UserNotFoundError):
            await user_service.get_user(uuid4())

    def test_update_profile_merges_social_links(
        self, user_service: UserService, test_user: User, mock_tx: MagicMock
    ):
        existing = test_user.model_copy(
            update={"social_links": SocialLinks(twitter="@old", website="https://x")}
        )
        update = UserProfileUpdate(name="Renamed", social_links={"twitter": "@new"})
        with (
            patch.object(user_service, "_get_user", return_value=existing),
            patch("blog.services.user.user_from_node", return_value=existing),
        ):
            user_service._update_profile(mock_tx, test_user.user_id, update)

        props = mock_tx.run.call_args.kwargs["props"]
        assert props["name"] == "Renamed"
        assert props["social_twitter"] == "@new"
        assert props["social_website"] == "https://x"
        assert "bio" not in props

    @pytest.mark.asyncio
    async def test_list_users_requires_admin(
        self, user_service: UserService, test_identity: Identity, mock_db: MagicMock
    ):
        with pytest.raises(UserForbiddenError):
            await user_service.list_users(test_identity)
        mock_db.execute_read.assert_not_called()

    def test_list_users_paginates(
        self, user_service: UserService, test_user: User, mock_tx: MagicMock
    ):
        count_result = MagicMock()
        count_result.single.return_value = {"total": 11}
        mock_tx.run.side_effect = [count_result, []]

        page = user_service._list_users(mock_tx, "ADA", Role.EDITOR, 2, 10)

        assert page.pagination.pages == 2
        count_call, page_call = mock_tx.run.call_args_list
        assert count_call.kwargs["search"] == "ada"
        assert count_call.kwargs["role"] == "editor"
        assert page_call.kwargs["skip"] == 10

    @pytest.mark.asyncio
    async def test_update_role_by_admin(
        self,
        user_service: UserService,
        admin_identity: Identity,
        test_user: User,
        mock_tx: MagicMock,
    ):
        promoted = test_user.model_copy(update={"role": Role.EDITOR})
        with patch.object(
            user_service, "_update_role", return_value=promoted
        ) as mock_update:
            result = await user_service.update_role(
                admin_identity, test_user.user_id, Role.EDITOR
            )

        assert result.role == Role.EDITOR
        mock_update.assert_called_once_with(mock_tx, test_user.user_id, Role.EDITOR)

    @pytest.mark.asyncio
    async def test_update_role_forbidden(
        self, user_service: UserService, editor_identity: Identity
    ):
        with pytest.raises(UserForbiddenError):
            await user_service.update_role(editor_identity, uuid4(), Role.ADMIN)
