from uuid import uuid4

import pytest

from blog.models.identity import (
    ROLE_CAPABILITIES,
    Capability,
    Identity,
    Role,
    has_capability,
)


@pytest.mark.unit
class TestCapabilities:
    def test_every_role_has_a_capability_set(self):
        assert set(ROLE_CAPABILITIES) == set(Role)

    def test_admin_holds_every_capability(self):
        assert all(has_capability(Role.ADMIN, cap) for cap in Capability)

    def test_plain_user_holds_none(self):
        assert not any(has_capability(Role.USER, cap) for cap in Capability)

    @pytest.mark.parametrize(
        "capability,expected",
        [
            (Capability.MANAGE_TAGS, True),
            (Capability.DELETE_TAGS, False),
            (Capability.MODERATE_COMMENTS, False),
            (Capability.MANAGE_CATEGORIES, False),
        ],
    )
    def test_editor(self, capability: Capability, expected: bool):
        assert has_capability(Role.EDITOR, capability) is expected

    def test_owns_or_can(self):
        owner_id = uuid4()
        owner = Identity(user_id=owner_id)
        stranger = Identity(user_id=uuid4())
        admin = Identity(user_id=uuid4(), role=Role.ADMIN)

        assert owner.owns_or_can(owner_id, Capability.MODERATE_COMMENTS)
        assert not stranger.owns_or_can(owner_id, Capability.MODERATE_COMMENTS)
        assert admin.owns_or_can(owner_id, Capability.MODERATE_COMMENTS)
