"""Tests for CommunityService."""

import pytest

from luminax.core.event.types import EventNames
from luminax.modules.shared.exceptions import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)


@pytest.mark.unit
class TestCreateCommunity:
    async def test_create(self, communities):
        community = await communities.create_community("Night owls", "Late studying")

        assert community["name"] == "Night owls"
        assert community["member_count"] == 0

    async def test_duplicate_name(self, communities):
        await communities.create_community("Night owls")

        with pytest.raises(ConflictError):
            await communities.create_community("Night owls")

    async def test_blank_name(self, communities):
        with pytest.raises(ValidationError):
            await communities.create_community("  ")


@pytest.mark.unit
class TestMembership:
    async def test_join_and_list(self, communities, published_events):
        # Arrange
        community = await communities.create_community("Night owls")

        # Act
        joined = await communities.join(community["community_id"], "u1")

        # Assert
        assert joined["joined"] is True
        assert await communities.member_ids(community["community_id"]) == ["u1"]
        [listed] = await communities.list_communities()
        assert listed["member_count"] == 1
        [mine] = await communities.my_communities("u1")
        assert mine["community_id"] == community["community_id"]
        assert len(published_events.payloads(EventNames.COMMUNITY_JOINED)) == 1

    async def test_join_twice_is_a_no_op(self, communities, published_events):
        community = await communities.create_community("Night owls")
        await communities.join(community["community_id"], "u1")

        again = await communities.join(community["community_id"], "u1")

        assert again["joined"] is False
        assert await communities.member_ids(community["community_id"]) == ["u1"]
        assert len(published_events.payloads(EventNames.COMMUNITY_JOINED)) == 1

    async def test_join_unknown_community(self, communities):
        with pytest.raises(NotFoundError):
            await communities.join(999, "u1")

    async def test_leave(self, communities):
        community = await communities.create_community("Night owls")
        await communities.join(community["community_id"], "u1")

        result = await communities.leave(community["community_id"], "u1")

        assert result["left"] is True
        assert await communities.member_ids(community["community_id"]) == []
        assert await communities.my_communities("u1") == []

    async def test_leave_when_not_a_member(self, communities):
        community = await communities.create_community("Night owls")

        with pytest.raises(InvalidOperationError):
            await communities.leave(community["community_id"], "u1")

    async def test_member_ids_unknown_community(self, communities):
        with pytest.raises(NotFoundError):
            await communities.member_ids(999)
