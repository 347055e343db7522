"""
Tests for LeadService: masking of contact details, ownership rules and
categories.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import create_lead, create_mock_user, make_result
from leadhub.db.models import LeadCategory, LeadView
from leadhub.exceptions import AuthorizationError, InvalidStateError, ResourceNotFoundError
from leadhub.models.api import (
    CategoryRequest,
    LeadRequest,
    UpdateLeadRequest,
    UserRole,
    ViewType,
    WorkType,
)
from leadhub.services.leads import LeadService, to_lead_response


def lead_request(**overrides) -> LeadRequest:
    values = {
        "title": "Mobile app",
        "description": "Flutter app for a bakery",
        "duration": "2 months",
        "location": "Berlin",
        "price": 3000,
        "email": "owner@bakery.example",
        "contactNumber": "0301234567",
        "workType": "part_time",
    }
    values.update(overrides)
    return LeadRequest.model_validate(values)


class TestMasking:
    """Contact details are hidden until unlocked."""

    def test_locked_lead_hides_contact(self) -> None:
        response = to_lead_response(create_lead(), unlocked=False)

        assert response.email is None
        assert response.contact_number is None
        assert response.unlocked is False
        assert response.title == "Backend developer"

    async def test_unlocked_lead_shows_contact(self, db_session: AsyncMock) -> None:
        db_session.get = AsyncMock(return_value=create_lead(lead_id=7))
        db_session.execute = AsyncMock(return_value=make_result(scalars=[7]))
        viewer = create_mock_user(user_id=1)

        response = await LeadService(db_session).get_lead(viewer, 7)

        assert response.unlocked is True
        assert response.email == "client@example.com"

    async def test_admin_and_creator_always_see_contact(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalars=[create_lead(lead_id=1, creator_id=5)]),
                make_result(scalars=[]),
                make_result(scalars=[create_lead(lead_id=1, creator_id=5)]),
                make_result(scalars=[]),
            ]
        )
        service = LeadService(db_session)

        admin_view = await service.list_leads(create_mock_user(user_id=99, role=UserRole.ADMIN))
        creator_view = await service.list_leads(
            create_mock_user(user_id=5, role=UserRole.SUBADMIN)
        )

        assert admin_view[0].unlocked is True
        assert creator_view[0].unlocked is True

    async def test_other_users_see_masked_list(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(
            side_effect=[make_result(scalars=[create_lead(lead_id=1)]), make_result(scalars=[2])]
        )

        leads = await LeadService(db_session).list_leads(create_mock_user(user_id=1), search="dev")

        assert leads[0].unlocked is False
        assert leads[0].contact_number is None

    async def test_missing_lead(self, db_session: AsyncMock) -> None:
        with pytest.raises(ResourceNotFoundError):
            await LeadService(db_session).get_lead(create_mock_user(), 404)


class TestLeadWrites:
    """Create, update and delete with ownership checks."""

    async def test_create_uses_category_name(self, db_session: AsyncMock) -> None:
        db_session.get = AsyncMock(return_value=LeadCategory(id=3, name="Mobile", active=True))
        creator = create_mock_user(user_id=99, role=UserRole.ADMIN)

        lead = await LeadService(db_session).create_lead(creator, lead_request(categoryId=3))

        assert lead.category_name == "Mobile"
        assert lead.creator_id == 99
        assert lead.work_type == WorkType.PART_TIME.value
        db_session.add.assert_called_once()

    async def test_create_with_unknown_category(self, db_session: AsyncMock) -> None:
        with pytest.raises(ResourceNotFoundError):
            await LeadService(db_session).create_lead(
                create_mock_user(role=UserRole.ADMIN), lead_request(categoryId=404)
            )

    def test_contact_number_must_be_ten_digits(self) -> None:
        with pytest.raises(ValueError):
            lead_request(contactNumber="12345")

    async def test_subadmin_cannot_edit_foreign_lead(self, db_session: AsyncMock) -> None:
        db_session.get = AsyncMock(return_value=create_lead(creator_id=99))
        editor = create_mock_user(user_id=5, role=UserRole.SUBADMIN)

        with pytest.raises(AuthorizationError):
            await LeadService(db_session).update_lead(editor, 7, UpdateLeadRequest(price=1))

    async def test_subadmin_edits_own_lead(self, db_session: AsyncMock) -> None:
        lead = create_lead(creator_id=5)
        db_session.get = AsyncMock(return_value=lead)
        editor = create_mock_user(user_id=5, role=UserRole.SUBADMIN)

        updated = await LeadService(db_session).update_lead(
            editor, 7, UpdateLeadRequest(price=1, work_type=WorkType.PART_TIME)
        )

        assert updated.price == 1
        assert updated.work_type == "part_time"
        assert updated.title == "Backend developer"

    async def test_admin_deletes_any_lead(self, db_session: AsyncMock) -> None:
        lead = create_lead(creator_id=5)
        db_session.get = AsyncMock(return_value=lead)

        await LeadService(db_session).delete_lead(create_mock_user(role=UserRole.ADMIN), 7)

        db_session.delete.assert_awaited_once_with(lead)
        db_session.commit.assert_awaited_once()


class TestViewHistory:
    async def test_view_records_carry_lead_title(self, db_session: AsyncMock) -> None:
        view = LeadView(
            id=1,
            user_id=1,
            lead_id=7,
            lead=create_lead(),
            coins_spent=5,
            view_type=ViewType.CONTACT_INFO,
            viewed_at=datetime.now(UTC),
        )
        db_session.execute = AsyncMock(return_value=make_result(scalars=[view]))

        records = await LeadService(db_session).views_for_user(1)

        assert records[0].lead_title == "Backend developer"
        assert records[0].coins_spent == 5


class TestCategories:
    async def test_duplicate_category(self, db_session: AsyncMock) -> None:
        db_session.commit = AsyncMock(side_effect=IntegrityError("insert", {}, Exception("dup")))

        with pytest.raises(InvalidStateError, match="already exists"):
            await LeadService(db_session).create_category(CategoryRequest(name="Mobile"))

    async def test_deactivate_category(self, db_session: AsyncMock) -> None:
        category = LeadCategory(id=3, name="Mobile", active=True)
        db_session.get = AsyncMock(return_value=category)

        result = await LeadService(db_session).deactivate_category(3)

        assert result.active is False

    async def test_update_missing_category(self, db_session: AsyncMock) -> None:
        with pytest.raises(ResourceNotFoundError):
            await LeadService(db_session).update_category(404, CategoryRequest(name="X"))
