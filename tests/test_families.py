"""
Tests for family groups and family-owned assets.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from kanemane.ledger import FamilyNotFoundError, FamilyService, InvalidFamilyNameError
from kanemane.models.audit import AuditEventType
from kanemane.models.ledger import (
    AssetType,
    Country,
    Currency,
    FamilyOwner,
    TransactionMeta,
    User,
)


@pytest.fixture
def families(storage, audit_logger):
    return FamilyService(storage, audit_logger)


@pytest.fixture
def spouse(storage):
    spouse = User(name="Sari", phone="6289876543210")
    storage.save_user(spouse)
    return spouse


class TestMembership:

    async def test_create_family_makes_creator_a_member(self, families, storage, user):
        family = await families.create_family(user, "  Keluarga Budi ")

        assert family.name == "Keluarga Budi"
        assert user.family_id == family.id
        assert storage.get_user(user.id).family_id == family.id
        assert (await families.get_family(family.id)).name == "Keluarga Budi"

    async def test_empty_name_is_refused(self, families, storage, user):
        with pytest.raises(InvalidFamilyNameError):
            await families.create_family(user, "   ")
        assert storage.get_user(user.id).family_id is None

    async def test_join_by_id_string(self, families, storage, user, spouse):
        family = await families.create_family(user, "Keluarga Budi")

        joined = await families.join_family(spouse, str(family.id))

        assert joined.id == family.id
        assert storage.get_user(spouse.id).family_id == family.id
        assert [m.name for m in await families.members(family.id)] == ["Budi", "Sari"]

    @pytest.mark.parametrize("family_id", ["not-an-id", uuid4()])
    async def test_join_unknown_family(self, families, storage, spouse, family_id):
        with pytest.raises(FamilyNotFoundError):
            await families.join_family(spouse, family_id)
        assert storage.get_user(spouse.id).family_id is None

    async def test_leave_family(self, families, storage, user, spouse):
        family = await families.create_family(user, "Keluarga Budi")
        await families.join_family(spouse, family.id)

        await families.leave_family(spouse)

        assert storage.get_user(spouse.id).family_id is None
        assert [m.name for m in await families.members(family.id)] == ["Budi"]

    async def test_membership_changes_are_audited(self, families, audit_storage, user, spouse):
        family = await families.create_family(user, "Keluarga Budi")
        await families.join_family(spouse, family.id)
        await families.leave_family(spouse)

        events = await audit_storage.get_events_by_entity("family", str(family.id))
        assert [e.event_type for e in events].count(AuditEventType.FAMILY_JOINED) == 2
        assert AuditEventType.FAMILY_LEFT in [e.event_type for e in events]


class TestFamilyAssets:

    async def open_shared(self, ledger, family):
        return await ledger.open_asset(
            owner=family.owner,
            name="Tabungan Keluarga",
            asset_type=AssetType.SAVINGS,
            country=Country.JP,
            currency=Currency.JPY,
            opening_balance=Decimal("20000"),
        )

    async def test_family_asset_is_visible_to_other_member(self, families, ledger, user, spouse):
        family = await families.create_family(user, "Keluarga Budi")
        await families.join_family(spouse, family.id)

        shared = await self.open_shared(ledger, family)

        assert shared.owner == FamilyOwner(family_id=family.id)
        assert [a.id for a in await ledger.list_assets(spouse.owners)] == [shared.id]
        assert spouse.can_access(shared.owner)

    async def test_other_member_books_against_family_asset(self, families, ledger, user, spouse):
        family = await families.create_family(user, "Keluarga Budi")
        await families.join_family(spouse, family.id)
        shared = await self.open_shared(ledger, family)

        tx = await ledger.record_expense(
            shared.id, 3000, TransactionMeta(category="Makanan", created_by=spouse.id)
        )

        assert tx.owner == family.owner
        assert (await ledger.get_asset(shared.id)).balance == Decimal("17000.00")
        visible = await ledger.list_transactions(user.owners, asset_id=shared.id)
        assert tx.id in [t.id for t in visible]

    async def test_leaving_removes_access(self, families, ledger, user, spouse):
        family = await families.create_family(user, "Keluarga Budi")
        await families.join_family(spouse, family.id)
        shared = await self.open_shared(ledger, family)

        await families.leave_family(spouse)

        assert await ledger.list_assets(spouse.owners) == []
        assert [a.id for a in await ledger.list_assets(user.owners)] == [shared.id]
