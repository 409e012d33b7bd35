"""
Family Groups

A user belongs to at most one family. Assets opened with a FamilyOwner
are visible to and usable by every member; leaving a family takes that
access away but leaves the family's assets in place for the others.
"""

from typing import Optional
from uuid import UUID

from kanemane.audit.logger import AuditLogger, get_logger
from kanemane.ledger.engine import LedgerError
from kanemane.models.ledger import Family, User
from kanemane.services.storage.interface import LedgerStorageInterface


logger = get_logger(__name__)


class InvalidFamilyNameError(LedgerError):
    """Family name is empty."""
    pass


class FamilyNotFoundError(LedgerError):
    def __init__(self, family_id):
        self.family_id = family_id
        super().__init__(f"Family {family_id} not found")


class FamilyService:
    """
    Creating, joining and leaving families.

    Usage:
        families = FamilyService(SqlLedgerStorage(db), audit_logger)
        family = await families.create_family(user, "Keluarga Tanaka")
        await families.join_family(spouse, family.id)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger

    async def create_family(self, user: User, name: str) -> Family:
        """Create a family with `user` as its first member."""
        name = (name or "").strip()
        if not name:
            raise InvalidFamilyNameError("Family name must not be empty")

        family = Family(name=name)
        self._storage.save_family(family)
        logger.info("family_created", family_id=str(family.id), user_id=str(user.id))
        await self._set_family(user, family.id)
        return family

    async def join_family(self, user: User, family_id) -> Family:
        """
        Make `user` a member of an existing family.

        Raises:
            FamilyNotFoundError: If the id is malformed or unknown
        """
        try:
            family_id = family_id if isinstance(family_id, UUID) else UUID(str(family_id).strip())
        except ValueError:
            raise FamilyNotFoundError(family_id)

        family = self._storage.get_family(family_id)
        if family is None:
            raise FamilyNotFoundError(family_id)
        await self._set_family(user, family.id)
        return family

    async def leave_family(self, user: User) -> None:
        family_id = user.family_id
        if family_id is None:
            return
        user.family_id = None
        self._storage.save_user(user)
        if self._audit:
            await self._audit.log_family_left(user_id=user.id, family_id=family_id)

    async def get_family(self, family_id: UUID) -> Family:
        family = self._storage.get_family(family_id)
        if family is None:
            raise FamilyNotFoundError(family_id)
        return family

    async def members(self, family_id: UUID) -> list[User]:
        return self._storage.list_family_members(family_id)

    async def _set_family(self, user: User, family_id: UUID) -> None:
        previous = user.family_id
        user.family_id = family_id
        self._storage.save_user(user)
        if self._audit:
            if previous and previous != family_id:
                await self._audit.log_family_left(user_id=user.id, family_id=previous)
            await self._audit.log_family_joined(user_id=user.id, family_id=family_id)
