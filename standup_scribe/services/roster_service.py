from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError, RosterMemberNotFoundError, ValidationError
from ..models.workspace import Excusal, RosterMember
from ..utils.logging import get_logger

logger = get_logger(__name__)


class RosterService:
    """Service for roster members and their excusals"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_member(self, workspace_id: str, user_id: str) -> Optional[RosterMember]:
        stmt = select(RosterMember).where(
            RosterMember.workspace_id == workspace_id,
            RosterMember.user_id == user_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def require_member(self, workspace_id: str, user_id: str) -> RosterMember:
        member = await self.get_member(workspace_id, user_id)
        if member is None:
            raise RosterMemberNotFoundError(f"User {user_id} is not on the roster for {workspace_id}")
        return member

    async def add_member(self, workspace_id: str, user_id: str, display_name: str) -> RosterMember:
        """Add a member, or reactivate and rename a previously removed one"""

        if not display_name or not display_name.strip():
            raise ValidationError("display_name is required")

        member = await self.get_member(workspace_id, user_id)
        if member is None:
            member = RosterMember(workspace_id=workspace_id, user_id=user_id)
            self.db.add(member)
            logger.info(f"Adding {user_id} to roster of {workspace_id}")
        elif not member.is_active:
            logger.info(f"Reactivating {user_id} on roster of {workspace_id}")

        member.display_name = display_name.strip()
        member.is_active = True

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            member = await self.require_member(workspace_id, user_id)

        await self.db.refresh(member)
        return member

    async def remove_member(self, workspace_id: str, user_id: str) -> RosterMember:
        """Soft delete: the member keeps their history but is no longer prompted"""

        member = await self.require_member(workspace_id, user_id)
        member.is_active = False
        await self.db.commit()
        logger.info(f"Removed {user_id} from roster of {workspace_id}")
        return member

    async def list_members(self, workspace_id: str, include_inactive: bool = False) -> List[RosterMember]:
        stmt = (
            select(RosterMember)
            .where(RosterMember.workspace_id == workspace_id)
            .order_by(RosterMember.display_name, RosterMember.id)
        )
        if not include_inactive:
            stmt = stmt.where(RosterMember.is_active.is_(True))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Excusals

    async def add_excusal(
        self,
        workspace_id: str,
        user_id: str,
        start_date: date,
        end_date: date,
        reason: str = "",
    ) -> Excusal:
        if start_date > end_date:
            raise ValidationError("start_date must be on or before end_date")

        member = await self.require_member(workspace_id, user_id)
        excusal = Excusal(
            roster_member_id=member.id,
            start_date=start_date,
            end_date=end_date,
            reason=reason or "",
        )
        self.db.add(excusal)
        await self.db.commit()
        await self.db.refresh(excusal)

        logger.info(f"Excused {user_id} in {workspace_id} from {start_date} to {end_date}")
        return excusal

    async def remove_excusal(self, workspace_id: str, user_id: str, on_date: date) -> int:
        """Delete the member's excusals covering ``on_date``; returns how many were removed"""

        member = await self.require_member(workspace_id, user_id)
        stmt = select(Excusal).where(
            Excusal.roster_member_id == member.id,
            Excusal.start_date <= on_date,
            Excusal.end_date >= on_date,
        )
        result = await self.db.execute(stmt)
        excusals = result.scalars().all()
        if not excusals:
            raise NotFoundError(f"No excusal for {user_id} covering {on_date.isoformat()}")

        for excusal in excusals:
            await self.db.delete(excusal)
        await self.db.commit()
        return len(excusals)

    async def list_excusals(
        self,
        workspace_id: str,
        user_id: Optional[str] = None,
        active_on: Optional[date] = None,
    ) -> List[Excusal]:
        stmt = (
            select(Excusal)
            .join(RosterMember, Excusal.roster_member_id == RosterMember.id)
            .where(RosterMember.workspace_id == workspace_id)
            .order_by(Excusal.start_date, Excusal.id)
        )
        if user_id is not None:
            stmt = stmt.where(RosterMember.user_id == user_id)
        if active_on is not None:
            stmt = stmt.where(Excusal.end_date >= active_on)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def is_excused(self, workspace_id: str, user_id: str, on_date: date) -> bool:
        member = await self.get_member(workspace_id, user_id)
        if member is None:
            return False
        stmt = select(Excusal.id).where(
            Excusal.roster_member_id == member.id,
            Excusal.start_date <= on_date,
            Excusal.end_date >= on_date,
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None
