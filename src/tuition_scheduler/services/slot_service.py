'''
Slot Service (read side)
'''
import datetime
import math
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.exceptions import NotFoundError, UnauthorizedRoleError, ValidationError
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import SlotStatus
from ..database.engine import get_db_session
from ..models import slots as slot_models
from ..models.token import Actor


class SlotQueryService:
    """
    Read-only access to time slots. Writes go through BookingService.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_slot(self, slot_id: UUID) -> slot_models.SlotRead:
        slot = await self.db.get(db_models.TimeSlots, slot_id)
        if not slot:
            raise NotFoundError(f"Slot with ID {slot_id} not found.", details={"slot_id": str(slot_id)})
        return slot_models.SlotRead.model_validate(slot)

    @staticmethod
    def _parse_date(value: Optional[str], field: str) -> Optional[datetime.date]:
        if value is None or value == "":
            return None
        try:
            return datetime.date.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"Invalid {field} format. Use YYYY-MM-DD.", details={field: value})

    async def list_slots(
        self,
        tutor_id: Optional[UUID] = None,
        student_id: Optional[UUID] = None,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        page: int = 1,
        limit: int = 10
    ) -> slot_models.SlotListPage:
        """
        Lists one tutor's or one student's slots, ordered by date then start time.
        Exactly one of tutor_id / student_id is required.
        """
        if (tutor_id is None) == (student_id is None):
            raise ValidationError("Provide exactly one of tutor_id or student_id.")
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive integers.", details={"page": page, "limit": limit})

        filters = []
        if tutor_id:
            filters.append(db_models.TimeSlots.tutor_id == tutor_id)
        else:
            filters.append(db_models.TimeSlots.student_id == student_id)

        if status:
            try:
                filters.append(db_models.TimeSlots.status == SlotStatus(status).value)
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}.", details={"allowed": SlotStatus.get_all_names()})

        start = self._parse_date(start_date, "start_date")
        end = self._parse_date(end_date, "end_date")
        if start and end and start > end:
            raise ValidationError("start_date must not be after end_date.")
        if start:
            filters.append(db_models.TimeSlots.date >= start)
        if end:
            filters.append(db_models.TimeSlots.date <= end)

        total = await self.db.scalar(select(func.count()).select_from(db_models.TimeSlots).filter(*filters))
        stmt = select(db_models.TimeSlots).filter(*filters).order_by(
            db_models.TimeSlots.date, db_models.TimeSlots.start_minutes
        ).offset((page - 1) * limit).limit(limit)
        result = await self.db.execute(stmt)
        items = [slot_models.SlotRead.model_validate(slot) for slot in result.scalars().all()]

        log.info(f"Listed {len(items)} of {total} slot(s) (page {page}).")
        return slot_models.SlotListPage(
            items=items,
            current_page=page,
            total_pages=math.ceil(total / limit) if total else 0,
            total_records=total
        )

    @staticmethod
    def authorize_listing(actor: Actor, tutor_id: Optional[UUID], student_id: Optional[UUID]) -> None:
        """Tutors see their own slots, students their own; admins see everything."""
        if actor.is_admin:
            return
        if tutor_id and actor.is_tutor(tutor_id):
            return
        if student_id and actor.is_student(student_id):
            return
        log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to list slots of another user.")
        raise UnauthorizedRoleError("You can only view your own slots.")
