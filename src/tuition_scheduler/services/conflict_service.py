'''
Conflict Detector
'''
import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.exceptions import ConflictError
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import BLOCKING_SLOT_STATUSES, SlotStatus


class ConflictDetector:
    """
    Answers "is this interval already taken?" on the caller's session, so the
    check and the following write share one transaction.
    Only booked and completed slots block; available and cancelled never do.
    """
    def __init__(self, db: AsyncSession):
        self.db = db

    async def lock_parties(self, tutor_ids: Iterable[UUID], student_ids: Iterable[Optional[UUID]] = ()) -> None:
        """
        Row-locks the tutors and students involved in a write. Concurrent
        bookings touching the same party queue here instead of racing past
        each other's conflict checks. Locks are taken in a fixed order.
        """
        tutor_ids = sorted({t for t in tutor_ids if t is not None})
        student_ids = sorted({s for s in student_ids if s is not None})
        if tutor_ids:
            await self.db.execute(
                select(db_models.Tutors.id)
                .filter(db_models.Tutors.id.in_(tutor_ids))
                .order_by(db_models.Tutors.id)
                .with_for_update()
            )
        if student_ids:
            await self.db.execute(
                select(db_models.Students.id)
                .filter(db_models.Students.id.in_(student_ids))
                .order_by(db_models.Students.id)
                .with_for_update()
            )

    async def find_conflict(
        self,
        tutor_id: UUID,
        student_id: Optional[UUID],
        slot_date: datetime.date,
        start_minutes: int,
        end_minutes: int,
        exclude_slot_id: Optional[UUID] = None
    ) -> Optional[db_models.TimeSlots]:
        party_filter = [db_models.TimeSlots.tutor_id == tutor_id]
        if student_id:
            party_filter.append(db_models.TimeSlots.student_id == student_id)

        stmt = select(db_models.TimeSlots).filter(
            db_models.TimeSlots.date == slot_date,
            db_models.TimeSlots.status.in_(BLOCKING_SLOT_STATUSES),
            or_(*party_filter),
            and_(
                db_models.TimeSlots.start_minutes < end_minutes,
                db_models.TimeSlots.end_minutes > start_minutes
            )
        )
        if exclude_slot_id:
            stmt = stmt.filter(db_models.TimeSlots.id != exclude_slot_id)

        result = await self.db.execute(stmt.limit(1))
        return result.scalars().first()

    async def has_conflict(
        self,
        tutor_id: UUID,
        student_id: Optional[UUID],
        slot_date: datetime.date,
        start_minutes: int,
        end_minutes: int,
        exclude_slot_id: Optional[UUID] = None
    ) -> bool:
        conflict = await self.find_conflict(tutor_id, student_id, slot_date, start_minutes, end_minutes, exclude_slot_id)
        return conflict is not None

    async def ensure_no_conflict(
        self,
        tutor_id: UUID,
        student_id: Optional[UUID],
        slot_date: datetime.date,
        start_minutes: int,
        end_minutes: int,
        exclude_slot_id: Optional[UUID] = None
    ) -> None:
        """Raises ConflictError describing the first overlapping slot."""
        conflict = await self.find_conflict(tutor_id, student_id, slot_date, start_minutes, end_minutes, exclude_slot_id)
        if conflict is None:
            return

        party = "tutor" if conflict.tutor_id == tutor_id else "student"
        log.info(f"Conflict on {slot_date.isoformat()} for {party}: existing slot {conflict.id} "
                 f"{conflict.start_time}-{conflict.end_time} ({conflict.status}).")
        raise ConflictError(
            f"Time conflict: slot on {slot_date.isoformat()} overlaps with an existing {conflict.status} session "
            f"({conflict.start_time}-{conflict.end_time}) for the {party}.",
            details={
                "date": slot_date.isoformat(),
                "party": party,
                "tutor_id": str(tutor_id),
                "student_id": str(student_id) if student_id else None,
                "conflicting_slot_id": str(conflict.id),
                "conflicting_start_time": conflict.start_time,
                "conflicting_end_time": conflict.end_time
            }
        )

    async def find_duplicate_window(
        self,
        tutor_id: UUID,
        slot_date: datetime.date,
        start_time: str,
        end_time: str
    ) -> Optional[db_models.TimeSlots]:
        """The non-cancelled slot already holding this exact tutor/date/window, if any."""
        stmt = select(db_models.TimeSlots).filter(
            db_models.TimeSlots.tutor_id == tutor_id,
            db_models.TimeSlots.date == slot_date,
            db_models.TimeSlots.start_time == start_time,
            db_models.TimeSlots.end_time == end_time,
            db_models.TimeSlots.status != SlotStatus.CANCELLED.value
        )
        result = await self.db.execute(stmt.limit(1))
        return result.scalars().first()
