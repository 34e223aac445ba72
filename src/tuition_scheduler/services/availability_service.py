'''
Availability Service

Weekly schedules (replaced wholesale) and the generated recurring-slot view
offered to students when they pick a weekly time with a tutor.
'''
import datetime
from collections import defaultdict
from typing import Annotated, Callable, Optional, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..common.config import settings
from ..common.exceptions import ConflictError, ValidationError
from ..common.logger import log
from ..common.time_utils import intervals_overlap, to_minutes, validate_time_range
from ..core.availability import CandidateWindow, expand_block
from ..core.owners import Owner
from ..core.recurrence import ONE_WEEK, first_occurrence, resolve_enrollment_end
from ..database import models as db_models
from ..database.db_enums import BLOCKING_SLOT_STATUSES, SlotStatus, Weekday
from ..database.engine import get_session_factory
from ..database.transactions import RetryableTransaction, RetryPolicy
from ..models import availability as availability_models
from .party_service import PartyService


class AvailabilityService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_policy: Optional[RetryPolicy] = None,
        now: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.transaction = RetryableTransaction(session_factory, retry_policy)
        self._now = now or datetime.datetime.now

    # --- Weekly Schedule ---

    @staticmethod
    def _validate_blocks(blocks: Sequence[availability_models.WeeklyBlockInput]) -> list[tuple[int, int]]:
        ranges = []
        seen = set()
        for block in blocks:
            ranges.append(validate_time_range(block.start_time, block.end_time))
            key = (block.day_of_week, block.start_time, block.end_time)
            if key in seen:
                raise ConflictError(
                    f"Duplicate weekly block {block.day_of_week.value} {block.start_time}-{block.end_time}.",
                    details={"day_of_week": block.day_of_week.value, "start_time": block.start_time, "end_time": block.end_time}
                )
            seen.add(key)
        return ranges

    @staticmethod
    async def _ensure_owner_exists(db: AsyncSession, owner: Owner) -> None:
        parties = PartyService(db)
        if owner.is_tutor:
            await parties.get_tutor(owner.id, require_active=False)
        else:
            await parties.get_student(owner.id, require_active=False)

    async def replace_weekly_availability(
        self,
        owner: Owner,
        blocks: Sequence[availability_models.WeeklyBlockInput]
    ) -> list[availability_models.WeeklyBlockRead]:
        """
        Replaces the owner's whole weekly schedule: existing blocks are deleted
        and the new ones inserted in the same transaction. An empty list clears it.
        """
        ranges = self._validate_blocks(blocks)

        async def work(db: AsyncSession) -> list[availability_models.WeeklyBlockRead]:
            await self._ensure_owner_exists(db, owner)
            await db.execute(
                delete(db_models.WeeklyAvailabilityBlocks).where(
                    db_models.WeeklyAvailabilityBlocks.owner_type == owner.kind.value,
                    db_models.WeeklyAvailabilityBlocks.owner_id == owner.id
                )
            )
            rows = [
                db_models.WeeklyAvailabilityBlocks(
                    owner_type=owner.kind.value,
                    owner_id=owner.id,
                    day_of_week=block.day_of_week.value,
                    start_time=block.start_time,
                    end_time=block.end_time,
                    start_minutes=start_minutes,
                    end_minutes=end_minutes
                )
                for block, (start_minutes, end_minutes) in zip(blocks, ranges)
            ]
            db.add_all(rows)
            await db.flush()
            return [availability_models.WeeklyBlockRead.model_validate(row) for row in rows]

        log.info(f"Replacing weekly availability for {owner} with {len(blocks)} block(s).")
        return await self.transaction.run("replace_weekly_availability", work)

    async def get_weekly_availability(self, owner: Owner) -> list[availability_models.WeeklyBlockRead]:
        async def work(db: AsyncSession) -> list[availability_models.WeeklyBlockRead]:
            await self._ensure_owner_exists(db, owner)
            rows = await self._blocks_for(db, owner)
            return [availability_models.WeeklyBlockRead.model_validate(row) for row in rows]

        return await self.transaction.run("get_weekly_availability", work)

    @staticmethod
    async def _blocks_for(db: AsyncSession, owner: Owner) -> list[db_models.WeeklyAvailabilityBlocks]:
        stmt = select(db_models.WeeklyAvailabilityBlocks).filter(
            db_models.WeeklyAvailabilityBlocks.owner_type == owner.kind.value,
            db_models.WeeklyAvailabilityBlocks.owner_id == owner.id
        ).order_by(db_models.WeeklyAvailabilityBlocks.start_minutes)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # --- Generated Templates ---

    def _check_occurrence(
        self,
        window: CandidateWindow,
        occurrence: datetime.date,
        blocking_by_date: dict[datetime.date, list[db_models.TimeSlots]],
        now: datetime.datetime
    ) -> Optional[availability_models.SlotConflictDetail]:
        """The reason one weekly occurrence of a window can't be offered, if any."""
        today = now.date()
        if occurrence < today:
            return availability_models.SlotConflictDetail(date=occurrence, status=SlotStatus.COMPLETED, reason="In the past")
        if occurrence == today and window.start_minutes <= to_minutes(now.strftime("%H:%M")):
            return availability_models.SlotConflictDetail(date=occurrence, status=SlotStatus.COMPLETED, reason="In the past today")
        for slot in blocking_by_date.get(occurrence, []):
            if intervals_overlap(window.start_minutes, window.end_minutes, slot.start_minutes, slot.end_minutes):
                return availability_models.SlotConflictDetail(
                    date=occurrence,
                    status=SlotStatus(slot.status),
                    slot_id=slot.id,
                    tutor_id=slot.tutor_id,
                    student_id=slot.student_id
                )
        return None

    async def get_generated_slot_templates(
        self,
        tutor_id: UUID,
        student_id: UUID,
        duration_minutes: int
    ) -> list[availability_models.GeneratedSlotTemplate]:
        """
        For every weekly window the tutor could offer (blocks cut into
        `duration_minutes` pieces), walks its weekly recurrences across the
        student's enrollment and reports one aggregate status:
        'booked' if any recurrence collides with a booked/completed slot of
        the tutor or the student, 'completed' if some recurrence already lies
        in the past, else 'available'.
        """
        if duration_minutes is None or duration_minutes <= 0:
            raise ValidationError("Invalid duration_minutes. Must be a positive number.",
                                  details={"duration_minutes": duration_minutes})

        async def work(db: AsyncSession) -> list[availability_models.GeneratedSlotTemplate]:
            now = self._now()
            parties = PartyService(db)
            tutor = await parties.get_tutor(tutor_id)
            student = await parties.get_student(student_id)

            range_start = student.start_date
            range_end = resolve_enrollment_end(student.discharge_date, now.date(), settings.OPEN_ENDED_HORIZON_YEARS)

            blocks = await self._blocks_for(db, Owner.tutor(tutor.id))
            if not blocks:
                return []

            result = await db.execute(
                select(db_models.TimeSlots).filter(
                    or_(db_models.TimeSlots.tutor_id == tutor.id, db_models.TimeSlots.student_id == student.id),
                    db_models.TimeSlots.date >= range_start,
                    db_models.TimeSlots.date <= range_end,
                    db_models.TimeSlots.status.in_(BLOCKING_SLOT_STATUSES)
                )
            )
            blocking_by_date: dict[datetime.date, list[db_models.TimeSlots]] = defaultdict(list)
            for slot in result.scalars().all():
                blocking_by_date[slot.date].append(slot)

            blocks_by_day: dict[str, list[db_models.WeeklyAvailabilityBlocks]] = defaultdict(list)
            for block in blocks:
                blocks_by_day[block.day_of_week].append(block)

            templates = []
            for weekday in Weekday:
                first_date = first_occurrence(weekday, range_start)
                for block in blocks_by_day.get(weekday.value, []):
                    for window in expand_block(block, first_date, duration_minutes):
                        conflicts = []
                        occurrence = first_date
                        while occurrence <= range_end:
                            conflict = self._check_occurrence(window, occurrence, blocking_by_date, now)
                            if conflict:
                                conflicts.append(conflict)
                            occurrence += ONE_WEEK

                        if any(c.status in (SlotStatus.BOOKED, SlotStatus.COMPLETED) and c.slot_id for c in conflicts):
                            status = SlotStatus.BOOKED
                        elif conflicts:
                            status = SlotStatus.COMPLETED
                        else:
                            status = SlotStatus.AVAILABLE

                        templates.append(availability_models.GeneratedSlotTemplate(
                            day_of_week=weekday,
                            start_time=window.start_time,
                            end_time=window.end_time,
                            status=status,
                            tutor_id=tutor.id,
                            tutor_name=tutor.full_name,
                            conflict_details=conflicts
                        ))
            log.info(f"Generated {len(templates)} slot template(s) for tutor {tutor.id} / student {student.id}.")
            return templates

        return await self.transaction.run("get_generated_slot_templates", work)


def get_availability_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
) -> AvailabilityService:
    """FastAPI dependency."""
    return AvailabilityService(session_factory)
