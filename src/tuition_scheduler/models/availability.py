'''
API models for weekly availability and generated slot templates.
'''
import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import OwnerType, SlotStatus, Weekday

class WeeklyBlockInput(BaseModel):
    day_of_week: Weekday
    start_time: str
    end_time: str

class WeeklyScheduleUpdate(BaseModel):
    """The owner's complete weekly schedule; it replaces whatever was stored."""
    blocks: list[WeeklyBlockInput]

class WeeklyBlockRead(BaseModel):
    id: UUID
    owner_type: OwnerType
    owner_id: UUID
    day_of_week: Weekday
    start_time: str
    end_time: str
    start_minutes: int
    end_minutes: int

    model_config = ConfigDict(from_attributes=True)

class SlotConflictDetail(BaseModel):
    date: datetime.date
    status: SlotStatus
    reason: Optional[str] = None
    slot_id: Optional[UUID] = None
    tutor_id: Optional[UUID] = None
    student_id: Optional[UUID] = None

class GeneratedSlotTemplate(BaseModel):
    """
    A recurring weekly window offered to a student, with its aggregate status
    across every week of the student's enrollment.
    """
    day_of_week: Weekday
    start_time: str
    end_time: str
    status: SlotStatus
    tutor_id: UUID
    tutor_name: str
    conflict_details: list[SlotConflictDetail] = []
