'''
API models for concrete time slots.
'''
import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import AttendanceStatus, SlotStatus

# --- API Read Models (Output) ---

class SlotRead(BaseModel):
    id: UUID
    tutor_id: UUID
    student_id: Optional[UUID] = None
    recurring_pattern_id: Optional[UUID] = None
    date: datetime.date
    start_time: str
    end_time: str
    start_minutes: int
    end_minutes: int
    status: SlotStatus
    attendance: Optional[AttendanceStatus] = None
    tutor_payout: Decimal = Decimal("0")
    created_by: UUID

    model_config = ConfigDict(from_attributes=True)

class SlotCreateResult(BaseModel):
    created_count: int
    created_ids: list[UUID]

class SlotListPage(BaseModel):
    """One page of slots, ordered by date then start time."""
    items: list[SlotRead]
    current_page: int
    total_pages: int
    total_records: int


# --- API Write Models (Input) ---

class SlotCreate(BaseModel):
    """
    A single manual slot. Times are validated by the service so malformed
    values surface as scheduling validation errors.
    """
    tutor_id: UUID
    date: datetime.date
    start_time: str = Field(..., description="Start time as HH:MM.")
    end_time: str = Field(..., description="End time as HH:MM.")
    student_id: Optional[UUID] = None
    status: Optional[SlotStatus] = Field(None, description="Defaults to 'booked' with a student, else 'available'.")

class SlotBookRequest(BaseModel):
    student_id: UUID

class SlotStatusUpdate(BaseModel):
    """
    new_status is a slot status, or 'attended' / 'missed' as shorthand for
    completing the slot. Values are checked by the service so bad ones
    surface as scheduling validation errors.
    """
    new_status: str
    attendance: Optional[AttendanceStatus] = None

class AttendanceMark(BaseModel):
    attendance: AttendanceStatus

class RescheduleRequest(BaseModel):
    old_slot_id: UUID
    new_slot_id: UUID
