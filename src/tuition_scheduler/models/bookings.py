'''
API models for recurring bookings, pattern maintenance and payment linkage.
'''
import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import PatternStatus, UserStatus, Weekday

# --- API Write Models (Input) ---

class RecurringPatternInput(BaseModel):
    day_of_week: Weekday
    start_time: str = Field(..., description="Start time as HH:MM.")
    end_time: str = Field(..., description="End time as HH:MM.")
    duration_minutes: int

class PaymentDetails(BaseModel):
    """
    A completed gateway charge. Amounts are passed through untouched.
    """
    order_id: str
    payment_id: str
    signature: str
    amount: Decimal
    transaction_fee: Decimal = Decimal("0")
    tutor_payout: Decimal = Decimal("0")

class RecurringBookingRequest(BaseModel):
    tutor_id: UUID
    student_id: UUID
    patterns: list[RecurringPatternInput]
    payment: Optional[PaymentDetails] = None

class StudentStatusChange(BaseModel):
    status: UserStatus

class PaymentOrderRequest(BaseModel):
    tutor_id: UUID
    student_id: UUID
    amount: Decimal = Field(..., gt=0, description="Amount to charge, in major currency units.")
    currency: Optional[str] = None


# --- API Read Models (Output) ---

class RecurringBookingResult(BaseModel):
    booked_slot_ids: list[UUID]
    total_booked_count: int
    created_recurring_pattern_ids: list[UUID]

class RecurringPatternRead(BaseModel):
    id: UUID
    tutor_id: UUID
    student_id: UUID
    day_of_week: Weekday
    start_time: str
    end_time: str
    duration_minutes: int
    recurring_start_date: datetime.date
    recurring_end_date: Optional[datetime.date] = None
    payment_id: Optional[UUID] = None
    status: PatternStatus
    initial_batch_size_months: Optional[int] = None
    last_extension_date: Optional[datetime.date] = None

    model_config = ConfigDict(from_attributes=True)

class PatternExtensionResult(BaseModel):
    pattern_id: UUID
    created_slot_ids: list[UUID]
    created_count: int
    restored_slot_ids: list[UUID] = []
    restored_count: int = 0
    window_end: datetime.date

class StudentStatusResult(BaseModel):
    student_id: UUID
    status: UserStatus
    released_slot_count: int
    affected_pattern_ids: list[UUID]

class StudentRemovalResult(BaseModel):
    tutor_id: UUID
    student_id: UUID
    released_slot_count: int
    affected_pattern_ids: list[UUID]

class PaymentOrderRead(BaseModel):
    order_id: str
    amount: Decimal
    currency: str
    receipt: str
