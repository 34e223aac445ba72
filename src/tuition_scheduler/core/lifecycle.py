'''
Slot status / attendance state machine.

    available --book--> booked --cancel--> cancelled
                          |
                          +--mark attendance--> completed (attended | missed)

cancelled and completed are terminal. The guards below only inspect the
slot and the actor; the conflict check for booking is done by the caller
inside its transaction.
'''
import datetime
from typing import Optional
from uuid import UUID

from ..common.exceptions import ConflictError, StateError, UnauthorizedRoleError, ValidationError
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import AttendanceStatus, SlotStatus
from ..models.token import Actor

TERMINAL_STATUSES = frozenset({SlotStatus.COMPLETED.value, SlotStatus.CANCELLED.value})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SlotStatus.AVAILABLE.value: frozenset({SlotStatus.BOOKED.value}),
    SlotStatus.BOOKED.value: frozenset({SlotStatus.CANCELLED.value, SlotStatus.COMPLETED.value, SlotStatus.BOOKED.value}),
    SlotStatus.COMPLETED.value: frozenset(),
    SlotStatus.CANCELLED.value: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(slot: db_models.TimeSlots, target: SlotStatus) -> None:
    if not can_transition(slot.status, target.value):
        raise StateError(
            f"Slot {slot.id} cannot move from '{slot.status}' to '{target.value}'.",
            details={"slot_id": str(slot.id), "current_status": slot.status, "requested_status": target.value}
        )


def initial_status(student_id: Optional[UUID], requested: Optional[SlotStatus]) -> SlotStatus:
    """Status a newly created slot starts in."""
    if requested is None:
        return SlotStatus.BOOKED if student_id else SlotStatus.AVAILABLE
    if requested in (SlotStatus.COMPLETED, SlotStatus.CANCELLED):
        raise ValidationError(f"A slot cannot be created with status '{requested.value}'.")
    if requested == SlotStatus.BOOKED and not student_id:
        raise ValidationError("A booked slot requires a student.")
    if requested == SlotStatus.AVAILABLE and student_id:
        raise ValidationError("An available slot cannot have a student assigned.")
    return requested


# --- Guards ---

def ensure_bookable(slot: db_models.TimeSlots, student_id: Optional[UUID]) -> None:
    """available -> booked."""
    if not student_id:
        raise ValidationError("A student is required to book a slot.")
    if slot.status in (SlotStatus.BOOKED.value, SlotStatus.COMPLETED.value):
        raise ConflictError(
            f"Slot on {slot.date.isoformat()} {slot.start_time}-{slot.end_time} is already taken.",
            details={
                "slot_id": str(slot.id),
                "date": slot.date.isoformat(),
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "status": slot.status
            }
        )
    ensure_transition(slot, SlotStatus.BOOKED)


def ensure_can_cancel(slot: db_models.TimeSlots, actor: Actor) -> None:
    """booked -> cancelled, by the assigned student or an admin."""
    ensure_transition(slot, SlotStatus.CANCELLED)
    if not (actor.is_admin or actor.is_student(slot.student_id)):
        log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to cancel slot {slot.id} assigned to {slot.student_id}.")
        raise UnauthorizedRoleError("Only the assigned student or an admin can cancel this slot.")


def ensure_can_reschedule(slot: db_models.TimeSlots, actor: Actor) -> None:
    """The old side of a reschedule follows the cancellation rules."""
    if slot.status != SlotStatus.BOOKED.value:
        raise StateError(
            f"Only booked slots can be rescheduled; slot {slot.id} is '{slot.status}'.",
            details={"slot_id": str(slot.id), "current_status": slot.status}
        )
    ensure_can_cancel(slot, actor)


def parse_attendance(attendance: Optional[str]) -> AttendanceStatus:
    if attendance is None or attendance == "":
        raise ValidationError("Attendance ('attended' or 'missed') is required to complete a slot.")
    try:
        return AttendanceStatus(attendance)
    except ValueError:
        raise ValidationError(
            f"Invalid attendance value: {attendance}.",
            details={"allowed": AttendanceStatus.get_all_names()}
        )


def ensure_can_mark_attendance(slot: db_models.TimeSlots, actor: Actor, attendance: Optional[str]) -> AttendanceStatus:
    """booked -> completed, by the slot's tutor or an admin. Returns the parsed attendance."""
    parsed = parse_attendance(attendance)
    ensure_transition(slot, SlotStatus.COMPLETED)
    if not (actor.is_admin or actor.is_tutor(slot.tutor_id)):
        log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to mark attendance on slot {slot.id} owned by tutor {slot.tutor_id}.")
        raise UnauthorizedRoleError("Only the slot's tutor or an admin can mark attendance.")
    return parsed


# --- Mutations (applied inside the caller's transaction) ---

def apply_booking(slot: db_models.TimeSlots, student_id: UUID) -> None:
    slot.student_id = student_id
    slot.status = SlotStatus.BOOKED.value


def apply_cancellation(slot: db_models.TimeSlots, actor: Actor, now: datetime.datetime) -> None:
    # student_id stays on the row for audit; cancelled rows never block time
    slot.status = SlotStatus.CANCELLED.value
    slot.cancelled_by = actor.id
    slot.cancelled_at = now


def apply_completion(slot: db_models.TimeSlots, attendance: AttendanceStatus) -> None:
    slot.status = SlotStatus.COMPLETED.value
    slot.attendance = attendance.value


def apply_release(slot: db_models.TimeSlots) -> None:
    """Frees a booked slot back to the tutor when its student leaves."""
    slot.student_id = None
    slot.status = SlotStatus.AVAILABLE.value
