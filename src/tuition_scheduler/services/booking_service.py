'''
Booking Service

The only place slot, recurring-pattern and payment rows are written.
Every public operation:
1. validates what it can without touching storage,
2. runs its unit of work through RetryableTransaction (fresh session per attempt,
   party rows locked, conflicts re-checked inside the transaction),
3. hands queued notifications to the notifier only after commit.
'''
import asyncio
import datetime
from decimal import Decimal
from typing import Annotated, Any, Awaitable, Callable, Optional, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..common.config import settings
from ..common.exceptions import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    StateError,
    UnauthorizedRoleError,
    ValidationError,
)
from ..common.logger import log
from ..common.time_utils import validate_time_range
from ..core import lifecycle
from ..core.availability import window_fits_block
from ..core.recurrence import booking_window_cap, expand_pattern_dates, resolve_enrollment_end
from ..database import models as db_models
from ..database.db_enums import (
    AttendanceStatus,
    OwnerType,
    PatternStatus,
    PaymentStatus,
    SlotStatus,
    UserRole,
    UserStatus,
    Weekday,
)
from ..database.engine import get_session_factory
from ..database.transactions import RetryableTransaction, RetryPolicy
from ..models import bookings as booking_models
from ..models import slots as slot_models
from ..models.token import Actor
from .conflict_service import ConflictDetector
from .notifications import LoggingNotifier, NotificationPort, SafeNotifier, get_notifier
from .party_service import PartyService
from .payment_gateway import PaymentGateway, build_receipt, get_payment_gateway


class _Outbox:
    """Notifications queued by a unit of work; discarded if the attempt fails."""
    def __init__(self):
        self.messages: list[tuple[str, str, str]] = []
        self.events: list[tuple[str, dict[str, Any]]] = []

    def notify(self, recipient: Optional[str], subject: str, body: str) -> None:
        if recipient:
            self.messages.append((recipient, subject, body))

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, payload))


class BookingService:
    """
    Coordinates atomic creation, booking, cancellation, rescheduling and
    completion of slots, plus recurring-pattern batches and their payments.
    """
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[NotificationPort] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        retry_policy: Optional[RetryPolicy] = None,
        now: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.transaction = RetryableTransaction(session_factory, retry_policy)
        self.notifier = SafeNotifier(notifier or LoggingNotifier())
        self.payment_gateway = payment_gateway
        self._now = now or datetime.datetime.now
        self._pending_notifications: set[asyncio.Task] = set()

    def _today(self) -> datetime.date:
        return self._now().date()

    # --- 1. Transaction / Notification Plumbing ---

    async def _run(self, op_name: str, work: Callable[[AsyncSession, _Outbox], Awaitable[Any]]) -> Any:
        async def unit_of_work(db: AsyncSession):
            outbox = _Outbox()
            result = await work(db, outbox)
            return result, outbox

        result, outbox = await self.transaction.run(op_name, unit_of_work)
        self._dispatch(outbox)
        return result

    def _dispatch(self, outbox: _Outbox) -> None:
        """Fire-and-forget delivery of everything a committed unit of work queued."""
        if not outbox.messages and not outbox.events:
            return

        async def deliver():
            for recipient, subject, body in outbox.messages:
                await self.notifier.notify(recipient, subject, body)
            for event_name, payload in outbox.events:
                await self.notifier.emit(event_name, payload)

        task = asyncio.create_task(deliver())
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def wait_for_notifications(self) -> None:
        """Waits for in-flight deliveries (used on shutdown and in tests)."""
        if self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications))

    # --- 2. Authorization Helpers ---

    def _authorize_slot_creation(self, tutor_ids: set[UUID], actor: Actor) -> None:
        if actor.is_admin:
            return
        if actor.role == UserRole.TUTOR and tutor_ids == {actor.id}:
            return
        log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to create slots for tutors {tutor_ids}.")
        raise UnauthorizedRoleError("Only admins or the tutor themselves can create slots.")

    def _authorize_student_action(self, student_id: UUID, actor: Actor) -> None:
        if actor.is_admin or actor.is_student(student_id):
            return
        log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to act on behalf of student {student_id}.")
        raise UnauthorizedRoleError("Only the student themselves or an admin can perform this booking.")

    def _authorize_admin(self, actor: Actor) -> None:
        if not actor.is_admin:
            log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to perform an admin-only action.")
            raise UnauthorizedRoleError("This action is restricted to admins.")

    # --- 3. Internal Helpers (run inside a transaction) ---

    async def _get_slots_for_update(self, db: AsyncSession, slot_ids: Sequence[UUID]) -> dict[UUID, db_models.TimeSlots]:
        stmt = select(db_models.TimeSlots).filter(
            db_models.TimeSlots.id.in_(list(slot_ids))
        ).order_by(db_models.TimeSlots.id).with_for_update()
        result = await db.execute(stmt)
        slots = {slot.id: slot for slot in result.scalars().all()}
        for slot_id in slot_ids:
            if slot_id not in slots:
                raise NotFoundError(f"Slot with ID {slot_id} not found.", details={"slot_id": str(slot_id)})
        return slots

    async def _get_slot_for_update(self, db: AsyncSession, slot_id: UUID) -> db_models.TimeSlots:
        slots = await self._get_slots_for_update(db, [slot_id])
        return slots[slot_id]

    async def _insert_slot(
        self,
        db: AsyncSession,
        *,
        tutor_id: UUID,
        slot_date: datetime.date,
        start_time: str,
        end_time: str,
        student_id: Optional[UUID],
        status: Optional[SlotStatus],
        created_by: UUID,
        recurring_pattern_id: Optional[UUID] = None
    ) -> db_models.TimeSlots:
        """
        Validates and inserts one slot, then flushes so the next slot of the
        same batch sees it in its own conflict check.
        """
        start_minutes, end_minutes = validate_time_range(start_time, end_time)
        initial = lifecycle.initial_status(student_id, status)

        parties = PartyService(db)
        await parties.get_tutor(tutor_id)
        await parties.get_optional_student(student_id)

        detector = ConflictDetector(db)
        duplicate = await detector.find_duplicate_window(tutor_id, slot_date, start_time, end_time)
        if duplicate:
            raise ConflictError(
                f"Tutor already has a slot on {slot_date.isoformat()} {start_time}-{end_time}.",
                details={"date": slot_date.isoformat(), "start_time": start_time, "end_time": end_time,
                         "tutor_id": str(tutor_id), "existing_slot_id": str(duplicate.id)}
            )
        await detector.ensure_no_conflict(tutor_id, student_id, slot_date, start_minutes, end_minutes)

        slot = db_models.TimeSlots(
            tutor_id=tutor_id,
            student_id=student_id,
            recurring_pattern_id=recurring_pattern_id,
            date=slot_date,
            start_time=start_time,
            end_time=end_time,
            start_minutes=start_minutes,
            end_minutes=end_minutes,
            status=initial.value,
            created_by=created_by
        )
        db.add(slot)
        await db.flush()
        return slot

    async def _release_future_slots(
        self,
        db: AsyncSession,
        student_id: UUID,
        today: datetime.date,
        tutor_id: Optional[UUID] = None
    ) -> dict[UUID, int]:
        """Frees the student's booked slots dated today or later. Returns the freed count per tutor."""
        stmt = select(db_models.TimeSlots).filter(
            db_models.TimeSlots.student_id == student_id,
            db_models.TimeSlots.status == SlotStatus.BOOKED.value,
            db_models.TimeSlots.date >= today
        )
        if tutor_id:
            stmt = stmt.filter(db_models.TimeSlots.tutor_id == tutor_id)

        released_by_tutor: dict[UUID, int] = {}
        for slot in (await db.execute(stmt.with_for_update())).scalars().all():
            lifecycle.apply_release(slot)
            released_by_tutor[slot.tutor_id] = released_by_tutor.get(slot.tutor_id, 0) + 1
        return released_by_tutor

    async def _tutor_blocks(self, db: AsyncSession, tutor_id: UUID) -> list[db_models.WeeklyAvailabilityBlocks]:
        stmt = select(db_models.WeeklyAvailabilityBlocks).filter(
            db_models.WeeklyAvailabilityBlocks.owner_type == OwnerType.TUTOR.value,
            db_models.WeeklyAvailabilityBlocks.owner_id == tutor_id
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _slot_summary(slot: db_models.TimeSlots) -> str:
        return f"{slot.date.isoformat()} {slot.start_time}-{slot.end_time}"

    # --- 4. Manual Slots ---

    async def create_manual_slots(
        self,
        requests: Sequence[slot_models.SlotCreate],
        actor: Actor
    ) -> slot_models.SlotCreateResult:
        """
        Creates every requested slot or none of them. Slots are validated and
        inserted in the given order, each one checked against the ones before it.
        """
        if not requests:
            raise ValidationError("No slot data provided for creation.")
        self._authorize_slot_creation({r.tutor_id for r in requests}, actor)

        # Pure validation first, before any storage work
        for request in requests:
            validate_time_range(request.start_time, request.end_time)
            lifecycle.initial_status(request.student_id, request.status)

        log.info(f"{actor.role.value} {actor.id} creating {len(requests)} manual slot(s).")

        async def work(db: AsyncSession, outbox: _Outbox) -> slot_models.SlotCreateResult:
            await ConflictDetector(db).lock_parties(
                [r.tutor_id for r in requests], [r.student_id for r in requests]
            )
            created_ids = []
            for request in requests:
                slot = await self._insert_slot(
                    db,
                    tutor_id=request.tutor_id,
                    slot_date=request.date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    student_id=request.student_id,
                    status=request.status,
                    created_by=actor.id
                )
                created_ids.append(slot.id)
            outbox.emit("slots_created", {"slot_ids": [str(i) for i in created_ids], "created_by": str(actor.id)})
            return slot_models.SlotCreateResult(created_count=len(created_ids), created_ids=created_ids)

        result = await self._run("create_manual_slots", work)
        log.info(f"Successfully created {result.created_count} slot(s).")
        return result

    # --- 5. Single-Slot Lifecycle ---

    async def book_slot(self, slot_id: UUID, student_id: UUID, actor: Actor) -> slot_models.SlotRead:
        """available -> booked."""
        if not (actor.is_admin or actor.is_student(student_id) or actor.role == UserRole.TUTOR):
            raise UnauthorizedRoleError("You do not have permission to book this slot.")

        async def work(db: AsyncSession, outbox: _Outbox) -> slot_models.SlotRead:
            slot = await self._get_slot_for_update(db, slot_id)
            if actor.role == UserRole.TUTOR and not actor.is_tutor(slot.tutor_id):
                raise UnauthorizedRoleError("Tutors can only book their own slots.")
            lifecycle.ensure_bookable(slot, student_id)

            detector = ConflictDetector(db)
            await detector.lock_parties([slot.tutor_id], [student_id])
            parties = PartyService(db)
            tutor = await parties.get_tutor(slot.tutor_id)
            student = await parties.get_student(student_id)
            await detector.ensure_no_conflict(
                slot.tutor_id, student_id, slot.date, slot.start_minutes, slot.end_minutes, exclude_slot_id=slot.id
            )
            lifecycle.apply_booking(slot, student_id)
            await db.flush()

            outbox.notify(student.email, "Session booked",
                          f"Hello {student.first_name},\n\nYour session with {tutor.full_name} on {self._slot_summary(slot)} is booked.")
            outbox.notify(tutor.email, "New session booked",
                          f"Hello {tutor.first_name},\n\n{student.full_name} booked your slot on {self._slot_summary(slot)}.")
            outbox.emit("slot_booked", {"slot_id": str(slot.id), "student_id": str(student_id)})
            return slot_models.SlotRead.model_validate(slot)

        return await self._run("book_slot", work)

    async def cancel_slot(self, slot_id: UUID, actor: Actor) -> slot_models.SlotRead:
        """booked -> cancelled. The row is kept for audit."""
        async def work(db: AsyncSession, outbox: _Outbox) -> slot_models.SlotRead:
            slot = await self._get_slot_for_update(db, slot_id)
            lifecycle.ensure_can_cancel(slot, actor)
            lifecycle.apply_cancellation(slot, actor, self._now())
            await db.flush()

            tutor = await db.get(db_models.Tutors, slot.tutor_id)
            student = await db.get(db_models.Students, slot.student_id) if slot.student_id else None
            if tutor:
                outbox.notify(tutor.email, "Session cancelled",
                              f"Hello {tutor.first_name},\n\nThe session on {self._slot_summary(slot)} has been cancelled.")
            if student:
                outbox.notify(student.email, "Session cancelled",
                              f"Hello {student.first_name},\n\nYour session on {self._slot_summary(slot)} has been cancelled.")
            outbox.emit("slot_cancelled", {"slot_id": str(slot.id), "cancelled_by": str(actor.id)})
            return slot_models.SlotRead.model_validate(slot)

        log.info(f"{actor.role.value} {actor.id} cancelling slot {slot_id}.")
        return await self._run("cancel_slot", work)

    async def reschedule_slot(self, old_slot_id: UUID, new_slot_id: UUID, actor: Actor) -> slot_models.SlotRead:
        """
        Moves a booking onto another (available) slot in one transaction. If
        the target is taken or conflicts, nothing changes and the old slot
        stays booked.
        """
        if old_slot_id == new_slot_id:
            raise ValidationError("The new slot must differ from the slot being rescheduled.")

        async def work(db: AsyncSession, outbox: _Outbox) -> slot_models.SlotRead:
            slots = await self._get_slots_for_update(db, [old_slot_id, new_slot_id])
            old_slot, new_slot = slots[old_slot_id], slots[new_slot_id]

            lifecycle.ensure_can_reschedule(old_slot, actor)
            student_id = old_slot.student_id
            lifecycle.ensure_bookable(new_slot, student_id)

            detector = ConflictDetector(db)
            await detector.lock_parties([old_slot.tutor_id, new_slot.tutor_id], [student_id])
            parties = PartyService(db)
            tutor = await parties.get_tutor(new_slot.tutor_id)
            student = await parties.get_student(student_id)
            # the old booking is released by this same transaction
            await detector.ensure_no_conflict(
                new_slot.tutor_id, student_id, new_slot.date,
                new_slot.start_minutes, new_slot.end_minutes, exclude_slot_id=old_slot.id
            )

            lifecycle.apply_cancellation(old_slot, actor, self._now())
            lifecycle.apply_booking(new_slot, student_id)
            await db.flush()

            outbox.notify(student.email, "Session rescheduled",
                          f"Hello {student.first_name},\n\nYour session on {self._slot_summary(old_slot)} "
                          f"has moved to {self._slot_summary(new_slot)} with {tutor.full_name}.")
            outbox.notify(tutor.email, "Session rescheduled",
                          f"Hello {tutor.first_name},\n\n{student.full_name} moved a session to {self._slot_summary(new_slot)}.")
            outbox.emit("slot_rescheduled", {"old_slot_id": str(old_slot.id), "new_slot_id": str(new_slot.id)})
            return slot_models.SlotRead.model_validate(new_slot)

        log.info(f"{actor.role.value} {actor.id} rescheduling slot {old_slot_id} -> {new_slot_id}.")
        return await self._run("reschedule_slot", work)

    async def mark_attendance(self, slot_id: UUID, attendance: Optional[str], actor: Actor) -> slot_models.SlotRead:
        """booked -> completed with attended / missed. Terminal."""
        lifecycle.parse_attendance(attendance)

        async def work(db: AsyncSession, outbox: _Outbox) -> slot_models.SlotRead:
            slot = await self._get_slot_for_update(db, slot_id)
            parsed = lifecycle.ensure_can_mark_attendance(slot, actor, attendance)
            lifecycle.apply_completion(slot, parsed)
            await db.flush()
            outbox.emit("slot_completed", {"slot_id": str(slot.id), "attendance": parsed.value})
            return slot_models.SlotRead.model_validate(slot)

        return await self._run("mark_attendance", work)

    async def update_slot_status(
        self,
        slot_id: UUID,
        new_status: SlotStatus | str,
        attendance: Optional[str],
        actor: Actor
    ) -> slot_models.SlotRead:
        """
        Generic status endpoint. Completing needs an attendance value, given
        either as `attendance` or as the status itself ('attended' / 'missed').
        Booking goes through book_slot because it needs a student.
        """
        if new_status in AttendanceStatus.get_all_names():
            if attendance is not None and attendance != new_status:
                raise ValidationError(f"Attendance '{attendance}' contradicts status '{new_status}'.")
            return await self.mark_attendance(slot_id, new_status, actor)
        try:
            target = SlotStatus(new_status)
        except ValueError:
            raise ValidationError(
                f"Invalid status value: {new_status}.",
                details={"allowed": SlotStatus.get_all_names() + AttendanceStatus.get_all_names()}
            )

        if target == SlotStatus.COMPLETED:
            return await self.mark_attendance(slot_id, attendance, actor)
        if attendance is not None:
            raise ValidationError("Attendance can only be given when completing a slot.")
        if target == SlotStatus.CANCELLED:
            return await self.cancel_slot(slot_id, actor)
        if target == SlotStatus.BOOKED:
            raise ValidationError("Booking a slot requires a student; use the book operation.")
        raise StateError("Slots cannot be moved back to 'available'.")

    # --- 6. Recurring Bookings ---

    def _validate_patterns(self, patterns: Sequence[booking_models.RecurringPatternInput]) -> list[tuple[int, int]]:
        if not patterns:
            raise ValidationError("No recurring slot patterns provided for booking.")
        ranges = []
        seen = set()
        for pattern in patterns:
            start_minutes, end_minutes = validate_time_range(pattern.start_time, pattern.end_time)
            if pattern.duration_minutes <= 0:
                raise ValidationError(f"Invalid duration_minutes for pattern {pattern.day_of_week.value} {pattern.start_time}.")
            if pattern.duration_minutes != end_minutes - start_minutes:
                raise ValidationError(
                    f"duration_minutes ({pattern.duration_minutes}) does not match "
                    f"{pattern.start_time}-{pattern.end_time} for {pattern.day_of_week.value}.",
                    details={"day_of_week": pattern.day_of_week.value, "start_time": pattern.start_time}
                )
            key = (pattern.day_of_week, pattern.start_time)
            if key in seen:
                raise ValidationError(f"Pattern {pattern.day_of_week.value} {pattern.start_time} is listed twice.")
            seen.add(key)
            ranges.append((start_minutes, end_minutes))
        return ranges

    def _verify_payment(self, payment: Optional[booking_models.PaymentDetails]) -> booking_models.PaymentDetails:
        if payment is None:
            raise ValidationError("Payment details are required for recurring slot booking.")
        if self.payment_gateway is None:
            raise InfrastructureError("No payment gateway is configured.")
        if not self.payment_gateway.verify_signature(payment.order_id, payment.payment_id, payment.signature):
            log.warning(f"SECURITY: payment signature mismatch for order {payment.order_id}.")
            raise ValidationError("Payment signature verification failed.", details={"order_id": payment.order_id})
        return payment

    async def book_recurring_batch(
        self,
        request: booking_models.RecurringBookingRequest,
        actor: Actor
    ) -> booking_models.RecurringBookingResult:
        """
        Creates the payment, one pattern per requested weekly window and one
        booked slot per generated date, all in one transaction. A conflict on
        any date aborts the whole series.
        """
        self._authorize_student_action(request.student_id, actor)
        ranges = self._validate_patterns(request.patterns)
        payment_details = self._verify_payment(request.payment)

        async def work(db: AsyncSession, outbox: _Outbox) -> booking_models.RecurringBookingResult:
            today = self._today()
            detector = ConflictDetector(db)
            await detector.lock_parties([request.tutor_id], [request.student_id])
            parties = PartyService(db)
            student = await parties.get_student(request.student_id)
            tutor = await parties.get_tutor(request.tutor_id)

            blocks = await self._tutor_blocks(db, tutor.id)
            if not blocks:
                raise ValidationError(f"Tutor {tutor.first_name} has no weekly hours defined. Cannot book recurring slots.")
            for pattern, (start_minutes, end_minutes) in zip(request.patterns, ranges):
                day_blocks = [b for b in blocks if b.day_of_week == pattern.day_of_week.value]
                if not any(window_fits_block(b, start_minutes, end_minutes) for b in day_blocks):
                    raise ValidationError(
                        f"Pattern {pattern.day_of_week.value} {pattern.start_time}-{pattern.end_time} "
                        f"is outside of the tutor's weekly availability."
                    )

            range_start = student.start_date
            range_end = resolve_enrollment_end(student.discharge_date, today, settings.OPEN_ENDED_HORIZON_YEARS)
            window_cap = booking_window_cap(today, settings.INITIAL_BOOKING_WINDOW_MONTHS)

            student.assigned_tutor_id = tutor.id

            payment = db_models.Payments(
                gateway_order_id=payment_details.order_id,
                gateway_payment_id=payment_details.payment_id,
                gateway_signature=payment_details.signature,
                student_id=student.id,
                tutor_id=tutor.id,
                amount=payment_details.amount,
                transaction_fee=payment_details.transaction_fee,
                tutor_payout=payment_details.tutor_payout,
                status=PaymentStatus.COMPLETED.value
            )
            db.add(payment)
            await db.flush()

            pattern_ids, booked_ids = [], []
            for pattern in request.patterns:
                start_minutes, end_minutes = validate_time_range(pattern.start_time, pattern.end_time)
                pattern_row = db_models.RecurringBookingPatterns(
                    tutor_id=tutor.id,
                    student_id=student.id,
                    day_of_week=pattern.day_of_week.value,
                    start_time=pattern.start_time,
                    end_time=pattern.end_time,
                    start_minutes=start_minutes,
                    end_minutes=end_minutes,
                    duration_minutes=pattern.duration_minutes,
                    recurring_start_date=range_start,
                    recurring_end_date=range_end,
                    payment_id=payment.id,
                    status=PatternStatus.ACTIVE.value,
                    created_by=actor.id,
                    initial_batch_size_months=settings.INITIAL_BOOKING_WINDOW_MONTHS,
                    last_extension_date=today
                )
                db.add(pattern_row)
                await db.flush()
                pattern_ids.append(pattern_row.id)

                for slot_date in expand_pattern_dates(pattern.day_of_week, range_start, range_end, today, window_cap):
                    slot = await self._insert_slot(
                        db,
                        tutor_id=tutor.id,
                        slot_date=slot_date,
                        start_time=pattern.start_time,
                        end_time=pattern.end_time,
                        student_id=student.id,
                        status=SlotStatus.BOOKED,
                        created_by=actor.id,
                        recurring_pattern_id=pattern_row.id
                    )
                    booked_ids.append(slot.id)

            if not booked_ids:
                raise ValidationError("No future sessions fall inside the booking window for the selected patterns.")
            payment.slot_id = booked_ids[0]
            first_slot = await db.get(db_models.TimeSlots, booked_ids[0])
            first_slot.tutor_payout = payment_details.tutor_payout
            await db.flush()

            outbox.notify(student.email, "Recurring sessions booked",
                          f"Hello {student.first_name},\n\n{len(booked_ids)} sessions with {tutor.full_name} "
                          f"have been booked across {len(pattern_ids)} weekly pattern(s).")
            outbox.notify(tutor.email, "New recurring student",
                          f"Hello {tutor.first_name},\n\n{student.full_name} booked {len(booked_ids)} sessions with you.")
            outbox.emit("recurring_booking_created", {
                "student_id": str(student.id), "tutor_id": str(tutor.id),
                "pattern_ids": [str(p) for p in pattern_ids], "slot_count": len(booked_ids)
            })
            return booking_models.RecurringBookingResult(
                booked_slot_ids=booked_ids,
                total_booked_count=len(booked_ids),
                created_recurring_pattern_ids=pattern_ids
            )

        log.info(f"{actor.role.value} {actor.id} booking {len(request.patterns)} recurring pattern(s) "
                 f"for student {request.student_id} with tutor {request.tutor_id}.")
        result = await self._run("book_recurring_batch", work)
        log.info(f"Successfully booked {result.total_booked_count} recurring slots across "
                 f"{len(result.created_recurring_pattern_ids)} patterns.")
        return result

    async def extend_pattern_horizon(self, pattern_id: UUID, actor: Actor) -> booking_models.PatternExtensionResult:
        """
        Rolls an active pattern's booking window forward: every weekly
        occurrence from today up to min(pattern end, today + window) that has
        no slot yet is materialized, and occurrences released while the
        student was away are booked for them again. All or nothing.
        """
        async def work(db: AsyncSession, outbox: _Outbox) -> booking_models.PatternExtensionResult:
            result = await db.execute(
                select(db_models.RecurringBookingPatterns)
                .filter(db_models.RecurringBookingPatterns.id == pattern_id)
                .with_for_update()
            )
            pattern = result.scalars().first()
            if not pattern:
                raise NotFoundError(f"Recurring pattern with ID {pattern_id} not found.", details={"pattern_id": str(pattern_id)})
            if not (actor.is_admin or actor.is_tutor(pattern.tutor_id) or actor.is_student(pattern.student_id)):
                raise UnauthorizedRoleError("You do not have permission to extend this pattern.")
            if pattern.status != PatternStatus.ACTIVE.value:
                raise StateError(f"Only active patterns can be extended; pattern {pattern.id} is '{pattern.status}'.")

            today = self._today()
            detector = ConflictDetector(db)
            await detector.lock_parties([pattern.tutor_id], [pattern.student_id])
            range_end = resolve_enrollment_end(pattern.recurring_end_date, today, settings.OPEN_ENDED_HORIZON_YEARS)
            window_cap = booking_window_cap(today, settings.INITIAL_BOOKING_WINDOW_MONTHS)

            existing = await db.execute(
                select(db_models.TimeSlots)
                .filter(db_models.TimeSlots.recurring_pattern_id == pattern.id)
                .with_for_update()
            )
            materialized: dict[datetime.date, list[db_models.TimeSlots]] = {}
            for row in existing.scalars().all():
                materialized.setdefault(row.date, []).append(row)

            created_ids, restored_ids = [], []
            for slot_date in expand_pattern_dates(Weekday(pattern.day_of_week), pattern.recurring_start_date,
                                                  range_end, today, window_cap):
                rows = materialized.get(slot_date)
                if rows:
                    # released occurrences (student gone, row open) go back to the pattern's student;
                    # cancelled, held or rebooked ones stay as they are
                    released = [r for r in rows if r.status == SlotStatus.AVAILABLE.value and r.student_id is None]
                    if len(released) != len(rows):
                        continue
                    slot = released[0]
                    lifecycle.ensure_bookable(slot, pattern.student_id)
                    await detector.ensure_no_conflict(pattern.tutor_id, pattern.student_id, slot.date,
                                                      slot.start_minutes, slot.end_minutes, exclude_slot_id=slot.id)
                    lifecycle.apply_booking(slot, pattern.student_id)
                    restored_ids.append(slot.id)
                    continue
                slot = await self._insert_slot(
                    db,
                    tutor_id=pattern.tutor_id,
                    slot_date=slot_date,
                    start_time=pattern.start_time,
                    end_time=pattern.end_time,
                    student_id=pattern.student_id,
                    status=SlotStatus.BOOKED,
                    created_by=actor.id,
                    recurring_pattern_id=pattern.id
                )
                created_ids.append(slot.id)

            pattern.last_extension_date = today
            await db.flush()
            if created_ids or restored_ids:
                outbox.emit("recurring_pattern_extended", {"pattern_id": str(pattern.id),
                                                           "slot_count": len(created_ids),
                                                           "restored_count": len(restored_ids)})
            return booking_models.PatternExtensionResult(
                pattern_id=pattern.id,
                created_slot_ids=created_ids,
                created_count=len(created_ids),
                restored_slot_ids=restored_ids,
                restored_count=len(restored_ids),
                window_end=min(range_end, window_cap)
            )

        return await self._run("extend_pattern_horizon", work)

    # --- 7. Student Status ---

    async def change_student_status(
        self,
        student_id: UUID,
        new_status: UserStatus | str,
        actor: Actor
    ) -> booking_models.StudentStatusResult:
        """
        Inactive / paused students give their future booked time back: their
        active patterns follow the student's status and their future booked
        slots return to 'available'.
        """
        self._authorize_admin(actor)
        try:
            target = UserStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status value provided: {new_status}.", details={"allowed": UserStatus.get_all_names()})

        async def work(db: AsyncSession, outbox: _Outbox) -> booking_models.StudentStatusResult:
            await ConflictDetector(db).lock_parties([], [student_id])
            student = await PartyService(db).get_student(student_id, require_active=False)
            student.status = target.value
            today = self._today()

            patterns_stmt = select(db_models.RecurringBookingPatterns).filter(
                db_models.RecurringBookingPatterns.student_id == student.id
            )
            patterns = list((await db.execute(patterns_stmt)).scalars().all())

            affected_patterns: list[UUID] = []
            released_by_tutor: dict[UUID, int] = {}
            if target in (UserStatus.INACTIVE, UserStatus.PAUSED):
                # a paused series is shut down too once the student leaves for good
                leaving = {PatternStatus.ACTIVE.value}
                if target == UserStatus.INACTIVE:
                    leaving.add(PatternStatus.PAUSED.value)
                for pattern in patterns:
                    if pattern.status in leaving:
                        pattern.status = PatternStatus(target.value).value
                        affected_patterns.append(pattern.id)

                released_by_tutor = await self._release_future_slots(db, student.id, today)
            else:
                for pattern in patterns:
                    if pattern.status == PatternStatus.PAUSED.value:
                        pattern.status = PatternStatus.ACTIVE.value
                        affected_patterns.append(pattern.id)
            await db.flush()

            for tutor_id, count in released_by_tutor.items():
                tutor = await db.get(db_models.Tutors, tutor_id)
                if tutor is None:
                    continue
                outbox.notify(tutor.email, "Slot Availability Updated: Student Inactive/Paused",
                              f"Hello {tutor.first_name},\n\n{count} slots have been freed due to student "
                              f"{student.first_name} going {target.value}. These slots are now available for new bookings.")
            outbox.emit("student_status_changed", {"student_id": str(student.id), "status": target.value})

            released = sum(released_by_tutor.values())
            log.info(f"Student {student.id} is now {target.value}; released {released} slot(s).")
            return booking_models.StudentStatusResult(
                student_id=student.id,
                status=target,
                released_slot_count=released,
                affected_pattern_ids=affected_patterns
            )

        return await self._run("change_student_status", work)

    async def remove_student_from_tutor(
        self,
        tutor_id: UUID,
        student_id: UUID,
        actor: Actor
    ) -> booking_models.StudentRemovalResult:
        """
        Unassigns a student from their tutor. The pair's recurring patterns
        become inactive and the student's future booked slots with that tutor
        are freed, in one transaction.
        """
        if not (actor.is_admin or actor.is_tutor(tutor_id)):
            log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to remove student {student_id} from tutor {tutor_id}.")
            raise UnauthorizedRoleError("Only admins or the tutor themselves can remove a student.")

        async def work(db: AsyncSession, outbox: _Outbox) -> booking_models.StudentRemovalResult:
            await ConflictDetector(db).lock_parties([tutor_id], [student_id])
            parties = PartyService(db)
            tutor = await parties.get_tutor(tutor_id, require_active=False)
            student = await parties.get_student(student_id, require_active=False)
            if student.assigned_tutor_id != tutor.id:
                raise ValidationError(
                    f"Student {student.id} is not assigned to tutor {tutor.id}.",
                    details={"tutor_id": str(tutor.id), "student_id": str(student.id),
                             "assigned_tutor_id": str(student.assigned_tutor_id) if student.assigned_tutor_id else None}
                )
            student.assigned_tutor_id = None

            patterns_stmt = select(db_models.RecurringBookingPatterns).filter(
                db_models.RecurringBookingPatterns.tutor_id == tutor.id,
                db_models.RecurringBookingPatterns.student_id == student.id,
                db_models.RecurringBookingPatterns.status.in_([PatternStatus.ACTIVE.value, PatternStatus.PAUSED.value])
            )
            affected_patterns: list[UUID] = []
            for pattern in (await db.execute(patterns_stmt)).scalars().all():
                pattern.status = PatternStatus.INACTIVE.value
                affected_patterns.append(pattern.id)

            released = sum((await self._release_future_slots(db, student.id, self._today(), tutor_id=tutor.id)).values())
            await db.flush()

            outbox.notify(tutor.email, "Student removed",
                          f"Hello {tutor.first_name},\n\n{student.full_name} is no longer assigned to you. "
                          f"{released} slots have been freed for new bookings.")
            outbox.notify(student.email, "Tutor assignment ended",
                          f"Hello {student.first_name},\n\nYou are no longer assigned to {tutor.full_name}. "
                          f"Your {released} upcoming sessions with them have been released.")
            outbox.emit("student_removed", {"tutor_id": str(tutor.id), "student_id": str(student.id),
                                            "released_count": released})
            return booking_models.StudentRemovalResult(
                tutor_id=tutor.id,
                student_id=student.id,
                released_slot_count=released,
                affected_pattern_ids=affected_patterns
            )

        log.info(f"{actor.role.value} {actor.id} removing student {student_id} from tutor {tutor_id}.")
        result = await self._run("remove_student_from_tutor", work)
        log.info(f"Student {student_id} removed from tutor {tutor_id}; released {result.released_slot_count} slot(s).")
        return result

    # --- 8. Payment Orders ---

    async def create_payment_order(
        self,
        request: booking_models.PaymentOrderRequest,
        actor: Actor
    ) -> booking_models.PaymentOrderRead:
        """Validates both parties and forwards the (opaque) amount to the gateway."""
        self._authorize_student_action(request.student_id, actor)
        if self.payment_gateway is None:
            raise InfrastructureError("No payment gateway is configured.")

        async def work(db: AsyncSession, outbox: _Outbox) -> tuple[db_models.Tutors, db_models.Students]:
            parties = PartyService(db)
            tutor = await parties.get_tutor(request.tutor_id)
            student = await parties.get_student(request.student_id)
            return tutor, student

        tutor, student = await self._run("create_payment_order", work)

        currency = request.currency or settings.PAYMENT_CURRENCY
        receipt = build_receipt(student.id)
        order = await self.payment_gateway.create_order(
            request.amount, currency, receipt,
            {"tutor_id": str(tutor.id), "student_id": str(student.id), "student_name": student.full_name}
        )
        return booking_models.PaymentOrderRead(
            order_id=order["id"],
            amount=Decimal(order.get("amount", int(request.amount * 100))) / 100,
            currency=order.get("currency", currency),
            receipt=order.get("receipt", receipt)
        )


def get_booking_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    notifier: Annotated[NotificationPort, Depends(get_notifier)],
    payment_gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)]
) -> BookingService:
    """FastAPI dependency."""
    return BookingService(session_factory, notifier=notifier, payment_gateway=payment_gateway)
