"""
Tests for weekly availability replacement and generated slot templates.
"""
import datetime
import pytest
from uuid import uuid4

from tuition_scheduler.common.exceptions import ConflictError, InvalidTimeFormat, NotFoundError, ValidationError
from tuition_scheduler.core.owners import Owner
from tuition_scheduler.database.db_enums import OwnerType, SlotStatus, Weekday
from tuition_scheduler.models import availability as availability_models
from tuition_scheduler.models import slots as slot_models
from tuition_scheduler.services.availability_service import AvailabilityService
from tests.constants import (
    TEST_TUTOR_ID, TEST_TUTOR_NO_HOURS_ID, TEST_OTHER_TUTOR_ID,
    TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID, TEST_INACTIVE_STUDENT_ID
)


def _block(day, start, end) -> availability_models.WeeklyBlockInput:
    return availability_models.WeeklyBlockInput(day_of_week=day, start_time=start, end_time=end)


@pytest.mark.anyio
class TestWeeklyAvailability:

    async def test_get_seeded_schedule(self, availability_service):
        blocks = await availability_service.get_weekly_availability(Owner.tutor(TEST_TUTOR_ID))
        assert {(b.day_of_week, b.start_time, b.end_time) for b in blocks} == {
            (Weekday.MONDAY, "09:00", "12:00"),
            (Weekday.WEDNESDAY, "14:00", "17:00"),
        }
        assert all(b.owner_type == OwnerType.TUTOR for b in blocks)

    async def test_replace_discards_previous_blocks(self, availability_service):
        owner = Owner.tutor(TEST_TUTOR_ID)
        print("\n--- Replacing the tutor's weekly schedule ---")
        saved = await availability_service.replace_weekly_availability(owner, [
            _block(Weekday.FRIDAY, "16:00", "18:30"),
        ])
        assert len(saved) == 1
        assert saved[0].start_minutes == 960 and saved[0].end_minutes == 1110

        blocks = await availability_service.get_weekly_availability(owner)
        assert [(b.day_of_week, b.start_time) for b in blocks] == [(Weekday.FRIDAY, "16:00")]

    async def test_empty_list_clears_schedule(self, availability_service):
        owner = Owner.tutor(TEST_TUTOR_ID)
        assert await availability_service.replace_weekly_availability(owner, []) == []
        assert await availability_service.get_weekly_availability(owner) == []

    async def test_student_schedule_is_separate(self, availability_service):
        await availability_service.replace_weekly_availability(
            Owner.student(TEST_STUDENT_ID), [_block(Weekday.MONDAY, "09:00", "10:00")]
        )
        student_blocks = await availability_service.get_weekly_availability(Owner.student(TEST_STUDENT_ID))
        tutor_blocks = await availability_service.get_weekly_availability(Owner.tutor(TEST_TUTOR_ID))
        assert len(student_blocks) == 1 and student_blocks[0].owner_type == OwnerType.STUDENT
        assert len(tutor_blocks) == 2

    async def test_inactive_owner_can_still_be_edited(self, availability_service):
        saved = await availability_service.replace_weekly_availability(
            Owner.student(TEST_INACTIVE_STUDENT_ID), [_block(Weekday.SUNDAY, "10:00", "11:00")]
        )
        assert len(saved) == 1

    async def test_duplicate_blocks_rejected(self, availability_service):
        owner = Owner.tutor(TEST_TUTOR_ID)
        with pytest.raises(ConflictError):
            await availability_service.replace_weekly_availability(owner, [
                _block(Weekday.MONDAY, "09:00", "10:00"),
                _block(Weekday.MONDAY, "09:00", "10:00"),
            ])
        # the stored schedule is untouched
        assert len(await availability_service.get_weekly_availability(owner)) == 2

    @pytest.mark.parametrize("start, end, error", [
        ("10:00", "09:00", ValidationError),
        ("10:00", "10:00", ValidationError),
        ("25:00", "26:00", InvalidTimeFormat),
        ("9am", "10am", InvalidTimeFormat),
    ])
    async def test_invalid_block_times(self, availability_service, start, end, error):
        with pytest.raises(error):
            await availability_service.replace_weekly_availability(
                Owner.tutor(TEST_TUTOR_ID), [_block(Weekday.MONDAY, start, end)]
            )

    async def test_unknown_owner(self, availability_service):
        with pytest.raises(NotFoundError):
            await availability_service.replace_weekly_availability(Owner.tutor(uuid4()), [])
        with pytest.raises(NotFoundError):
            await availability_service.get_weekly_availability(Owner.student(uuid4()))


@pytest.mark.anyio
class TestGeneratedSlotTemplates:

    async def test_all_windows_open(self, availability_service):
        templates = await availability_service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_STUDENT_ID, 60)

        print(f"\n--- Generated {len(templates)} templates ---")
        assert [(t.day_of_week, t.start_time, t.end_time) for t in templates] == [
            (Weekday.MONDAY, "09:00", "10:00"),
            (Weekday.MONDAY, "10:00", "11:00"),
            (Weekday.MONDAY, "11:00", "12:00"),
            (Weekday.WEDNESDAY, "14:00", "15:00"),
            (Weekday.WEDNESDAY, "15:00", "16:00"),
            (Weekday.WEDNESDAY, "16:00", "17:00"),
        ]
        assert all(t.status == SlotStatus.AVAILABLE for t in templates)
        assert all(t.tutor_name == "Ada Lovelace" and t.conflict_details == [] for t in templates)

    async def test_remainder_is_dropped(self, availability_service):
        templates = await availability_service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_STUDENT_ID, 90)
        assert [(t.day_of_week, t.start_time) for t in templates] == [
            (Weekday.MONDAY, "09:00"),
            (Weekday.MONDAY, "10:30"),
            (Weekday.WEDNESDAY, "14:00"),
            (Weekday.WEDNESDAY, "15:30"),
        ]

    async def test_tutor_booking_marks_window_booked(self, availability_service, booking_service, admin_actor):
        await booking_service.create_manual_slots([slot_models.SlotCreate(
            tutor_id=TEST_TUTOR_ID, student_id=TEST_OTHER_STUDENT_ID,
            date=datetime.date(2024, 1, 8), start_time="10:00", end_time="11:00"
        )], admin_actor)

        templates = await availability_service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_STUDENT_ID, 60)
        by_start = {(t.day_of_week, t.start_time): t for t in templates}

        booked = by_start[(Weekday.MONDAY, "10:00")]
        assert booked.status == SlotStatus.BOOKED
        [detail] = booked.conflict_details
        assert detail.date == datetime.date(2024, 1, 8)
        assert detail.student_id == TEST_OTHER_STUDENT_ID
        assert by_start[(Weekday.MONDAY, "09:00")].status == SlotStatus.AVAILABLE
        assert by_start[(Weekday.MONDAY, "11:00")].status == SlotStatus.AVAILABLE

    async def test_student_booking_elsewhere_marks_window_booked(self, availability_service, booking_service, admin_actor):
        """The student is busy with another tutor across two of the windows."""
        await booking_service.create_manual_slots([slot_models.SlotCreate(
            tutor_id=TEST_OTHER_TUTOR_ID, student_id=TEST_STUDENT_ID,
            date=datetime.date(2024, 2, 5), start_time="09:30", end_time="10:30"
        )], admin_actor)

        templates = await availability_service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_STUDENT_ID, 60)
        statuses = {(t.day_of_week, t.start_time): t.status for t in templates}
        assert statuses[(Weekday.MONDAY, "09:00")] == SlotStatus.BOOKED
        assert statuses[(Weekday.MONDAY, "10:00")] == SlotStatus.BOOKED
        assert statuses[(Weekday.MONDAY, "11:00")] == SlotStatus.AVAILABLE

    async def test_cancelled_and_free_slots_do_not_block(self, availability_service, booking_service, admin_actor, tutor_actor):
        created = await booking_service.create_manual_slots([
            slot_models.SlotCreate(tutor_id=TEST_TUTOR_ID, student_id=TEST_OTHER_STUDENT_ID,
                                   date=datetime.date(2024, 1, 8), start_time="10:00", end_time="11:00"),
            slot_models.SlotCreate(tutor_id=TEST_TUTOR_ID, date=datetime.date(2024, 1, 8),
                                   start_time="11:00", end_time="12:00"),
        ], admin_actor)
        await booking_service.cancel_slot(created.created_ids[0], admin_actor)

        templates = await availability_service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_STUDENT_ID, 60)
        assert all(t.status == SlotStatus.AVAILABLE for t in templates)

    async def test_elapsed_windows_are_completed(self, session_factory, retry_policy):
        """Monday 2024-01-01 at 10:30: the first two Monday windows already started today."""
        service = AvailabilityService(session_factory, retry_policy=retry_policy,
                                      now=lambda: datetime.datetime(2024, 1, 1, 10, 30))
        templates = await service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_STUDENT_ID, 60)
        by_start = {(t.day_of_week, t.start_time): t for t in templates}

        early = by_start[(Weekday.MONDAY, "09:00")]
        assert early.status == SlotStatus.COMPLETED
        assert early.conflict_details[0].reason == "In the past today"
        assert by_start[(Weekday.MONDAY, "10:00")].status == SlotStatus.COMPLETED
        assert by_start[(Weekday.MONDAY, "11:00")].status == SlotStatus.AVAILABLE
        assert by_start[(Weekday.WEDNESDAY, "14:00")].status == SlotStatus.AVAILABLE

    async def test_tutor_without_hours(self, availability_service):
        assert await availability_service.get_generated_slot_templates(TEST_TUTOR_NO_HOURS_ID, TEST_STUDENT_ID, 60) == []

    @pytest.mark.parametrize("duration", [0, -30])
    async def test_invalid_duration(self, availability_service, duration):
        with pytest.raises(ValidationError):
            await availability_service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_STUDENT_ID, duration)

    async def test_inactive_student(self, availability_service):
        with pytest.raises(ValidationError):
            await availability_service.get_generated_slot_templates(TEST_TUTOR_ID, TEST_INACTIVE_STUDENT_ID, 60)
