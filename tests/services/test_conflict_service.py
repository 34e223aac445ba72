"""
Tests for the overlap queries the booking writes rely on.
"""
import datetime
import pytest

from tuition_scheduler.common.exceptions import ConflictError
from tuition_scheduler.models import slots as slot_models
from tuition_scheduler.services.conflict_service import ConflictDetector
from tests.constants import TEST_TUTOR_ID, TEST_OTHER_TUTOR_ID, TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID

SLOT_DATE = datetime.date(2024, 1, 15)


@pytest.fixture
async def seeded_slots(booking_service, admin_actor):
    """One booked 09:00-10:00 slot and one open 11:00-12:00 slot for the tutor."""
    result = await booking_service.create_manual_slots([
        slot_models.SlotCreate(tutor_id=TEST_TUTOR_ID, student_id=TEST_STUDENT_ID,
                               date=SLOT_DATE, start_time="09:00", end_time="10:00"),
        slot_models.SlotCreate(tutor_id=TEST_TUTOR_ID,
                               date=SLOT_DATE, start_time="11:00", end_time="12:00"),
    ], admin_actor)
    return result.created_ids


@pytest.mark.anyio
class TestConflictDetector:

    async def test_overlap_with_booked_slot(self, session_factory, seeded_slots):
        async with session_factory() as db:
            detector = ConflictDetector(db)
            assert await detector.has_conflict(TEST_TUTOR_ID, None, SLOT_DATE, 570, 630)
            conflict = await detector.find_conflict(TEST_TUTOR_ID, None, SLOT_DATE, 570, 630)
        assert conflict.id == seeded_slots[0]

    async def test_touching_intervals_do_not_overlap(self, session_factory, seeded_slots):
        async with session_factory() as db:
            detector = ConflictDetector(db)
            assert not await detector.has_conflict(TEST_TUTOR_ID, None, SLOT_DATE, 600, 660)
            assert not await detector.has_conflict(TEST_TUTOR_ID, None, SLOT_DATE, 480, 540)

    async def test_available_slot_does_not_block(self, session_factory, seeded_slots):
        async with session_factory() as db:
            assert not await ConflictDetector(db).has_conflict(TEST_TUTOR_ID, None, SLOT_DATE, 660, 720)

    async def test_student_side_conflict(self, session_factory, seeded_slots):
        async with session_factory() as db:
            detector = ConflictDetector(db)
            assert await detector.has_conflict(TEST_OTHER_TUTOR_ID, TEST_STUDENT_ID, SLOT_DATE, 540, 600)
            assert not await detector.has_conflict(TEST_OTHER_TUTOR_ID, TEST_OTHER_STUDENT_ID, SLOT_DATE, 540, 600)

    async def test_excluded_slot_is_ignored(self, session_factory, seeded_slots):
        async with session_factory() as db:
            assert not await ConflictDetector(db).has_conflict(
                TEST_TUTOR_ID, TEST_STUDENT_ID, SLOT_DATE, 540, 600, exclude_slot_id=seeded_slots[0]
            )

    async def test_cancelled_slot_does_not_block(self, session_factory, seeded_slots, booking_service, admin_actor):
        await booking_service.cancel_slot(seeded_slots[0], admin_actor)
        async with session_factory() as db:
            detector = ConflictDetector(db)
            assert not await detector.has_conflict(TEST_TUTOR_ID, TEST_STUDENT_ID, SLOT_DATE, 540, 600)
            assert await detector.find_duplicate_window(TEST_TUTOR_ID, SLOT_DATE, "09:00", "10:00") is None

    async def test_ensure_no_conflict_details(self, session_factory, seeded_slots):
        async with session_factory() as db:
            with pytest.raises(ConflictError) as exc_info:
                await ConflictDetector(db).ensure_no_conflict(TEST_OTHER_TUTOR_ID, TEST_STUDENT_ID, SLOT_DATE, 570, 630)

        details = exc_info.value.details
        assert details["party"] == "student"
        assert details["conflicting_slot_id"] == str(seeded_slots[0])
        assert details["conflicting_start_time"] == "09:00"

    async def test_find_duplicate_window(self, session_factory, seeded_slots):
        async with session_factory() as db:
            detector = ConflictDetector(db)
            duplicate = await detector.find_duplicate_window(TEST_TUTOR_ID, SLOT_DATE, "11:00", "12:00")
            assert duplicate.id == seeded_slots[1]
            assert await detector.find_duplicate_window(TEST_OTHER_TUTOR_ID, SLOT_DATE, "11:00", "12:00") is None
