'''
API endpoints for concrete time slots.
'''
from typing import Annotated, Any, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..models import slots as slot_models
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor
from ..services.booking_service import BookingService, get_booking_service
from ..services.slot_service import SlotQueryService

class SlotsAPI:
    """
    A class to encapsulate slot creation, lookup and lifecycle endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/slots",
            tags=["Slots"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.create_slots,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=slot_models.SlotCreateResult)

        self.router.add_api_route(
                "/",
                self.list_slots,
                methods=["GET"],
                response_model=slot_models.SlotListPage)

        self.router.add_api_route(
                "/reschedule",
                self.reschedule_slot,
                methods=["POST"],
                response_model=slot_models.SlotRead)

        self.router.add_api_route(
                "/{slot_id}",
                self.get_slot,
                methods=["GET"],
                response_model=slot_models.SlotRead)

        self.router.add_api_route(
                "/{slot_id}/book",
                self.book_slot,
                methods=["POST"],
                response_model=slot_models.SlotRead)

        self.router.add_api_route(
                "/{slot_id}/status",
                self.update_status,
                methods=["PATCH"],
                response_model=slot_models.SlotRead)

        self.router.add_api_route(
                "/{slot_id}/cancel",
                self.cancel_slot,
                methods=["POST"],
                response_model=slot_models.SlotRead)

        self.router.add_api_route(
                "/{slot_id}/attendance",
                self.mark_attendance,
                methods=["POST"],
                response_model=slot_models.SlotRead)

    async def create_slots(
        self,
        slots_data: list[slot_models.SlotCreate],
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Creates one or more slots atomically. Admins and tutors (for themselves) only.
        """
        return await booking_service.create_manual_slots(slots_data, actor)

    async def list_slots(
        self,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        slot_service: Annotated[SlotQueryService, Depends(SlotQueryService)],
        tutor_id: Optional[UUID] = None,
        student_id: Optional[UUID] = None,
        slot_status: Annotated[Optional[str], Query(alias="status")] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        page: int = 1,
        limit: int = 10
    ) -> Any:
        """
        Paginated listing of one tutor's or one student's slots.
        """
        SlotQueryService.authorize_listing(actor, tutor_id, student_id)
        return await slot_service.list_slots(tutor_id, student_id, slot_status, start_date, end_date, page, limit)

    async def get_slot(
        self,
        slot_id: UUID,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        slot_service: Annotated[SlotQueryService, Depends(SlotQueryService)]
    ) -> Any:
        return await slot_service.get_slot(slot_id)

    async def book_slot(
        self,
        slot_id: UUID,
        book_data: slot_models.SlotBookRequest,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Books an available slot for a student.
        """
        return await booking_service.book_slot(slot_id, book_data.student_id, actor)

    async def update_status(
        self,
        slot_id: UUID,
        status_data: slot_models.SlotStatusUpdate,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Cancels or completes a slot. Attendance is required iff the new status is 'completed'.
        """
        attendance = status_data.attendance.value if status_data.attendance else None
        return await booking_service.update_slot_status(slot_id, status_data.new_status, attendance, actor)

    async def cancel_slot(
        self,
        slot_id: UUID,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Cancels a booked slot. Restricted to the assigned student or an admin.
        """
        return await booking_service.cancel_slot(slot_id, actor)

    async def mark_attendance(
        self,
        slot_id: UUID,
        attendance_data: slot_models.AttendanceMark,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Completes a booked slot. Restricted to the slot's tutor or an admin.
        """
        return await booking_service.mark_attendance(slot_id, attendance_data.attendance.value, actor)

    async def reschedule_slot(
        self,
        reschedule_data: slot_models.RescheduleRequest,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Moves a booking onto another available slot. Returns the newly booked slot.
        """
        return await booking_service.reschedule_slot(reschedule_data.old_slot_id, reschedule_data.new_slot_id, actor)

# Instantiate the class and export its router
slots_api = SlotsAPI()
router = slots_api.router
