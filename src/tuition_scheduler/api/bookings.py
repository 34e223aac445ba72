'''
API endpoints for recurring bookings, payment orders, student status and tutor assignment.
'''
from typing import Annotated, Any
from uuid import UUID
from fastapi import APIRouter, Depends, status

from ..models import bookings as booking_models
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor
from ..services.booking_service import BookingService, get_booking_service

class BookingsAPI:
    """
    A class to encapsulate recurring booking endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/bookings",
            tags=["Bookings"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/recurring",
                self.book_recurring,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=booking_models.RecurringBookingResult)

        self.router.add_api_route(
                "/orders",
                self.create_order,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=booking_models.PaymentOrderRead)

        self.router.add_api_route(
                "/patterns/{pattern_id}/extend",
                self.extend_pattern,
                methods=["POST"],
                response_model=booking_models.PatternExtensionResult)

        self.router.add_api_route(
                "/students/{student_id}/status",
                self.change_student_status,
                methods=["PATCH"],
                response_model=booking_models.StudentStatusResult)

        self.router.add_api_route(
                "/tutors/{tutor_id}/students/{student_id}",
                self.remove_student,
                methods=["DELETE"],
                response_model=booking_models.StudentRemovalResult)

    async def book_recurring(
        self,
        booking_data: booking_models.RecurringBookingRequest,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Books weekly recurring sessions (paid) for a student with a tutor.
        """
        return await booking_service.book_recurring_batch(booking_data, actor)

    async def create_order(
        self,
        order_data: booking_models.PaymentOrderRequest,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Creates a gateway order to be paid before booking recurring sessions.
        """
        return await booking_service.create_payment_order(order_data, actor)

    async def extend_pattern(
        self,
        pattern_id: UUID,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        return await booking_service.extend_pattern_horizon(pattern_id, actor)

    async def change_student_status(
        self,
        student_id: UUID,
        status_data: booking_models.StudentStatusChange,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Admin only. Inactive / paused students release their future booked slots.
        """
        return await booking_service.change_student_status(student_id, status_data.status, actor)

    async def remove_student(
        self,
        tutor_id: UUID,
        student_id: UUID,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        booking_service: Annotated[BookingService, Depends(get_booking_service)]
    ) -> Any:
        """
        Unassigns a student from a tutor and frees their upcoming slots with that tutor.
        """
        return await booking_service.remove_student_from_tutor(tutor_id, student_id, actor)

# Instantiate the class and export its router
bookings_api = BookingsAPI()
router = bookings_api.router
