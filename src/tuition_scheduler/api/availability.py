'''
API endpoints for weekly availability and generated slot templates.
'''
from typing import Annotated, Any, List
from uuid import UUID
from fastapi import APIRouter, Depends

from ..common.exceptions import UnauthorizedRoleError
from ..common.logger import log
from ..core.owners import Owner
from ..database.db_enums import OwnerType
from ..models import availability as availability_models
from ..models.token import Actor
from ..services.security import verify_token_and_get_actor
from ..services.availability_service import AvailabilityService, get_availability_service

class AvailabilityAPI:
    """
    A class to encapsulate weekly availability endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/availability",
            tags=["Availability"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/generated",
                self.get_generated_slots,
                methods=["GET"],
                response_model=List[availability_models.GeneratedSlotTemplate])

        self.router.add_api_route(
                "/{owner_kind}/{owner_id}",
                self.get_weekly_availability,
                methods=["GET"],
                response_model=List[availability_models.WeeklyBlockRead])

        self.router.add_api_route(
                "/{owner_kind}/{owner_id}",
                self.replace_weekly_availability,
                methods=["PUT"],
                response_model=List[availability_models.WeeklyBlockRead])

    @staticmethod
    def _authorize_edit(actor: Actor, owner: Owner) -> None:
        if actor.is_admin:
            return
        if owner.is_tutor and actor.is_tutor(owner.id):
            return
        if not owner.is_tutor and actor.is_student(owner.id):
            return
        log.warning(f"SECURITY: {actor.role.value} {actor.id} tried to edit availability of {owner}.")
        raise UnauthorizedRoleError("You can only edit your own weekly availability.")

    async def get_weekly_availability(
        self,
        owner_kind: OwnerType,
        owner_id: UUID,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(get_availability_service)]
    ) -> Any:
        return await availability_service.get_weekly_availability(Owner(owner_kind, owner_id))

    async def replace_weekly_availability(
        self,
        owner_kind: OwnerType,
        owner_id: UUID,
        schedule: availability_models.WeeklyScheduleUpdate,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(get_availability_service)]
    ) -> Any:
        """
        Replaces the owner's complete weekly schedule.
        """
        owner = Owner(owner_kind, owner_id)
        self._authorize_edit(actor, owner)
        return await availability_service.replace_weekly_availability(owner, schedule.blocks)

    async def get_generated_slots(
        self,
        tutor_id: UUID,
        student_id: UUID,
        duration_minutes: int,
        actor: Annotated[Actor, Depends(verify_token_and_get_actor)],
        availability_service: Annotated[AvailabilityService, Depends(get_availability_service)]
    ) -> Any:
        """
        Recurring weekly windows of a tutor, with their status across the student's enrollment.
        """
        return await availability_service.get_generated_slot_templates(tutor_id, student_id, duration_minutes)

# Instantiate the class and export its router
availability_api = AvailabilityAPI()
router = availability_api.router
