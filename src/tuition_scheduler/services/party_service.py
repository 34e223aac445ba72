'''
Tutor / student lookups shared by the booking and availability services.
'''
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..common.exceptions import NotFoundError, ValidationError
from ..database import models as db_models
from ..database.db_enums import UserStatus


class PartyService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_tutor(self, tutor_id: UUID, require_active: bool = True) -> db_models.Tutors:
        tutor = await self.db.get(db_models.Tutors, tutor_id)
        if not tutor:
            raise NotFoundError(f"Tutor with ID {tutor_id} not found.", details={"tutor_id": str(tutor_id)})
        if require_active and tutor.status != UserStatus.ACTIVE.value:
            raise ValidationError(f"Tutor {tutor.first_name} is not active.", details={"tutor_id": str(tutor_id)})
        return tutor

    async def get_student(self, student_id: UUID, require_active: bool = True) -> db_models.Students:
        student = await self.db.get(db_models.Students, student_id)
        if not student:
            raise NotFoundError(f"Student with ID {student_id} not found.", details={"student_id": str(student_id)})
        if require_active and student.status != UserStatus.ACTIVE.value:
            raise ValidationError(f"Student {student.first_name} is not active.", details={"student_id": str(student_id)})
        return student

    async def get_optional_student(self, student_id: Optional[UUID], require_active: bool = True) -> Optional[db_models.Students]:
        if not student_id:
            return None
        return await self.get_student(student_id, require_active=require_active)
