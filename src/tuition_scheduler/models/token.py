'''
Token payload and the authenticated actor handed to the services.
'''
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import UserRole

class TokenPayload(BaseModel):
    sub: UUID # 'sub' is the acting tutor / student / admin id
    role: UserRole
    exp: datetime

class Actor(BaseModel):
    """
    The caller of a booking operation. Tutors and students act under their
    own tutor / student id; admins under their admin id.
    """
    id: UUID
    role: UserRole

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def is_tutor(self, tutor_id: UUID) -> bool:
        return self.role == UserRole.TUTOR and self.id == tutor_id

    def is_student(self, student_id: UUID | None) -> bool:
        return self.role == UserRole.STUDENT and student_id is not None and self.id == student_id
