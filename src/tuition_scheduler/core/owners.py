'''
Tagged owner reference for weekly availability: Owner.tutor(id) | Owner.student(id).
'''
from dataclasses import dataclass
from uuid import UUID

from ..database.db_enums import OwnerType


@dataclass(frozen=True)
class Owner:
    kind: OwnerType
    id: UUID

    @classmethod
    def tutor(cls, tutor_id: UUID) -> 'Owner':
        return cls(OwnerType.TUTOR, tutor_id)

    @classmethod
    def student(cls, student_id: UUID) -> 'Owner':
        return cls(OwnerType.STUDENT, student_id)

    @property
    def is_tutor(self) -> bool:
        return self.kind == OwnerType.TUTOR

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"
