'''
String enums shared by the ORM models, the pydantic models and the services.
'''
import enum
import datetime


# --- Base Enum Class ---
class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member names."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    ADMIN = 'admin'
    TUTOR = 'tutor'
    STUDENT = 'student'


class UserStatus(ListableEnum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    PAUSED = 'paused'


class SlotStatus(ListableEnum):
    AVAILABLE = 'available'
    BOOKED = 'booked'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class AttendanceStatus(ListableEnum):
    ATTENDED = 'attended'
    MISSED = 'missed'


class PatternStatus(ListableEnum):
    ACTIVE = 'active'
    PAUSED = 'paused'
    INACTIVE = 'inactive'


class PaymentStatus(ListableEnum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'


class OwnerType(ListableEnum):
    TUTOR = 'tutor'
    STUDENT = 'student'


class Weekday(ListableEnum):
    MONDAY = 'Monday'
    TUESDAY = 'Tuesday'
    WEDNESDAY = 'Wednesday'
    THURSDAY = 'Thursday'
    FRIDAY = 'Friday'
    SATURDAY = 'Saturday'
    SUNDAY = 'Sunday'

    @property
    def index(self) -> int:
        """Python weekday index, 0 = Monday."""
        return list(Weekday).index(self)

    @classmethod
    def from_date(cls, day: datetime.date) -> 'Weekday':
        return list(cls)[day.weekday()]


# Statuses that occupy a tutor's / student's time.
BLOCKING_SLOT_STATUSES = (SlotStatus.BOOKED.value, SlotStatus.COMPLETED.value)
