import factory
import uuid
import datetime
from factory.alchemy import SQLAlchemyModelFactory
from factory.faker import Faker

from tuition_scheduler.common.time_utils import to_minutes
from tuition_scheduler.database import models as db_models
from tuition_scheduler.database.db_enums import OwnerType, SlotStatus, UserStatus, Weekday
from tests.constants import TEST_ADMIN_ID, TEST_TODAY

# Set by the seeding fixture before factories are used with create().
# build() works without a session.
test_db_session = None

class BaseFactory(SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session_persistence = "flush"

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        if test_db_session is None:
            raise RuntimeError(
                "The 'test_db_session' global must be set before creating rows with factories."
            )
        cls._meta.sqlalchemy_session = test_db_session
        return super()._create(model_class, *args, **kwargs)


class TutorFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    email = Faker("email")
    first_name = Faker("first_name")
    last_name = Faker("last_name")
    status = UserStatus.ACTIVE.value

    class Meta:
        model = db_models.Tutors

class StudentFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    email = Faker("email")
    first_name = Faker("first_name")
    last_name = Faker("last_name")
    status = UserStatus.ACTIVE.value
    start_date = datetime.date(2024, 1, 1)
    discharge_date = None

    class Meta:
        model = db_models.Students

class WeeklyBlockFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    owner_type = OwnerType.TUTOR.value
    owner_id = factory.LazyFunction(uuid.uuid4)
    day_of_week = Weekday.MONDAY.value
    start_time = "09:00"
    end_time = "12:00"
    start_minutes = factory.LazyAttribute(lambda o: to_minutes(o.start_time))
    end_minutes = factory.LazyAttribute(lambda o: to_minutes(o.end_time))

    class Meta:
        model = db_models.WeeklyAvailabilityBlocks

class TimeSlotFactory(BaseFactory):
    id = factory.LazyFunction(uuid.uuid4)
    tutor_id = factory.LazyFunction(uuid.uuid4)
    student_id = None
    date = TEST_TODAY
    start_time = "10:00"
    end_time = "11:00"
    start_minutes = factory.LazyAttribute(lambda o: to_minutes(o.start_time))
    end_minutes = factory.LazyAttribute(lambda o: to_minutes(o.end_time))
    status = factory.LazyAttribute(lambda o: SlotStatus.BOOKED.value if o.student_id else SlotStatus.AVAILABLE.value)
    created_by = TEST_ADMIN_ID

    class Meta:
        model = db_models.TimeSlots
