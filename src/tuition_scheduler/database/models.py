from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, Enum, ForeignKeyConstraint, Index, Integer, Numeric, PrimaryKeyConstraint, String, Text, UniqueConstraint, Uuid, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

from .db_enums import AttendanceStatus, OwnerType, PatternStatus, PaymentStatus, SlotStatus, UserStatus, Weekday

class Base(DeclarativeBase):
    pass


def _enum(enum_cls, name: str) -> Enum:
    return Enum(*enum_cls.get_all_names(), name=name)


class Tutors(Base):
    __tablename__ = 'tutors'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='tutors_pkey'),
        UniqueConstraint('email', name='tutors_email_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(Text)
    last_name: Mapped[str] = mapped_column(Text)
    email: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(_enum(UserStatus, 'user_status_enum'), default=UserStatus.ACTIVE.value)
    hourly_rate: Mapped[Optional[decimal.Decimal]] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())

    slots: Mapped[list['TimeSlots']] = relationship('TimeSlots', back_populates='tutor')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Students(Base):
    __tablename__ = 'students'
    __table_args__ = (
        ForeignKeyConstraint(['assigned_tutor_id'], ['tutors.id'], ondelete='SET NULL', name='students_assigned_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='students_pkey'),
        UniqueConstraint('email', name='students_email_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(Text)
    last_name: Mapped[str] = mapped_column(Text)
    email: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(_enum(UserStatus, 'user_status_enum'), default=UserStatus.ACTIVE.value)
    start_date: Mapped[datetime.date] = mapped_column(Date)
    discharge_date: Mapped[Optional[datetime.date]] = mapped_column(Date)
    assigned_tutor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())

    assigned_tutor: Mapped[Optional['Tutors']] = relationship('Tutors', foreign_keys=[assigned_tutor_id])

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class WeeklyAvailabilityBlocks(Base):
    """
    A recurring open window on one weekday. The owner is a tagged reference
    (owner_type + owner_id) to either a tutor or a student.
    """
    __tablename__ = 'weekly_availability_blocks'
    __table_args__ = (
        CheckConstraint('start_minutes < end_minutes', name='weekly_availability_blocks_time_range_check'),
        PrimaryKeyConstraint('id', name='weekly_availability_blocks_pkey'),
        UniqueConstraint('owner_type', 'owner_id', 'day_of_week', 'start_time', 'end_time', name='weekly_availability_blocks_owner_window_key'),
        Index('idx_weekly_blocks_owner', 'owner_type', 'owner_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_type: Mapped[str] = mapped_column(_enum(OwnerType, 'owner_type_enum'))
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day_of_week: Mapped[str] = mapped_column(_enum(Weekday, 'weekday_enum'))
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
    start_minutes: Mapped[int] = mapped_column(Integer)
    end_minutes: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())


class Payments(Base):
    __tablename__ = 'payments'
    __table_args__ = (
        ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE', name='payments_student_id_fkey'),
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], ondelete='CASCADE', name='payments_tutor_id_fkey'),
        ForeignKeyConstraint(['slot_id'], ['time_slots.id'], ondelete='SET NULL', name='payments_slot_id_fkey', use_alter=True),
        PrimaryKeyConstraint('id', name='payments_pkey'),
        UniqueConstraint('gateway_payment_id', name='payments_gateway_payment_id_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gateway_order_id: Mapped[str] = mapped_column(Text)
    gateway_payment_id: Mapped[str] = mapped_column(Text)
    gateway_signature: Mapped[str] = mapped_column(Text)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    slot_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    amount: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2))
    transaction_fee: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2), default=0)
    tutor_payout: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2), default=0)
    payment_method: Mapped[str] = mapped_column(Text, default='Razorpay')
    status: Mapped[str] = mapped_column(_enum(PaymentStatus, 'payment_status_enum'), default=PaymentStatus.PENDING.value)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())


class RecurringBookingPatterns(Base):
    __tablename__ = 'recurring_booking_patterns'
    __table_args__ = (
        CheckConstraint('start_minutes < end_minutes', name='recurring_booking_patterns_time_range_check'),
        CheckConstraint('duration_minutes = end_minutes - start_minutes', name='recurring_booking_patterns_duration_check'),
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], ondelete='CASCADE', name='recurring_booking_patterns_tutor_id_fkey'),
        ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE', name='recurring_booking_patterns_student_id_fkey'),
        ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='SET NULL', name='recurring_booking_patterns_payment_id_fkey'),
        PrimaryKeyConstraint('id', name='recurring_booking_patterns_pkey'),
        UniqueConstraint('tutor_id', 'student_id', 'day_of_week', 'start_time', name='recurring_booking_patterns_unique_key'),
        Index('idx_recurring_patterns_student', 'student_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    day_of_week: Mapped[str] = mapped_column(_enum(Weekday, 'weekday_enum'))
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
    start_minutes: Mapped[int] = mapped_column(Integer)
    end_minutes: Mapped[int] = mapped_column(Integer)
    duration_minutes: Mapped[int] = mapped_column(Integer)
    recurring_start_date: Mapped[datetime.date] = mapped_column(Date)
    recurring_end_date: Mapped[Optional[datetime.date]] = mapped_column(Date)
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    status: Mapped[str] = mapped_column(_enum(PatternStatus, 'pattern_status_enum'), default=PatternStatus.ACTIVE.value)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid)
    initial_batch_size_months: Mapped[Optional[int]] = mapped_column(Integer)
    last_extension_date: Mapped[Optional[datetime.date]] = mapped_column(Date)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())

    slots: Mapped[list['TimeSlots']] = relationship('TimeSlots', back_populates='recurring_pattern')


class TimeSlots(Base):
    """
    One concrete, datable unit of tuition time.
    Only booked/completed rows occupy time; cancelled rows are kept for audit
    and are excluded from the (tutor, date, window) uniqueness rule.
    """
    __tablename__ = 'time_slots'
    __table_args__ = (
        CheckConstraint('start_minutes < end_minutes', name='time_slots_time_range_check'),
        ForeignKeyConstraint(['tutor_id'], ['tutors.id'], ondelete='CASCADE', name='time_slots_tutor_id_fkey'),
        ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='SET NULL', name='time_slots_student_id_fkey'),
        ForeignKeyConstraint(['recurring_pattern_id'], ['recurring_booking_patterns.id'], ondelete='SET NULL', name='time_slots_recurring_pattern_id_fkey'),
        PrimaryKeyConstraint('id', name='time_slots_pkey'),
        Index(
            'uq_time_slots_tutor_date_window',
            'tutor_id', 'date', 'start_time', 'end_time',
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'")
        ),
        Index('idx_time_slots_student_date_status', 'student_id', 'date', 'start_minutes', 'end_minutes', 'status'),
        Index('idx_time_slots_date_status', 'date', 'status'),
        Index('idx_time_slots_recurring_pattern', 'recurring_pattern_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    student_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    recurring_pattern_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    date: Mapped[datetime.date] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
    start_minutes: Mapped[int] = mapped_column(Integer)
    end_minutes: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(_enum(SlotStatus, 'slot_status_enum'), default=SlotStatus.AVAILABLE.value)
    attendance: Mapped[Optional[str]] = mapped_column(_enum(AttendanceStatus, 'attendance_status_enum'))
    tutor_payout: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2), default=0)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), server_default=func.now(), onupdate=func.now())

    tutor: Mapped['Tutors'] = relationship('Tutors', back_populates='slots')
    student: Mapped[Optional['Students']] = relationship('Students')
    recurring_pattern: Mapped[Optional['RecurringBookingPatterns']] = relationship('RecurringBookingPatterns', back_populates='slots')
