from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    func,
    true,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed", "disputed")
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed")

# Partial-index predicate shared by the SQLite and PostgreSQL dialects
_ACTIVE_STATUS_SQL = text("status IN ('pending', 'confirmed')")


class Users(Base):
    __tablename__ = 'users'

    email = Column(Text, nullable=False, unique=True)
    first_name = Column(Text, nullable=False)
    role = Column(Enum('client', 'provider', 'admin', name='user_role'), nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=true())
    id = Column(Integer, primary_key=True)
    last_name = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    # Bumped by every booking commit for this provider; the UPDATE is the commit lock
    booking_version = Column(Integer, nullable=False, server_default=text('0'))

    services = relationship('Services', back_populates='provider')
    availability_rules = relationship('AvailabilityRules', back_populates='provider')
    availability_exceptions = relationship('AvailabilityExceptions', back_populates='provider')
    availability_settings = relationship(
        'ProviderAvailabilitySettings', back_populates='provider', uselist=False
    )


class Services(Base):
    __tablename__ = 'services'

    provider_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    base_price_pence = Column(Integer, nullable=False, server_default=text('0'))
    travel_fee_pence = Column(Integer, nullable=False, server_default=text('0'))
    materials_fee_pence = Column(Integer, nullable=False, server_default=text('0'))
    materials_policy = Column(Text, nullable=False, server_default=text("'client_provides'"))
    location_types = Column(Text, nullable=False, server_default=text("'[]'"))
    is_active = Column(Boolean, nullable=False, server_default=true())
    id = Column(Integer, primary_key=True)
    description = Column(Text)

    provider = relationship('Users', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


class AvailabilityRules(Base):
    __tablename__ = 'availability_rules'
    __table_args__ = (
        Index('ix_availability_rules_provider_day', 'provider_id', 'day_of_week'),
    )

    provider_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday, 6 = Sunday
    start_time = Column(Text, nullable=False)      # "HH:MM"
    end_time = Column(Text, nullable=False)        # "HH:MM", "24:00" allowed
    is_active = Column(Boolean, nullable=False, server_default=true())
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    provider = relationship('Users', back_populates='availability_rules')


class AvailabilityExceptions(Base):
    __tablename__ = 'availability_exceptions'
    __table_args__ = (
        Index('ix_availability_exceptions_provider_start', 'provider_id', 'start_datetime'),
    )

    provider_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    start_datetime = Column(DateTime, nullable=False)  # naive UTC
    end_datetime = Column(DateTime, nullable=False)    # naive UTC
    type = Column(Text, nullable=False, server_default=text("'blocked'"))
    id = Column(Integer, primary_key=True)
    reason = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    provider = relationship('Users', back_populates='availability_exceptions')


class ProviderAvailabilitySettings(Base):
    __tablename__ = 'provider_availability_settings'

    provider_id = Column(
        ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    min_lead_time_hours = Column(Integer, nullable=False, server_default=text('0'))
    id = Column(Integer, primary_key=True)
    max_bookings_per_day = Column(Integer)  # NULL = unlimited
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    provider = relationship('Users', back_populates='availability_settings')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_provider_start', 'provider_id', 'start_datetime'),
        # Two active bookings can never claim the same provider start time
        Index(
            'uq_bookings_provider_active_start',
            'provider_id',
            'start_datetime',
            unique=True,
            sqlite_where=_ACTIVE_STATUS_SQL,
            postgresql_where=_ACTIVE_STATUS_SQL,
        ),
    )

    client_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    provider_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    start_datetime = Column(DateTime, nullable=False)  # naive UTC
    end_datetime = Column(DateTime, nullable=False)    # naive UTC
    status = Column(
        Enum(*BOOKING_STATUSES, name='booking_status'),
        nullable=False,
        server_default=text("'pending'"),
    )
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    id = Column(Integer, primary_key=True)
    notes = Column(Text)
    cancel_reason = Column(Text)

    client = relationship('Users', foreign_keys=[client_id])
    provider = relationship('Users', foreign_keys=[provider_id])
    service = relationship('Services', back_populates='bookings')
    audit_logs = relationship('BookingAuditLog', back_populates='booking')


class BookingAuditLog(Base):
    __tablename__ = 'booking_audit_logs'

    booking_id = Column(ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False)
    action = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    user_id = Column(ForeignKey('users.id', ondelete='SET NULL'))
    new_status = Column(Text)
    details = Column(Text)  # JSON
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    booking = relationship('Bookings', back_populates='audit_logs')


__all__ = [
    "Base",
    "metadata",
    "BOOKING_STATUSES",
    "ACTIVE_BOOKING_STATUSES",
    "Users",
    "Services",
    "AvailabilityRules",
    "AvailabilityExceptions",
    "ProviderAvailabilitySettings",
    "Bookings",
    "BookingAuditLog",
]
