import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class ServiceZone(Base):
    """Dispatch zone mirrored from ServiceTitan (ServiceTitan is the source of truth)"""

    __tablename__ = "servicetitan_zones"

    id = Column(Integer, primary_key=True, index=True)
    servicetitan_id = Column(Integer, unique=True, index=True, nullable=True)
    name = Column(String(255), nullable=False)
    zip_codes = Column(JSON, default=list, nullable=False)  # ["78701", "78702"]
    cities = Column(JSON, nullable=True)  # NULL when ServiceTitan lists no cities
    sort_order = Column(Integer, default=999, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SchedulerRequest(Base):
    """Website booking request and the ServiceTitan records it produced"""

    __tablename__ = "scheduler_requests"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=False)
    address = Column(String(500), nullable=False)
    unit = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True, default="TX")
    zip_code = Column(String(20), nullable=True)

    requested_service = Column(String(255), nullable=False)
    preferred_date = Column(Date, nullable=True)
    preferred_time_slot = Column(String(20), nullable=True)  # morning, afternoon, evening
    special_instructions = Column(Text, nullable=True)
    booking_source = Column(String(50), default="website")
    utm_source = Column(String(255), nullable=True)

    # pending -> confirmed | failed
    status = Column(String(20), default="pending", nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    servicetitan_customer_id = Column(Integer, nullable=True)
    servicetitan_location_id = Column(Integer, nullable=True)
    servicetitan_job_id = Column(Integer, nullable=True)
    servicetitan_job_number = Column(String(50), nullable=True)
    servicetitan_appointment_id = Column(Integer, nullable=True)
    booked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    referrer_customer_id = Column(Integer, index=True, nullable=False)
    referrer_name = Column(String(255), nullable=True)
    referee_name = Column(String(255), nullable=False)
    referee_phone = Column(String(50), nullable=False)
    referee_email = Column(String(255), nullable=True)
    status = Column(String(30), default="pending", nullable=False)
    submitted_at = Column(DateTime, server_default=func.now(), nullable=False)


class SystemSetting(Base):
    """Key/value switches editable from the admin dashboard (e.g. email_enabled)"""

    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
