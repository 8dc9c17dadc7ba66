from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # Company-wide weekly template, preferred over members' personal templates
    availability = Column(JSON, nullable=True)  # {"monday": {"available", "startTime", "endTime"}}
    blocked_dates = Column(JSON, default=list, nullable=True)
    blocked_ranges = Column(JSON, default=list, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    members = relationship("User", back_populates="company")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(50), default="professional", nullable=False)  # professional, employee, customer
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. "Europe/Brussels"
    availability = Column(JSON, nullable=True)
    blocked_dates = Column(JSON, default=list, nullable=True)  # [{"date", "isHoliday", "reason"}]
    blocked_ranges = Column(JSON, default=list, nullable=True)  # [{"startDate", "endDate", ...}]
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="members")
    projects = relationship("Project", back_populates="professional")


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    status = Column(String(50), default="draft")  # draft, pending, published, on_hold
    # Team member user ids assigned to the work; empty means the professional alone
    resources = Column(JSON, default=list, nullable=True)
    min_resources = Column(Integer, default=1, nullable=True)
    min_overlap_percentage = Column(Float, default=70, nullable=True)
    time_mode = Column(String(10), nullable=True)  # hours, days
    # Durations are stored as {"value": float, "unit": "hours" | "days"}
    execution_duration = Column(JSON, nullable=True)
    preparation_duration = Column(JSON, nullable=True)
    buffer_duration = Column(JSON, nullable=True)
    # Legacy preparation fields from before preparation_duration existed
    delivery_preparation = Column(Float, nullable=True)
    delivery_preparation_unit = Column(String(10), nullable=True)
    # [{"name", "executionDuration", "preparationDuration", "buffer", ...}]
    subprojects = Column(JSON, default=list, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    professional = relationship("User", back_populates="projects")
    bookings = relationship("Booking", back_populates="project")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(50), default="booked")  # booked, in_progress, completed, cancelled, refunded
    selected_subproject_index = Column(Integer, nullable=True)
    scheduled_start_date = Column(DateTime(timezone=True), nullable=True)
    scheduled_execution_end_date = Column(DateTime(timezone=True), nullable=True)
    scheduled_buffer_start_date = Column(DateTime(timezone=True), nullable=True)
    scheduled_end_date = Column(DateTime(timezone=True), nullable=True)
    # Legacy names, still present on older bookings
    execution_end_date = Column(DateTime(timezone=True), nullable=True)
    buffer_start_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="bookings")
    assignments = relationship("BookingAssignment", back_populates="booking")


class BookingAssignment(Base):
    """Team members assigned to a booking besides its professional"""

    __tablename__ = "booking_assignments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    booking = relationship("Booking", back_populates="assignments")
