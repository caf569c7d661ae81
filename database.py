"""Database module for the AxleNote service.

This module defines SQLAlchemy models and database session management.
Odometer values are whole kilometres. Reminder due dates are calendar dates
(no time component); due_date and due_odometer are both nullable.
"""

from sqlalchemy import (
    create_engine, Column, Integer, String, Date, DateTime, Float, Boolean,
    ForeignKey, Index,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from datetime import datetime, timezone

from config import settings

# SQLAlchemy Base
Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class Vehicle(Base):
    """Vehicle model - identity and display data for a car or bike."""

    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, doc="Display name shown in notifications")
    make = Column(String, default="")
    model = Column(String, default="")
    year = Column(Integer, nullable=True)
    type = Column(String, default="car", doc="car, bike, ...")
    vin = Column(String, default="")
    license_plate = Column(String, default="")
    image_url = Column(String, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    service_records = relationship(
        "ServiceRecord", back_populates="vehicle", cascade="all, delete-orphan"
    )
    fuel_logs = relationship(
        "FuelLog", back_populates="vehicle", cascade="all, delete-orphan"
    )
    reminders = relationship(
        "Reminder", back_populates="vehicle", cascade="all, delete-orphan"
    )
    documents = relationship(
        "Document", back_populates="vehicle", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Vehicle(id={self.id}, name={self.name})>"


class ServiceRecord(Base):
    """A service performed on a vehicle at a given odometer reading."""

    __tablename__ = "service_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    odometer = Column(Integer, nullable=False, doc="Odometer reading in km")
    cost = Column(Float, default=0.0)
    notes = Column(String, default="")
    service_type = Column(String, default="")

    vehicle = relationship("Vehicle", back_populates="service_records")

    __table_args__ = (
        Index('idx_service_vehicle_odometer', 'vehicle_id', 'odometer'),
    )


class FuelLog(Base):
    """A refuelling entry, which also records an odometer reading."""

    __tablename__ = "fuel_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    odometer = Column(Integer, nullable=False, doc="Odometer reading in km")
    liters = Column(Float, default=0.0)
    price_per_liter = Column(Float, default=0.0)
    total_cost = Column(Float, default=0.0)
    full_tank = Column(Boolean, default=True)
    notes = Column(String, default="")

    vehicle = relationship("Vehicle", back_populates="fuel_logs")

    __table_args__ = (
        Index('idx_fuel_vehicle_odometer', 'vehicle_id', 'odometer'),
    )


class Reminder(Base):
    """Reminder model - a service or renewal due by date and/or odometer.

    A reminder with neither due_date nor due_odometer never fires.
    Recurrence fields are stored for the frontend; evaluation ignores them.
    """

    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    due_date = Column(Date, nullable=True)
    due_odometer = Column(Integer, nullable=True, doc="Due odometer reading in km")
    is_recurring = Column(Boolean, default=False)
    interval_km = Column(Integer, nullable=True)
    interval_months = Column(Integer, nullable=True)
    notes = Column(String, default="")
    is_completed = Column(Boolean, default=False, nullable=False, index=True)

    vehicle = relationship("Vehicle", back_populates="reminders")

    __table_args__ = (
        Index('idx_reminder_vehicle_completed', 'vehicle_id', 'is_completed'),
    )

    def __repr__(self):
        return (
            f"<Reminder(id={self.id}, vehicle={self.vehicle_id}, title={self.title}, "
            f"due_date={self.due_date}, due_odometer={self.due_odometer})>"
        )


class Document(Base):
    """A vehicle paper (insurance, registration, PUC...) stored by URL."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, default="")
    file_url = Column(String, nullable=False)
    expiry_date = Column(Date, nullable=True)
    notes = Column(String, default="")

    vehicle = relationship("Vehicle", back_populates="documents")

    def __repr__(self):
        return f"<Document(id={self.id}, vehicle={self.vehicle_id}, name={self.name})>"


# Database Engine Setup
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {},
    echo=False  # Set to True for SQL debugging
)

# Session Factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency for FastAPI.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables on the given engine (defaults to the configured one)."""
    Base.metadata.create_all(bind=bind or engine)
