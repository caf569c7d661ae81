"""CRUD operations for the AxleNote service.

This module provides database operations for vehicles, service records,
fuel logs and reminders, plus the read queries the reminder worker uses.
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from typing import List, Optional

from database import Vehicle, ServiceRecord, FuelLog, Reminder, Document
from logger_config import setup_logger

logger = setup_logger(__name__, 'crud.log')

VEHICLE_FIELDS = ('name', 'make', 'model', 'year', 'type', 'vin', 'license_plate', 'image_url')
SERVICE_FIELDS = ('date', 'odometer', 'cost', 'notes', 'service_type')
FUEL_FIELDS = ('date', 'odometer', 'liters', 'price_per_liter', 'total_cost', 'full_tank', 'notes')


def _apply_updates(row, updates: dict, fields) -> None:
    """Copy non-None values for known fields onto an ORM row."""
    for key, value in updates.items():
        if value is not None and key in fields:
            setattr(row, key, value)


def _positive_or_none(value: Optional[int]) -> Optional[int]:
    """Treat zero/negative optional integers as absent."""
    if value is None or value <= 0:
        return None
    return value


# Vehicles

def create_vehicle(db: Session, vehicle_data: dict) -> Vehicle:
    """Create a new vehicle.

    Args:
        db: Database session
        vehicle_data: Dictionary with vehicle fields (name is required)

    Returns:
        Vehicle: Created vehicle
    """
    db_vehicle = Vehicle(**{k: v for k, v in vehicle_data.items() if k in VEHICLE_FIELDS})
    db.add(db_vehicle)
    db.commit()
    db.refresh(db_vehicle)
    return db_vehicle


def list_vehicles(db: Session) -> List[Vehicle]:
    """Get all vehicles ordered by id."""
    return db.query(Vehicle).order_by(Vehicle.id).all()


def get_vehicle(db: Session, vehicle_id: int) -> Optional[Vehicle]:
    """Get a specific vehicle by ID, or None."""
    return db.query(Vehicle).filter(Vehicle.id == vehicle_id).first()


def update_vehicle(db: Session, vehicle_id: int, updates: dict) -> Optional[Vehicle]:
    """Update an existing vehicle.

    Only non-None values in ``updates`` are applied.

    Returns:
        Optional[Vehicle]: Updated vehicle if found, None otherwise
    """
    vehicle = get_vehicle(db, vehicle_id)
    if not vehicle:
        return None

    _apply_updates(vehicle, updates, VEHICLE_FIELDS)

    db.commit()
    db.refresh(vehicle)
    return vehicle


def delete_vehicle(db: Session, vehicle_id: int) -> bool:
    """Delete a vehicle together with its logs and reminders.

    Returns:
        bool: True if deleted, False if not found
    """
    vehicle = get_vehicle(db, vehicle_id)
    if not vehicle:
        return False

    db.delete(vehicle)
    db.commit()
    return True


# Service records

def create_service_record(db: Session, record_data: dict) -> ServiceRecord:
    """Create a service record for a vehicle."""
    db_record = ServiceRecord(
        vehicle_id=record_data['vehicle_id'],
        date=record_data['date'],
        odometer=record_data['odometer'],
        cost=record_data.get('cost', 0.0),
        notes=record_data.get('notes') or '',
        service_type=record_data.get('service_type') or '',
    )
    db.add(db_record)
    db.commit()
    db.refresh(db_record)
    return db_record


def list_service_records(db: Session, vehicle_id: int) -> List[ServiceRecord]:
    """Get service history for a vehicle, newest first."""
    return db.query(ServiceRecord).filter(
        ServiceRecord.vehicle_id == vehicle_id
    ).order_by(ServiceRecord.date.desc(), ServiceRecord.id.desc()).all()


def update_service_record(db: Session, record_id: int, updates: dict) -> Optional[ServiceRecord]:
    """Update a service record. Only non-None values are applied.

    Returns:
        Optional[ServiceRecord]: Updated record if found, None otherwise
    """
    record = db.query(ServiceRecord).filter(ServiceRecord.id == record_id).first()
    if not record:
        return None

    _apply_updates(record, updates, SERVICE_FIELDS)
    db.commit()
    db.refresh(record)
    return record


def delete_service_record(db: Session, record_id: int) -> bool:
    record = db.query(ServiceRecord).filter(ServiceRecord.id == record_id).first()
    if not record:
        return False
    db.delete(record)
    db.commit()
    return True


# Fuel logs

def create_fuel_log(db: Session, log_data: dict) -> FuelLog:
    """Create a fuel log for a vehicle.

    total_cost defaults to liters * price_per_liter when not given.
    """
    liters = log_data.get('liters', 0.0)
    price = log_data.get('price_per_liter', 0.0)
    total = log_data.get('total_cost')
    if not total:
        total = round(liters * price, 2)

    db_log = FuelLog(
        vehicle_id=log_data['vehicle_id'],
        date=log_data['date'],
        odometer=log_data['odometer'],
        liters=liters,
        price_per_liter=price,
        total_cost=total,
        full_tank=log_data.get('full_tank', True),
        notes=log_data.get('notes') or '',
    )
    db.add(db_log)
    db.commit()
    db.refresh(db_log)
    return db_log


def list_fuel_logs(db: Session, vehicle_id: int) -> List[FuelLog]:
    """Get fuel history for a vehicle, newest first."""
    return db.query(FuelLog).filter(
        FuelLog.vehicle_id == vehicle_id
    ).order_by(FuelLog.date.desc(), FuelLog.id.desc()).all()


def update_fuel_log(db: Session, log_id: int, updates: dict) -> Optional[FuelLog]:
    """Update a fuel log. Only non-None values are applied.

    When liters or price change and no total_cost is given, the total is
    recomputed from the new values.

    Returns:
        Optional[FuelLog]: Updated log if found, None otherwise
    """
    fuel_log = db.query(FuelLog).filter(FuelLog.id == log_id).first()
    if not fuel_log:
        return None

    _apply_updates(fuel_log, updates, FUEL_FIELDS)
    repriced = updates.get('liters') is not None or updates.get('price_per_liter') is not None
    if repriced and not updates.get('total_cost'):
        fuel_log.total_cost = round(fuel_log.liters * fuel_log.price_per_liter, 2)

    db.commit()
    db.refresh(fuel_log)
    return fuel_log


def delete_fuel_log(db: Session, log_id: int) -> bool:
    fuel_log = db.query(FuelLog).filter(FuelLog.id == log_id).first()
    if not fuel_log:
        return False
    db.delete(fuel_log)
    db.commit()
    return True


# Reminders

def create_reminder(db: Session, reminder_data: dict) -> Reminder:
    """Create a new reminder for a vehicle.

    Args:
        db: Database session
        reminder_data: Dictionary with reminder fields
            - vehicle_id: int
            - title: str
            - due_date: Optional[date]
            - due_odometer: Optional[int] (km, <= 0 means unset)
            - is_recurring: bool
            - interval_km / interval_months: Optional[int] (<= 0 means unset)
            - notes: Optional[str]

    Returns:
        Reminder: Created reminder
    """
    db_reminder = Reminder(
        vehicle_id=reminder_data['vehicle_id'],
        title=reminder_data['title'],
        due_date=reminder_data.get('due_date'),
        due_odometer=_positive_or_none(reminder_data.get('due_odometer')),
        is_recurring=reminder_data.get('is_recurring', False),
        interval_km=_positive_or_none(reminder_data.get('interval_km')),
        interval_months=_positive_or_none(reminder_data.get('interval_months')),
        notes=reminder_data.get('notes') or '',
        is_completed=False,
    )

    db.add(db_reminder)
    db.commit()
    db.refresh(db_reminder)
    return db_reminder


def list_reminders(db: Session, vehicle_id: int) -> List[Reminder]:
    """Get all reminders (completed included) for a vehicle."""
    return db.query(Reminder).filter(
        Reminder.vehicle_id == vehicle_id
    ).order_by(Reminder.is_completed, Reminder.id).all()


def list_active_reminders(db: Session, vehicle_id: int) -> List[Reminder]:
    """Get non-completed reminders for a vehicle, in id order."""
    return db.query(Reminder).filter(
        Reminder.vehicle_id == vehicle_id,
        Reminder.is_completed.is_(False)
    ).order_by(Reminder.id).all()


def get_reminder(db: Session, reminder_id: int) -> Optional[Reminder]:
    return db.query(Reminder).filter(Reminder.id == reminder_id).first()


def complete_reminder(db: Session, reminder_id: int) -> Optional[Reminder]:
    """Mark a reminder as completed so it is no longer evaluated.

    Returns:
        Optional[Reminder]: Updated reminder if found, None otherwise
    """
    reminder = get_reminder(db, reminder_id)
    if not reminder:
        return None

    reminder.is_completed = True
    db.commit()
    db.refresh(reminder)
    logger.info(f"Reminder {reminder_id} marked completed")
    return reminder


# Documents

def create_document(db: Session, document_data: dict) -> Document:
    """Attach a document (by URL) to a vehicle.

    Args:
        db: Database session
        document_data: Dictionary with document fields
            - vehicle_id: int
            - name: str
            - file_url: str
            - type: Optional[str]
            - expiry_date: Optional[date]
            - notes: Optional[str]

    Returns:
        Document: Created document
    """
    db_document = Document(
        vehicle_id=document_data['vehicle_id'],
        name=document_data['name'],
        type=document_data.get('type') or '',
        file_url=document_data['file_url'],
        expiry_date=document_data.get('expiry_date'),
        notes=document_data.get('notes') or '',
    )
    db.add(db_document)
    db.commit()
    db.refresh(db_document)
    return db_document


def list_documents(db: Session, vehicle_id: int) -> List[Document]:
    """Get a vehicle's documents, soonest expiry first, undated last."""
    return db.query(Document).filter(
        Document.vehicle_id == vehicle_id
    ).order_by(Document.expiry_date.is_(None), Document.expiry_date, Document.id).all()


def delete_document(db: Session, document_id: int) -> bool:
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        return False
    db.delete(document)
    db.commit()
    return True


# Aggregates

def get_max_odometer(db: Session, vehicle_id: int) -> int:
    """Get the highest odometer reading across service and fuel history.

    Both aggregates are read in one statement. A side with no rows yields
    NULL, which counts as 0.

    Returns:
        int: Maximum odometer in km, 0 when there is no history
    """
    service_max = select(func.max(ServiceRecord.odometer)).where(
        ServiceRecord.vehicle_id == vehicle_id
    ).scalar_subquery()
    fuel_max = select(func.max(FuelLog.odometer)).where(
        FuelLog.vehicle_id == vehicle_id
    ).scalar_subquery()

    row = db.execute(select(service_max, fuel_max)).one()
    return max(int(row[0] or 0), int(row[1] or 0))


def get_vehicle_stats(db: Session, vehicle_id: int) -> dict:
    """Get cost and volume totals for a vehicle."""
    fuel_cost, total_liters, fuel_count = db.query(
        func.coalesce(func.sum(FuelLog.total_cost), 0.0),
        func.coalesce(func.sum(FuelLog.liters), 0.0),
        func.count(FuelLog.id),
    ).filter(FuelLog.vehicle_id == vehicle_id).one()

    service_cost, service_count = db.query(
        func.coalesce(func.sum(ServiceRecord.cost), 0.0),
        func.count(ServiceRecord.id),
    ).filter(ServiceRecord.vehicle_id == vehicle_id).one()

    return {
        'total_fuel_cost': float(fuel_cost),
        'total_service_cost': float(service_cost),
        'total_liters': float(total_liters),
        'total_services': int(service_count),
        'total_fuel_logs': int(fuel_count),
        'total_cost': float(fuel_cost) + float(service_cost),
    }
