"""FastAPI REST API server for the AxleNote service.

This module provides HTTP endpoints for vehicles, service history, fuel logs,
documents and reminders. The reminder sweep itself runs in the background worker
process (see background_worker.py); this server only reads and writes the
records it works from.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import schemas
import database
from background_worker import resolve_current_odometer
from config import settings
from logger_config import setup_logger
from triggers import evaluate_reminder

logger = setup_logger(__name__, 'api.log')


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.init_db()
    logger.info("API server started")
    yield


# Create FastAPI application
app = FastAPI(
    title="AxleNote API",
    description="Vehicle maintenance log with date and odometer based reminders",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api = APIRouter(prefix="/api/v1")


def _require_vehicle(db: Session, vehicle_id: int):
    vehicle = crud.get_vehicle(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "axlenote",
        "database": settings.DATABASE_URL.split("://")[0]
    }


@api.get("/config")
def get_config():
    """Frontend display settings"""
    return {"currency": settings.APP_CURRENCY}


# Vehicles

@api.get("/vehicles", response_model=List[schemas.VehicleResponse])
def list_vehicles(db: Session = Depends(database.get_db)):
    return crud.list_vehicles(db)


@api.post("/vehicles", response_model=schemas.VehicleResponse, status_code=201)
def create_vehicle(vehicle: schemas.VehicleCreate, db: Session = Depends(database.get_db)):
    try:
        return crud.create_vehicle(db, vehicle.model_dump())
    except SQLAlchemyError as e:
        logger.error(f"Error creating vehicle: {str(e)}")
        raise HTTPException(status_code=400, detail=f"Error creating vehicle: {str(e)}")


@api.get("/vehicles/{vehicle_id}", response_model=schemas.VehicleResponse)
def get_vehicle(vehicle_id: int, db: Session = Depends(database.get_db)):
    return _require_vehicle(db, vehicle_id)


@api.put("/vehicles/{vehicle_id}", response_model=schemas.VehicleResponse)
def update_vehicle(
    vehicle_id: int,
    updates: schemas.VehicleUpdate,
    db: Session = Depends(database.get_db)
):
    vehicle = crud.update_vehicle(db, vehicle_id, updates.model_dump(exclude_unset=True))
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


@api.delete("/vehicles/{vehicle_id}")
def delete_vehicle(vehicle_id: int, db: Session = Depends(database.get_db)):
    if not crud.delete_vehicle(db, vehicle_id):
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return {"message": "Vehicle deleted"}


@api.get("/vehicles/{vehicle_id}/stats", response_model=schemas.VehicleStats)
def get_vehicle_stats(vehicle_id: int, db: Session = Depends(database.get_db)):
    _require_vehicle(db, vehicle_id)
    return crud.get_vehicle_stats(db, vehicle_id)


@api.get("/vehicles/{vehicle_id}/odometer", response_model=schemas.OdometerResponse)
def get_current_odometer(vehicle_id: int, db: Session = Depends(database.get_db)):
    _require_vehicle(db, vehicle_id)
    return {"vehicle_id": vehicle_id, "current_odometer": resolve_current_odometer(db, vehicle_id)}


# Service records

@api.get("/vehicles/{vehicle_id}/services", response_model=List[schemas.ServiceRecordResponse])
def list_service_records(vehicle_id: int, db: Session = Depends(database.get_db)):
    _require_vehicle(db, vehicle_id)
    return crud.list_service_records(db, vehicle_id)


@api.post("/services", response_model=schemas.ServiceRecordResponse, status_code=201)
def create_service_record(record: schemas.ServiceRecordCreate, db: Session = Depends(database.get_db)):
    _require_vehicle(db, record.vehicle_id)
    try:
        return crud.create_service_record(db, record.model_dump())
    except SQLAlchemyError as e:
        logger.error(f"Error creating service record: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create service record")


@api.put("/services/{record_id}", response_model=schemas.ServiceRecordResponse)
def update_service_record(
    record_id: int,
    updates: schemas.ServiceRecordUpdate,
    db: Session = Depends(database.get_db)
):
    record = crud.update_service_record(db, record_id, updates.model_dump(exclude_unset=True))
    if not record:
        raise HTTPException(status_code=404, detail="Service record not found")
    return record


@api.delete("/services/{record_id}")
def delete_service_record(record_id: int, db: Session = Depends(database.get_db)):
    if not crud.delete_service_record(db, record_id):
        raise HTTPException(status_code=404, detail="Service record not found")
    return {"message": "Service record deleted"}


# Fuel logs

@api.get("/vehicles/{vehicle_id}/fuel", response_model=List[schemas.FuelLogResponse])
def list_fuel_logs(vehicle_id: int, db: Session = Depends(database.get_db)):
    _require_vehicle(db, vehicle_id)
    return crud.list_fuel_logs(db, vehicle_id)


@api.post("/fuel", response_model=schemas.FuelLogResponse, status_code=201)
def create_fuel_log(fuel_log: schemas.FuelLogCreate, db: Session = Depends(database.get_db)):
    _require_vehicle(db, fuel_log.vehicle_id)
    try:
        return crud.create_fuel_log(db, fuel_log.model_dump())
    except SQLAlchemyError as e:
        logger.error(f"Error creating fuel log: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create fuel log")


@api.put("/fuel/{log_id}", response_model=schemas.FuelLogResponse)
def update_fuel_log(
    log_id: int,
    updates: schemas.FuelLogUpdate,
    db: Session = Depends(database.get_db)
):
    fuel_log = crud.update_fuel_log(db, log_id, updates.model_dump(exclude_unset=True))
    if not fuel_log:
        raise HTTPException(status_code=404, detail="Fuel log not found")
    return fuel_log


@api.delete("/fuel/{log_id}")
def delete_fuel_log(log_id: int, db: Session = Depends(database.get_db)):
    if not crud.delete_fuel_log(db, log_id):
        raise HTTPException(status_code=404, detail="Fuel log not found")
    return {"message": "Fuel log deleted"}


# Documents

@api.get("/vehicles/{vehicle_id}/documents", response_model=List[schemas.DocumentResponse])
def list_documents(vehicle_id: int, db: Session = Depends(database.get_db)):
    _require_vehicle(db, vehicle_id)
    return crud.list_documents(db, vehicle_id)


@api.post("/documents", response_model=schemas.DocumentResponse, status_code=201)
def create_document(document: schemas.DocumentCreate, db: Session = Depends(database.get_db)):
    _require_vehicle(db, document.vehicle_id)
    try:
        return crud.create_document(db, document.model_dump())
    except SQLAlchemyError as e:
        logger.error(f"Error creating document: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create document")


@api.delete("/documents/{document_id}")
def delete_document(document_id: int, db: Session = Depends(database.get_db)):
    if not crud.delete_document(db, document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"message": "Document deleted"}


# Reminders

@api.get("/vehicles/{vehicle_id}/reminders", response_model=List[schemas.ReminderResponse])
def list_reminders(vehicle_id: int, db: Session = Depends(database.get_db)):
    _require_vehicle(db, vehicle_id)
    return crud.list_reminders(db, vehicle_id)


@api.get("/vehicles/{vehicle_id}/reminders/status", response_model=schemas.VehicleReminderStatus)
def get_reminder_status(vehicle_id: int, db: Session = Depends(database.get_db)):
    """Evaluate the vehicle's open reminders now, without notifying anyone."""
    _require_vehicle(db, vehicle_id)
    odometer = resolve_current_odometer(db, vehicle_id)
    now = datetime.now(timezone.utc)

    statuses = []
    for reminder in crud.list_active_reminders(db, vehicle_id):
        outcome = evaluate_reminder(reminder, odometer, now)
        statuses.append({
            "reminder": schemas.ReminderResponse.model_validate(reminder),
            "fired": outcome.fired,
            "triggers": [{"kind": hit.kind.value, "reason": hit.reason} for hit in outcome.hits],
        })

    return {
        "vehicle_id": vehicle_id,
        "current_odometer": odometer,
        "evaluated_at": now,
        "reminders": statuses,
    }


@api.post("/reminders", response_model=schemas.ReminderResponse, status_code=201)
def create_reminder(reminder: schemas.ReminderCreate, db: Session = Depends(database.get_db)):
    """Create a reminder.

    Request body example:
    ```json
    {
        "vehicle_id": 1,
        "title": "Oil Change",
        "due_date": "2025-06-01",
        "due_odometer": 50000,
        "is_recurring": true,
        "interval_km": 5000
    }
    ```
    """
    _require_vehicle(db, reminder.vehicle_id)
    try:
        return crud.create_reminder(db, reminder.model_dump())
    except SQLAlchemyError as e:
        logger.error(f"Error creating reminder: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create reminder")


@api.put("/reminders/{reminder_id}/complete", response_model=schemas.ReminderResponse)
def complete_reminder(reminder_id: int, db: Session = Depends(database.get_db)):
    reminder = crud.complete_reminder(db, reminder_id)
    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return reminder


app.include_router(api)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting AxleNote API on {settings.API_HOST}:{settings.API_PORT}")
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
