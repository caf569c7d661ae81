"""Pydantic schemas for the AxleNote service.

This module defines request and response schemas for API validation.
Dates are exchanged as ISO strings (YYYY-MM-DD); Pydantic parses them into
date objects. Odometer values are whole kilometres.
"""

from pydantic import BaseModel, ConfigDict, Field
import datetime as dt
from typing import List, Optional


class VehicleCreate(BaseModel):
    """Schema for creating a vehicle."""

    name: str = Field(..., min_length=1, max_length=200, examples=["Daily Driver"])
    make: str = Field(default="", examples=["Honda"])
    model: str = Field(default="", examples=["City"])
    year: Optional[int] = Field(None, ge=1900, le=2100)
    type: str = Field(default="car", examples=["car", "bike"])
    vin: str = ""
    license_plate: str = ""
    image_url: str = ""


class VehicleUpdate(BaseModel):
    """Schema for updating a vehicle. Only provided fields are changed."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900, le=2100)
    type: Optional[str] = None
    vin: Optional[str] = None
    license_plate: Optional[str] = None
    image_url: Optional[str] = None


class VehicleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    make: str
    model: str
    year: Optional[int] = None
    type: str
    vin: str
    license_plate: str
    image_url: str
    created_at: dt.datetime


class VehicleStats(BaseModel):
    total_fuel_cost: float
    total_service_cost: float
    total_liters: float
    total_services: int
    total_fuel_logs: int
    total_cost: float


class OdometerResponse(BaseModel):
    vehicle_id: int
    current_odometer: int = Field(..., description="Highest recorded odometer in km")


class ServiceRecordCreate(BaseModel):
    vehicle_id: int
    date: dt.date
    odometer: int = Field(..., ge=0, description="Odometer reading in km")
    cost: float = Field(default=0.0, ge=0)
    notes: str = ""
    service_type: str = Field(default="", examples=["Oil Change", "General Service"])


class ServiceRecordUpdate(BaseModel):
    """Only provided fields are changed."""

    date: Optional[dt.date] = None
    odometer: Optional[int] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    service_type: Optional[str] = None


class ServiceRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    date: dt.date
    odometer: int
    cost: float
    notes: str
    service_type: str


class FuelLogCreate(BaseModel):
    vehicle_id: int
    date: dt.date
    odometer: int = Field(..., ge=0, description="Odometer reading in km")
    liters: float = Field(default=0.0, ge=0)
    price_per_liter: float = Field(default=0.0, ge=0)
    total_cost: float = Field(default=0.0, ge=0, description="Defaults to liters * price_per_liter")
    full_tank: bool = True
    notes: str = ""


class FuelLogUpdate(BaseModel):
    """Only provided fields are changed."""

    date: Optional[dt.date] = None
    odometer: Optional[int] = Field(None, ge=0)
    liters: Optional[float] = Field(None, ge=0)
    price_per_liter: Optional[float] = Field(None, ge=0)
    total_cost: Optional[float] = Field(None, ge=0)
    full_tank: Optional[bool] = None
    notes: Optional[str] = None


class FuelLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    date: dt.date
    odometer: int
    liters: float
    price_per_liter: float
    total_cost: float
    full_tank: bool
    notes: str


class DocumentCreate(BaseModel):
    vehicle_id: int
    name: str = Field(..., min_length=1, max_length=200, examples=["Insurance Policy"])
    type: str = Field(default="", examples=["Insurance", "Registration", "PUC"])
    file_url: str = Field(..., min_length=1, description="Where the scanned document is stored")
    expiry_date: Optional[dt.date] = Field(None, description="Expiry date (YYYY-MM-DD)")
    notes: str = ""


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    name: str
    type: str
    file_url: str
    expiry_date: Optional[dt.date] = None
    notes: str


class ReminderCreate(BaseModel):
    """Schema for creating a reminder.

    A reminder should carry a due date, a due odometer, or both. One with
    neither is accepted but never fires. Zero or negative odometer and
    interval values are stored as unset.
    """

    vehicle_id: int
    title: str = Field(..., min_length=1, max_length=200, examples=["Oil Change", "Insurance Renewal"])
    due_date: Optional[dt.date] = Field(None, description="Calendar due date (YYYY-MM-DD)")
    due_odometer: Optional[int] = Field(None, description="Due odometer reading in km")
    is_recurring: bool = False
    interval_km: Optional[int] = None
    interval_months: Optional[int] = None
    notes: str = ""


class ReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    title: str
    due_date: Optional[dt.date] = None
    due_odometer: Optional[int] = None
    is_recurring: bool
    interval_km: Optional[int] = None
    interval_months: Optional[int] = None
    notes: str
    is_completed: bool


class TriggerHitResponse(BaseModel):
    kind: str
    reason: str


class ReminderStatus(BaseModel):
    """Evaluation of one open reminder at request time."""

    reminder: ReminderResponse
    fired: bool
    triggers: List[TriggerHitResponse]


class VehicleReminderStatus(BaseModel):
    vehicle_id: int
    current_odometer: int
    evaluated_at: dt.datetime
    reminders: List[ReminderStatus]
