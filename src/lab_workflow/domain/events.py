"""Domain events raised by the case workflow state machines."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Event:
    """Base class for all domain events."""
    pass


@dataclass
class LaboratoryAssigned(Event):
    case_id: str
    company_id: str
    procedure: str
    lab_id: str
    occurred_at: datetime


@dataclass
class ProductionStarted(Event):
    case_id: str
    company_id: str
    lab_id: str
    occurred_at: datetime


@dataclass
class ProductionStageChanged(Event):
    """Raised on every forward advance and on rework reopens."""
    case_id: str
    company_id: str
    from_stage: str
    to_stage: str
    reopened: bool
    occurred_at: datetime


@dataclass
class TechnicianAssigned(Event):
    case_id: str
    company_id: str
    technician_id: Optional[str]  # None when the assignment was cleared
    occurred_at: datetime


@dataclass
class ProductionCompleted(Event):
    case_id: str
    company_id: str
    clinic: str
    occurred_at: datetime


@dataclass
class TransitStatusChanged(Event):
    case_id: str
    company_id: str
    from_status: str
    to_status: str
    location: str
    notes: Optional[str]
    occurred_at: datetime


@dataclass
class CourierAssigned(Event):
    case_id: str
    company_id: str
    courier_service: Optional[str]
    tracking_number: Optional[str]
    route_id: Optional[str]
    occurred_at: datetime


@dataclass
class CaseCompleted(Event):
    """Raised when a case is delivered and becomes billable."""
    case_id: str
    company_id: str
    clinic: str
    procedure: str
    occurred_at: datetime
