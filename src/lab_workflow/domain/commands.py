"""Commands accepted by the case workflow engine."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Command:
    """Base class for all commands."""
    pass


@dataclass
class AssignLaboratory(Command):
    """Resolve a laboratory for the case's procedure and (by default) start production."""
    case_id: str
    start_production: bool = True


@dataclass
class ReassignLaboratory(Command):
    """Explicit laboratory choice; overwrites the sticky preference."""
    case_id: str
    lab_id: str


@dataclass
class StartProduction(Command):
    case_id: str


@dataclass
class AdvanceProductionStage(Command):
    case_id: str


@dataclass
class ReopenProductionStage(Command):
    case_id: str
    target_stage: str


@dataclass
class AssignTechnician(Command):
    case_id: str
    technician_id: Optional[str]


@dataclass
class CompleteProduction(Command):
    case_id: str


@dataclass
class UpdateTransitStatus(Command):
    case_id: str
    transit_status: str
    location: Optional[str] = None
    notes: Optional[str] = None
    signed_by: Optional[str] = None


@dataclass
class AssignCourier(Command):
    case_id: str
    courier_service: Optional[str] = None
    tracking_number: Optional[str] = None
    route_id: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
