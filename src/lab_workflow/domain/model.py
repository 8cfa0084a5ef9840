"""Domain model for laboratory cases, laboratories and technicians."""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple


class CaseStatus(str, enum.Enum):
    IN_PLANNING = "in-planning"
    IN_PRODUCTION = "in-production"
    IN_TRANSIT = "in-transit"
    COMPLETED = "completed"


class ProductionStage(str, enum.Enum):
    DESIGN = "design"
    PRINTING = "printing"
    MILLING = "milling"
    FINISHING = "finishing"
    QC = "qc"
    PACKAGING = "packaging"


class TransitStatus(str, enum.Enum):
    PENDING_PICKUP = "pending-pickup"
    PICKED_UP = "picked-up"
    IN_TRANSIT = "in-transit"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    FAILED_DELIVERY = "failed-delivery"


class Priority(str, enum.Enum):
    NORMAL = "normal"
    RUSH = "rush"
    URGENT = "urgent"


class TechnicianRole(str, enum.Enum):
    TECHNICIAN = "technician"
    LAB_MANAGER = "lab-manager"


@dataclass(frozen=True)
class TransitHistoryEntry:
    """One immutable entry of a case's transit audit trail."""
    timestamp: datetime
    location: str
    status: TransitStatus
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "location": self.location,
            "status": self.status.value,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransitHistoryEntry":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            location=data.get("location") or "",
            status=TransitStatus(data["status"]),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class ProcedureCapacity:
    name: str
    daily_capacity: int


@dataclass(frozen=True)
class Laboratory:
    """Production facility, read-only reference data."""
    lab_id: str
    name: str
    procedures: Tuple[ProcedureCapacity, ...] = ()

    def capacity_for(self, procedure: str) -> int:
        """Daily capacity for ``procedure``; 0 means the procedure is not offered."""
        capacities = [p.daily_capacity for p in self.procedures if p.name == procedure]
        return max(capacities, default=0)

    def offers(self, procedure: str) -> bool:
        return self.capacity_for(procedure) > 0


@dataclass(frozen=True)
class Technician:
    technician_id: str
    name: str
    role: TechnicianRole = TechnicianRole.TECHNICIAN
    capacity: Optional[int] = None  # None -> deployment default


@dataclass(eq=False)
class LabCase:
    """
    Aggregate root for one laboratory work order.

    Stage and status changes go through the production and transit state
    machines, which append domain events to ``events``. Identity is the
    human-readable ``case_id``.
    """
    case_id: str
    company_id: str
    clinic: str
    procedure: str
    reservation_date: date
    clinic_id: Optional[str] = None
    lab_id: Optional[str] = None
    lab: Optional[str] = None
    patient_id: Optional[str] = None
    doctor: Optional[str] = None
    priority: Priority = Priority.NORMAL
    status: CaseStatus = CaseStatus.IN_PLANNING
    production_stage: Optional[ProductionStage] = None
    transit_status: Optional[TransitStatus] = None
    technician_id: Optional[str] = None
    courier_service: Optional[str] = None
    tracking_number: Optional[str] = None
    route_id: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    current_location: Optional[str] = None
    pickup_date: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    signed_by: Optional[str] = None
    price: Optional[Decimal] = None
    actual_completion: Optional[datetime] = None
    transit_history: Tuple[TransitHistoryEntry, ...] = ()
    id: Optional[int] = None
    version_number: int = 0
    events: List = field(default_factory=list, repr=False)

    def __eq__(self, other):
        if not isinstance(other, LabCase):
            return False
        return other.case_id == self.case_id

    def __hash__(self):
        return hash(self.case_id)

    @property
    def last_history_entry(self) -> Optional[TransitHistoryEntry]:
        return self.transit_history[-1] if self.transit_history else None

    def append_history(self, entry: TransitHistoryEntry) -> TransitHistoryEntry:
        """
        Append an entry to the transit log.

        The log is a tuple and only ever grows. A timestamp earlier than the
        last entry is clamped to it so the log stays ordered.
        """
        last = self.last_history_entry
        if last is not None and entry.timestamp < last.timestamp:
            entry = TransitHistoryEntry(
                timestamp=last.timestamp,
                location=entry.location,
                status=entry.status,
                notes=entry.notes,
            )
        self.transit_history = self.transit_history + (entry,)
        return entry

    def to_dict(self) -> Dict[str, Any]:
        def iso(value):
            return value.isoformat() if value is not None else None

        def enum_value(value):
            return value.value if value is not None else None

        return {
            "case_id": self.case_id,
            "company_id": self.company_id,
            "clinic_id": self.clinic_id,
            "clinic": self.clinic,
            "lab_id": self.lab_id,
            "lab": self.lab,
            "patient_id": self.patient_id,
            "doctor": self.doctor,
            "procedure": self.procedure,
            "priority": enum_value(self.priority),
            "status": enum_value(self.status),
            "production_stage": enum_value(self.production_stage),
            "transit_status": enum_value(self.transit_status),
            "technician_id": self.technician_id,
            "courier_service": self.courier_service,
            "tracking_number": self.tracking_number,
            "route_id": self.route_id,
            "estimated_delivery": iso(self.estimated_delivery),
            "current_location": self.current_location,
            "pickup_date": iso(self.pickup_date),
            "actual_delivery": iso(self.actual_delivery),
            "signed_by": self.signed_by,
            "price": str(self.price) if self.price is not None else None,
            "reservation_date": iso(self.reservation_date),
            "actual_completion": iso(self.actual_completion),
            "transit_history": [entry.to_dict() for entry in self.transit_history],
            "version_number": self.version_number,
        }

    def is_consistent(self) -> bool:
        """Check the stage/status invariants of the aggregate."""
        if (self.production_stage is not None) != (self.status == CaseStatus.IN_PRODUCTION):
            return False
        if self.status == CaseStatus.IN_TRANSIT:
            return self.transit_status is not None
        if self.status == CaseStatus.COMPLETED:
            return self.transit_status in (None, TransitStatus.DELIVERED)
        return self.transit_status is None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
