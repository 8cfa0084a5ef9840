import logging
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    event,
)
from sqlalchemy.orm import registry
from sqlalchemy.types import TypeDecorator

from lab_workflow.domain import model

logger = logging.getLogger(__name__)

mapper_registry = registry()
metadata = mapper_registry.metadata


class TransitHistoryType(TypeDecorator):
    """Stores the transit log as a JSON array; loads it back as a tuple of entries."""

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return [entry.to_dict() for entry in (value or ())]

    def process_result_value(self, value, dialect):
        return tuple(model.TransitHistoryEntry.from_dict(item) for item in (value or []))


def _enum(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


lab_cases = Table(
    "lab_cases",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("case_id", String(64), unique=True, nullable=False),
    Column("company_id", String(255), nullable=False, index=True),
    Column("clinic_id", String(255), index=True),
    Column("clinic", String(255), nullable=False),
    Column("lab_id", String(255), index=True),
    Column("lab", String(255)),
    Column("patient_id", String(255)),
    Column("doctor", String(255)),
    Column("procedure", String(255), nullable=False),
    Column("priority", _enum(model.Priority), nullable=False),
    Column("status", _enum(model.CaseStatus), nullable=False, index=True),
    Column("production_stage", _enum(model.ProductionStage)),
    Column("transit_status", _enum(model.TransitStatus)),
    Column("technician_id", String(255), index=True),
    Column("courier_service", String(255)),
    Column("tracking_number", String(255)),
    Column("route_id", String(255), index=True),
    Column("estimated_delivery", DateTime(timezone=True)),
    Column("current_location", String(255)),
    Column("pickup_date", DateTime(timezone=True)),
    Column("actual_delivery", DateTime(timezone=True)),
    Column("signed_by", String(255)),
    Column("price", Numeric(12, 2)),
    Column("reservation_date", Date, nullable=False),
    Column("actual_completion", DateTime(timezone=True)),
    Column("transit_history", TransitHistoryType, nullable=False, default=list),
    Column("version_number", Integer, nullable=False),
)

# Reference data owned by the directory services; read-only to the engine,
# so these tables are not mapped to domain entities.
laboratories = Table(
    "laboratories",
    metadata,
    Column("lab_id", String(255), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

laboratory_procedures = Table(
    "laboratory_procedures",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("lab_id", String(255), ForeignKey("laboratories.lab_id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("daily_capacity", Integer, nullable=False, default=10),
)

technicians = Table(
    "technicians",
    metadata,
    Column("technician_id", String(255), primary_key=True),
    Column("company_id", String(255), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("role", String(32), nullable=False, default="technician"),
    Column("capacity", Integer),
    Column("is_active", Boolean, nullable=False, default=True),
)


def start_mappers():
    logger.info("Starting mappers")
    mapper_registry.map_imperatively(
        model.LabCase,
        lab_cases,
        version_id_col=lab_cases.c.version_number,
    )


@event.listens_for(model.LabCase, "load")
def receive_load(case, _):
    case.events = []
