"""Production and transit board summaries over a snapshot of cases."""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from lab_workflow.domain.model import (
    CaseStatus,
    LabCase,
    Priority,
    ProductionStage,
    Technician,
    TransitStatus,
)
from lab_workflow.domain.production import PRODUCTION_STAGES
from lab_workflow.services import workload
from lab_workflow.services.workload import TechnicianWorkload

PRIORITY_CASES = (Priority.RUSH, Priority.URGENT)


@dataclass(frozen=True)
class ProductionBoard:
    cases_by_stage: Dict[ProductionStage, Tuple[LabCase, ...]]
    total_in_production: int
    rush_cases: int
    active_technicians: int
    total_technicians: int
    workloads: Tuple[TechnicianWorkload, ...]


@dataclass(frozen=True)
class TransitBoard:
    cases: Tuple[LabCase, ...]
    total: int
    pending_pickup: int
    in_transit: int
    out_for_delivery: int
    delivered: int
    failed_delivery: int
    urgent: int


@dataclass(frozen=True)
class TransitRoute:
    route_id: str
    clinics: Tuple[str, ...]
    courier_service: Optional[str]
    earliest_delivery: Optional[datetime]
    cases: Tuple[LabCase, ...]

    @property
    def total_cases(self) -> int:
        return len(self.cases)


def production_board(
    cases: Iterable[LabCase],
    technicians: Iterable[Technician],
    stage: Optional[ProductionStage] = None,
    technician_id: Optional[str] = None,
    default_capacity: Optional[int] = None,
) -> ProductionBoard:
    """
    Kanban view of in-production cases.

    Headline counters and workloads cover every in-production case; the
    stage/technician filters only narrow the kanban columns.
    """
    technicians = list(technicians)
    in_production = [c for c in cases if c.status == CaseStatus.IN_PRODUCTION]
    workloads = workload.summarize(technicians, in_production, default_capacity)

    columns: Dict[ProductionStage, List[LabCase]] = {s: [] for s in PRODUCTION_STAGES}
    for case in in_production:
        case_stage = case.production_stage or ProductionStage.DESIGN
        if stage is not None and case_stage != stage:
            continue
        if technician_id is not None and case.technician_id != technician_id:
            continue
        columns[case_stage].append(case)

    return ProductionBoard(
        cases_by_stage={s: tuple(c) for s, c in columns.items()},
        total_in_production=len(in_production),
        rush_cases=sum(1 for c in in_production if c.priority in PRIORITY_CASES),
        active_technicians=sum(1 for w in workloads if w.active_cases > 0),
        total_technicians=len(workloads),
        workloads=tuple(workloads),
    )


def transit_board(cases: Iterable[LabCase], transit_status: Optional[TransitStatus] = None) -> TransitBoard:
    tracked = [c for c in cases if c.transit_status is not None]
    if transit_status is not None:
        tracked = [c for c in tracked if c.transit_status == transit_status]

    def count(*statuses):
        return sum(1 for c in tracked if c.transit_status in statuses)

    return TransitBoard(
        cases=tuple(tracked),
        total=len(tracked),
        pending_pickup=count(TransitStatus.PENDING_PICKUP),
        in_transit=count(TransitStatus.PICKED_UP, TransitStatus.IN_TRANSIT),
        out_for_delivery=count(TransitStatus.OUT_FOR_DELIVERY),
        delivered=count(TransitStatus.DELIVERED),
        failed_delivery=count(TransitStatus.FAILED_DELIVERY),
        urgent=sum(1 for c in tracked if c.priority == Priority.URGENT),
    )


def transit_routes(cases: Iterable[LabCase]) -> List[TransitRoute]:
    """Group in-transit cases by route, in first-seen order."""
    grouped: Dict[str, List[LabCase]] = {}
    for case in cases:
        if case.status != CaseStatus.IN_TRANSIT or not case.route_id:
            continue
        grouped.setdefault(case.route_id, []).append(case)

    routes = []
    for route_id, route_cases in grouped.items():
        clinics = tuple(dict.fromkeys(c.clinic for c in route_cases))
        couriers = [c.courier_service for c in route_cases if c.courier_service]
        etas = [c.estimated_delivery for c in route_cases if c.estimated_delivery]
        routes.append(
            TransitRoute(
                route_id=route_id,
                clinics=clinics,
                courier_service=couriers[0] if couriers else None,
                earliest_delivery=min(etas) if etas else None,
                cases=tuple(route_cases),
            )
        )
    return routes
