"""Technician workload / utilization aggregation."""

import enum
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from lab_workflow.domain.model import CaseStatus, LabCase, ProductionStage, Technician
from lab_workflow.domain.production import PRODUCTION_STAGES

DEFAULT_CAPACITY = 10
ELEVATED_THRESHOLD = 0.70
SATURATED_THRESHOLD = 0.90


class UtilizationBand(str, enum.Enum):
    NOMINAL = "nominal"
    ELEVATED = "elevated"
    SATURATED = "saturated"


def utilization_band(utilization: float) -> UtilizationBand:
    """Descriptive banding for presentation; no routing decision depends on it."""
    if utilization >= SATURATED_THRESHOLD:
        return UtilizationBand.SATURATED
    if utilization >= ELEVATED_THRESHOLD:
        return UtilizationBand.ELEVATED
    return UtilizationBand.NOMINAL


@dataclass(frozen=True)
class TechnicianWorkload:
    technician_id: str
    name: str
    active_cases: int
    stage_breakdown: Dict[ProductionStage, int]
    capacity: int
    utilization: float

    @property
    def band(self) -> UtilizationBand:
        return utilization_band(self.utilization)

    def to_dict(self) -> dict:
        return {
            "technician_id": self.technician_id,
            "name": self.name,
            "active_cases": self.active_cases,
            "stage_breakdown": {stage.value: count for stage, count in self.stage_breakdown.items()},
            "capacity": self.capacity,
            "utilization": self.utilization,
            "band": self.band.value,
        }


def summarize(
    technicians: Iterable[Technician],
    active_cases: Iterable[LabCase],
    default_capacity: Optional[int] = None,
) -> List[TechnicianWorkload]:
    """
    Workload per technician over the in-production cases.

    Sorted by active cases descending, then by name. Cases assigned to
    technicians outside ``technicians`` are ignored.
    """
    technicians = list(technicians)
    fallback = default_capacity or DEFAULT_CAPACITY
    counts: Dict[str, Dict[ProductionStage, int]] = {}
    for tech in technicians:
        counts.setdefault(tech.technician_id, {stage: 0 for stage in PRODUCTION_STAGES})

    for case in active_cases:
        if case.status != CaseStatus.IN_PRODUCTION or case.technician_id not in counts:
            continue
        stage = case.production_stage or ProductionStage.DESIGN
        counts[case.technician_id][stage] += 1

    workloads = []
    seen = set()
    for tech in technicians:
        if tech.technician_id in seen:
            continue
        seen.add(tech.technician_id)
        breakdown = counts[tech.technician_id]
        active = sum(breakdown.values())
        capacity = tech.capacity if tech.capacity and tech.capacity > 0 else fallback
        workloads.append(
            TechnicianWorkload(
                technician_id=tech.technician_id,
                name=tech.name,
                active_cases=active,
                stage_breakdown=dict(breakdown),
                capacity=capacity,
                utilization=active / capacity,
            )
        )

    workloads.sort(key=lambda w: (-w.active_cases, w.name))
    return workloads
