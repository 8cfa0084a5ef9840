"""
Production stage machine.

A case in production walks ``design -> printing -> milling -> finishing ->
qc -> packaging`` one stage at a time. The only backward move is an
explicit reopen for rework; leaving production is an explicit
``complete_production`` call from ``packaging``.
"""

import logging
from typing import Callable, Dict, Optional, Tuple, Union

from lab_workflow.domain import events
from lab_workflow.domain.exceptions import InvalidTransition, LabNotAssigned
from lab_workflow.domain.model import (
    CaseStatus,
    LabCase,
    Laboratory,
    ProductionStage,
    TransitHistoryEntry,
    TransitStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

PRODUCTION_STAGES: Tuple[ProductionStage, ...] = (
    ProductionStage.DESIGN,
    ProductionStage.PRINTING,
    ProductionStage.MILLING,
    ProductionStage.FINISHING,
    ProductionStage.QC,
    ProductionStage.PACKAGING,
)

NEXT_STAGE: Dict[ProductionStage, ProductionStage] = dict(
    zip(PRODUCTION_STAGES, PRODUCTION_STAGES[1:])
)

PRODUCTION_COMPLETE_NOTE = "production complete"


def stage_index(stage: ProductionStage) -> int:
    return PRODUCTION_STAGES.index(stage)


def parse_stage(case_id: str, current, value: Union[str, ProductionStage]) -> ProductionStage:
    try:
        return ProductionStage(value)
    except ValueError:
        raise InvalidTransition(case_id, current, value, "unknown production stage")


class ProductionStageMachine:
    """Owns a case while ``status = in-production``."""

    def __init__(self, clock: Optional[Callable] = None):
        self.clock = clock or utcnow

    def ensure_lab_changeable(self, case: LabCase) -> None:
        if case.status not in (CaseStatus.IN_PLANNING, CaseStatus.IN_PRODUCTION):
            raise InvalidTransition(
                case.case_id, case.status, case.status, "laboratory can no longer change"
            )

    def assign_laboratory(self, case: LabCase, lab: Laboratory) -> LabCase:
        self.ensure_lab_changeable(case)
        case.lab_id = lab.lab_id
        case.lab = lab.name
        case.events.append(
            events.LaboratoryAssigned(
                case_id=case.case_id,
                company_id=case.company_id,
                procedure=case.procedure,
                lab_id=lab.lab_id,
                occurred_at=self.clock(),
            )
        )
        return case

    def start(self, case: LabCase) -> LabCase:
        """Enter production at ``design``; the case must carry a resolved lab."""
        if case.status != CaseStatus.IN_PLANNING:
            raise InvalidTransition(case.case_id, case.status, CaseStatus.IN_PRODUCTION)
        if not case.lab_id:
            raise LabNotAssigned(case.case_id)

        case.status = CaseStatus.IN_PRODUCTION
        case.production_stage = ProductionStage.DESIGN
        case.events.append(
            events.ProductionStarted(
                case_id=case.case_id,
                company_id=case.company_id,
                lab_id=case.lab_id,
                occurred_at=self.clock(),
            )
        )
        logger.info(f"Case {case.case_id} entered production at lab {case.lab_id}")
        return case

    def advance(self, case: LabCase) -> LabCase:
        self._require_production(case)
        current = case.production_stage
        if current == ProductionStage.PACKAGING:
            raise InvalidTransition(
                case.case_id, current, None, "packaging is the last stage; complete production instead"
            )
        target = NEXT_STAGE[current]
        self._move(case, target, reopened=False)
        return case

    def reopen(self, case: LabCase, target_stage: Union[str, ProductionStage]) -> LabCase:
        """Send a case back to an earlier stage for rework (e.g. QC failure)."""
        self._require_production(case)
        current = case.production_stage
        target = parse_stage(case.case_id, current, target_stage)
        if stage_index(target) >= stage_index(current):
            raise InvalidTransition(
                case.case_id, current, target, "reopen target must be an earlier stage"
            )
        self._move(case, target, reopened=True)
        return case

    def assign_technician(self, case: LabCase, technician_id: Optional[str]) -> LabCase:
        if case.status != CaseStatus.IN_PRODUCTION:
            raise InvalidTransition(
                case.case_id, case.status, case.status, "technicians are assigned during production"
            )
        case.technician_id = technician_id or None
        case.events.append(
            events.TechnicianAssigned(
                case_id=case.case_id,
                company_id=case.company_id,
                technician_id=case.technician_id,
                occurred_at=self.clock(),
            )
        )
        return case

    def complete_production(self, case: LabCase) -> LabCase:
        """Hand a packaged case over to transit at ``pending-pickup``."""
        self._require_production(case)
        if case.production_stage != ProductionStage.PACKAGING:
            raise InvalidTransition(
                case.case_id, case.production_stage, CaseStatus.IN_TRANSIT,
                "production completes from packaging only",
            )

        now = self.clock()
        case.status = CaseStatus.IN_TRANSIT
        case.production_stage = None
        case.transit_status = TransitStatus.PENDING_PICKUP
        case.current_location = case.clinic
        case.append_history(
            TransitHistoryEntry(
                timestamp=now,
                location=case.clinic,
                status=TransitStatus.PENDING_PICKUP,
                notes=PRODUCTION_COMPLETE_NOTE,
            )
        )
        case.events.append(
            events.ProductionCompleted(
                case_id=case.case_id,
                company_id=case.company_id,
                clinic=case.clinic,
                occurred_at=now,
            )
        )
        logger.info(f"Case {case.case_id} completed production, pending pickup")
        return case

    def _require_production(self, case: LabCase):
        if case.status != CaseStatus.IN_PRODUCTION or case.production_stage is None:
            raise InvalidTransition(
                case.case_id, case.status, CaseStatus.IN_PRODUCTION, "case is not in production"
            )

    def _move(self, case: LabCase, target: ProductionStage, reopened: bool):
        previous = case.production_stage
        case.production_stage = target
        case.events.append(
            events.ProductionStageChanged(
                case_id=case.case_id,
                company_id=case.company_id,
                from_stage=previous.value,
                to_stage=target.value,
                reopened=reopened,
                occurred_at=self.clock(),
            )
        )
        logger.debug(f"Case {case.case_id} moved from {previous.value} to {target.value}")
