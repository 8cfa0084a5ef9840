"""
WorkflowEngine - the facade external callers use.

Writes are dispatched as commands through the message bus, one fresh unit of
work per call; reads go through ``lab_workflow.views``.
"""
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from lab_workflow import views
from lab_workflow.domain import commands
from lab_workflow.domain.model import LabCase, ProductionStage, TransitStatus
from lab_workflow.service_layer import messagebus
from lab_workflow.service_layer.unit_of_work import AbstractUnitOfWork, SqlAlchemyUnitOfWork
from lab_workflow.services.billing import BillingRollup
from lab_workflow.services.workload import TechnicianWorkload

logger = logging.getLogger(__name__)


class WorkflowEngine:
    def __init__(self, uow_factory: Callable[[], AbstractUnitOfWork] = SqlAlchemyUnitOfWork):
        self.uow_factory = uow_factory

    def _dispatch(self, command: commands.Command) -> Dict[str, Any]:
        results = messagebus.handle(command, self.uow_factory())
        return results[0]

    # intake

    def add_case(self, case: LabCase) -> str:
        """Store a new case coming from intake; it starts out in planning."""
        with self.uow_factory() as uow:
            case_id = uow.cases.add(case)
            uow.commit()
        logger.info(f"Registered case {case_id} for company {case.company_id}")
        return case_id

    # assignment

    def resolve_lab(self, case_id: str, start_production: bool = True) -> Dict[str, Any]:
        return self._dispatch(commands.AssignLaboratory(case_id, start_production))

    def reassign_lab(self, case_id: str, lab_id: str) -> Dict[str, Any]:
        return self._dispatch(commands.ReassignLaboratory(case_id, lab_id))

    # production

    def start_production(self, case_id: str) -> Dict[str, Any]:
        return self._dispatch(commands.StartProduction(case_id))

    def advance(self, case_id: str) -> Dict[str, Any]:
        return self._dispatch(commands.AdvanceProductionStage(case_id))

    def reopen(self, case_id: str, target_stage: ProductionStage) -> Dict[str, Any]:
        return self._dispatch(commands.ReopenProductionStage(case_id, target_stage))

    def assign_technician(self, case_id: str, technician_id: Optional[str]) -> Dict[str, Any]:
        return self._dispatch(commands.AssignTechnician(case_id, technician_id))

    def complete_production(self, case_id: str) -> Dict[str, Any]:
        return self._dispatch(commands.CompleteProduction(case_id))

    # transit

    def transition(
        self,
        case_id: str,
        transit_status: TransitStatus,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        signed_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._dispatch(
            commands.UpdateTransitStatus(case_id, transit_status, location, notes, signed_by)
        )

    def assign_courier(
        self,
        case_id: str,
        courier_service: Optional[str] = None,
        tracking_number: Optional[str] = None,
        route_id: Optional[str] = None,
        estimated_delivery: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        return self._dispatch(
            commands.AssignCourier(case_id, courier_service, tracking_number, route_id, estimated_delivery)
        )

    # reads

    def get_case(self, case_id: str) -> Optional[Dict[str, Any]]:
        return views.get_case(case_id, self.uow_factory())

    def workload(self, company_id: str) -> List[TechnicianWorkload]:
        return views.technician_workload(company_id, self.uow_factory())

    def production_board(
        self,
        company_id: str,
        stage: Optional[ProductionStage] = None,
        technician_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return views.production_board(company_id, self.uow_factory(), stage, technician_id)

    def transit_board(self, company_id: str, transit_status: Optional[TransitStatus] = None) -> Dict[str, Any]:
        return views.transit_board(company_id, self.uow_factory(), transit_status)

    def transit_routes(self, company_id: str) -> List[Dict[str, Any]]:
        return views.transit_routes(company_id, self.uow_factory())

    def billing_rollup(
        self,
        company_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> BillingRollup:
        return views.billing_rollup(company_id, self.uow_factory(), start_date, end_date)
