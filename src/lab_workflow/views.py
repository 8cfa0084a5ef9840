"""
Views for read operations - separate from the command/write path.

Each view takes a snapshot of a company's cases inside one unit of work and
hands it to the pure aggregators. Anything that still references mapped
cases is serialized before the session closes.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import config
from lab_workflow.domain.model import CaseStatus, ProductionStage, TransitStatus
from lab_workflow.service_layer.unit_of_work import AbstractUnitOfWork
from lab_workflow.services import billing, boards, workload

logger = logging.getLogger(__name__)


def get_case(case_id: str, uow: AbstractUnitOfWork) -> Optional[Dict[str, Any]]:
    with uow:
        case = uow.cases.get(case_id)
        return case.to_dict() if case else None


def technician_workload(company_id: str, uow: AbstractUnitOfWork) -> List[workload.TechnicianWorkload]:
    with uow:
        technicians = uow.directory.technicians(company_id)
        cases = uow.cases.list_for_company(company_id, CaseStatus.IN_PRODUCTION)
        return workload.summarize(technicians, cases, config.get_default_technician_capacity())


def production_board(
    company_id: str,
    uow: AbstractUnitOfWork,
    stage: Optional[ProductionStage] = None,
    technician_id: Optional[str] = None,
) -> Dict[str, Any]:
    with uow:
        board = boards.production_board(
            uow.cases.list_for_company(company_id, CaseStatus.IN_PRODUCTION),
            uow.directory.technicians(company_id),
            stage=stage,
            technician_id=technician_id,
            default_capacity=config.get_default_technician_capacity(),
        )
        return {
            "company_id": company_id,
            "total_in_production": board.total_in_production,
            "rush_cases": board.rush_cases,
            "active_technicians": board.active_technicians,
            "total_technicians": board.total_technicians,
            "stages": {
                column.value: [case.to_dict() for case in cases]
                for column, cases in board.cases_by_stage.items()
            },
            "workloads": [w.to_dict() for w in board.workloads],
            "queried_at": datetime.now(timezone.utc).isoformat(),
        }


def transit_board(
    company_id: str,
    uow: AbstractUnitOfWork,
    transit_status: Optional[TransitStatus] = None,
) -> Dict[str, Any]:
    with uow:
        board = boards.transit_board(uow.cases.list_for_company(company_id), transit_status)
        return {
            "company_id": company_id,
            "total": board.total,
            "pending_pickup": board.pending_pickup,
            "in_transit": board.in_transit,
            "out_for_delivery": board.out_for_delivery,
            "delivered": board.delivered,
            "failed_delivery": board.failed_delivery,
            "urgent": board.urgent,
            "cases": [case.to_dict() for case in board.cases],
            "queried_at": datetime.now(timezone.utc).isoformat(),
        }


def transit_routes(company_id: str, uow: AbstractUnitOfWork) -> List[Dict[str, Any]]:
    with uow:
        routes = boards.transit_routes(uow.cases.list_for_company(company_id, CaseStatus.IN_TRANSIT))
        return [
            {
                "route_id": route.route_id,
                "clinics": list(route.clinics),
                "courier_service": route.courier_service,
                "earliest_delivery": route.earliest_delivery.isoformat() if route.earliest_delivery else None,
                "total_cases": route.total_cases,
                "cases": [case.to_dict() for case in route.cases],
            }
            for route in routes
        ]


def billing_rollup(
    company_id: str,
    uow: AbstractUnitOfWork,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> billing.BillingRollup:
    """Rollup over the company's completed (billable) cases."""
    date_range = billing.DateRange(start_date, end_date)
    with uow:
        cases = uow.cases.list_for_company(company_id, CaseStatus.COMPLETED)
        result = billing.rollup(cases, company_id, date_range)

    logger.info(
        f"Billing rollup for {company_id}: {result.total_quantity} cases, "
        f"{len(result.price_missing)} without price"
    )
    return result
