import logging
from typing import Any, Dict

import config
from lab_workflow.adapters import redis_adapter
from lab_workflow.domain import commands
from lab_workflow.domain.events import Event
from lab_workflow.domain.exceptions import CaseNotFound
from lab_workflow.domain.model import CaseStatus, LabCase
from lab_workflow.domain.production import ProductionStageMachine
from lab_workflow.domain.transit import TransitStageMachine
from lab_workflow.service_layer.unit_of_work import AbstractUnitOfWork
from lab_workflow.services.assignment import AssignmentResolver

logger = logging.getLogger(__name__)


def _get_case(uow: AbstractUnitOfWork, case_id: str) -> LabCase:
    case = uow.cases.get(case_id)
    if case is None:
        raise CaseNotFound(case_id)
    return case


def assign_laboratory(command: commands.AssignLaboratory, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """
    Resolve the laboratory for a case and, by default, move it into production.

    The resolver reads the sticky (company, procedure) preference. The winner
    is written back to the preference store only once the case is committed.

    Raises:
        CaseNotFound: unknown case_id
        InvalidTransition: the case is past production
        NoCapableLaboratory: no active lab offers the case's procedure
    """
    logger.info(f"Processing AssignLaboratory command for case {command.case_id}")

    with uow:
        case = _get_case(uow, command.case_id)
        production = ProductionStageMachine()
        production.ensure_lab_changeable(case)

        resolver = AssignmentResolver(uow.preferences)
        lab = resolver.select_lab(case.company_id, case.procedure, uow.directory.laboratories())
        production.assign_laboratory(case, lab)
        if command.start_production and case.status == CaseStatus.IN_PLANNING:
            production.start(case)

        uow.commit()
        resolver.remember(case.company_id, case.procedure, lab.lab_id)
        logger.info(f"Committed lab {lab.lab_id} for case {command.case_id}")
        return case.to_dict()


def reassign_laboratory(command: commands.ReassignLaboratory, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """Explicit lab choice; the stored preference is overwritten (last resolved wins)."""
    logger.info(f"Processing ReassignLaboratory command for case {command.case_id} -> {command.lab_id}")

    with uow:
        case = _get_case(uow, command.case_id)
        resolver = AssignmentResolver(uow.preferences)
        lab = resolver.eligible_lab(
            case.company_id, case.procedure, command.lab_id, uow.directory.laboratories()
        )
        ProductionStageMachine().assign_laboratory(case, lab)
        uow.commit()
        resolver.remember(case.company_id, case.procedure, lab.lab_id)
        return case.to_dict()


def start_production(command: commands.StartProduction, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        case = _get_case(uow, command.case_id)
        ProductionStageMachine().start(case)
        uow.commit()
        return case.to_dict()


def advance_production_stage(command: commands.AdvanceProductionStage, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        case = _get_case(uow, command.case_id)
        ProductionStageMachine().advance(case)
        uow.commit()
        logger.info(f"Case {command.case_id} advanced to {case.production_stage.value}")
        return case.to_dict()


def reopen_production_stage(command: commands.ReopenProductionStage, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        case = _get_case(uow, command.case_id)
        ProductionStageMachine().reopen(case, command.target_stage)
        uow.commit()
        logger.info(f"Case {command.case_id} reopened at {command.target_stage}")
        return case.to_dict()


def assign_technician(command: commands.AssignTechnician, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        case = _get_case(uow, command.case_id)
        ProductionStageMachine().assign_technician(case, command.technician_id)
        uow.commit()
        return case.to_dict()


def complete_production(command: commands.CompleteProduction, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        case = _get_case(uow, command.case_id)
        ProductionStageMachine().complete_production(case)
        uow.commit()
        return case.to_dict()


def update_transit_status(command: commands.UpdateTransitStatus, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """
    Move a case along the transit graph and append to its history log.

    Raises:
        CaseNotFound: unknown case_id
        InvalidTransitTransition: target not reachable from the current status
        ConcurrentModification: another transition on the same case won the race
    """
    logger.info(f"Processing UpdateTransitStatus command for case {command.case_id} -> {command.transit_status}")

    with uow:
        case = _get_case(uow, command.case_id)
        TransitStageMachine().transition(
            case,
            command.transit_status,
            location=command.location,
            notes=command.notes,
            signed_by=command.signed_by,
        )
        uow.commit()
        return case.to_dict()


def assign_courier(command: commands.AssignCourier, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        case = _get_case(uow, command.case_id)
        TransitStageMachine().assign_courier(
            case,
            courier_service=command.courier_service,
            tracking_number=command.tracking_number,
            route_id=command.route_id,
            estimated_delivery=command.estimated_delivery,
        )
        uow.commit()
        return case.to_dict()


def publish_case_event(event: Event, uow: AbstractUnitOfWork):
    """
    Publish a case status change to the notification channel.

    External notifier failures must not undo a committed transition, so
    errors are logged and not re-raised.
    """
    try:
        redis_adapter.publish(config.get_case_events_channel(), event)
    except Exception as e:
        logger.error(f"Failed to publish {type(event).__name__} for {event.case_id}: {e}")
