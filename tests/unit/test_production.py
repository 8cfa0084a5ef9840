"""Unit tests for the production stage machine."""
import pytest

from lab_workflow.domain import events
from lab_workflow.domain.exceptions import InvalidTransition, LabNotAssigned
from lab_workflow.domain.model import CaseStatus, ProductionStage, TransitStatus
from lab_workflow.domain.production import (
    PRODUCTION_COMPLETE_NOTE,
    PRODUCTION_STAGES,
    ProductionStageMachine,
)


@pytest.fixture
def machine(ticking_clock):
    return ProductionStageMachine(clock=ticking_clock)


@pytest.fixture
def case_in_design(make_case, machine, lab_alpha):
    case = make_case()
    machine.assign_laboratory(case, lab_alpha)
    machine.start(case)
    case.events.clear()
    return case


def advance_to(machine, case, stage):
    while case.production_stage != stage:
        machine.advance(case)


def test_start_requires_laboratory(make_case, machine):
    case = make_case()

    with pytest.raises(LabNotAssigned) as exc_info:
        machine.start(case)

    assert exc_info.value.case_id == case.case_id
    assert case.status == CaseStatus.IN_PLANNING
    assert case.events == []


def test_start_enters_design(make_case, machine, lab_alpha):
    case = make_case()
    machine.assign_laboratory(case, lab_alpha)

    machine.start(case)

    assert case.status == CaseStatus.IN_PRODUCTION
    assert case.production_stage == ProductionStage.DESIGN
    assert case.lab_id == "lab-alpha"
    assert case.lab == "Alpha Dental Lab"
    assert [type(e) for e in case.events] == [events.LaboratoryAssigned, events.ProductionStarted]
    assert case.is_consistent()


def test_start_twice_is_invalid(case_in_design, machine):
    with pytest.raises(InvalidTransition):
        machine.start(case_in_design)


def test_advance_visits_every_stage_in_order(case_in_design, machine):
    visited = [case_in_design.production_stage]
    for _ in range(len(PRODUCTION_STAGES) - 1):
        machine.advance(case_in_design)
        visited.append(case_in_design.production_stage)

    assert tuple(visited) == PRODUCTION_STAGES
    assert [(e.from_stage, e.to_stage) for e in case_in_design.events] == [
        ("design", "printing"),
        ("printing", "milling"),
        ("milling", "finishing"),
        ("finishing", "qc"),
        ("qc", "packaging"),
    ]


def test_advance_from_packaging_fails(case_in_design, machine):
    advance_to(machine, case_in_design, ProductionStage.PACKAGING)

    with pytest.raises(InvalidTransition):
        machine.advance(case_in_design)

    assert case_in_design.production_stage == ProductionStage.PACKAGING


def test_advance_outside_production_fails(make_case, machine):
    with pytest.raises(InvalidTransition):
        machine.advance(make_case())


def test_qc_rework_reopens_finishing(case_in_design, machine):
    advance_to(machine, case_in_design, ProductionStage.QC)
    case_in_design.events.clear()

    machine.reopen(case_in_design, ProductionStage.FINISHING)

    assert case_in_design.production_stage == ProductionStage.FINISHING
    [event] = case_in_design.events
    assert event.reopened is True
    assert (event.from_stage, event.to_stage) == ("qc", "finishing")

    machine.advance(case_in_design)
    assert case_in_design.production_stage == ProductionStage.QC


def test_reopen_accepts_stage_value(case_in_design, machine):
    advance_to(machine, case_in_design, ProductionStage.MILLING)

    machine.reopen(case_in_design, "design")

    assert case_in_design.production_stage == ProductionStage.DESIGN


@pytest.mark.parametrize("target", [ProductionStage.QC, ProductionStage.PACKAGING, "polishing"])
def test_reopen_rejects_same_later_or_unknown_stage(case_in_design, machine, target):
    advance_to(machine, case_in_design, ProductionStage.QC)

    with pytest.raises(InvalidTransition):
        machine.reopen(case_in_design, target)

    assert case_in_design.production_stage == ProductionStage.QC


def test_assign_and_clear_technician(case_in_design, machine):
    machine.assign_technician(case_in_design, "tech-anna")
    assert case_in_design.technician_id == "tech-anna"

    machine.assign_technician(case_in_design, None)
    assert case_in_design.technician_id is None
    assert [e.technician_id for e in case_in_design.events] == ["tech-anna", None]


def test_assign_technician_outside_production_fails(make_case, machine):
    with pytest.raises(InvalidTransition):
        machine.assign_technician(make_case(), "tech-anna")


def test_complete_production_requires_packaging(case_in_design, machine):
    advance_to(machine, case_in_design, ProductionStage.QC)

    with pytest.raises(InvalidTransition):
        machine.complete_production(case_in_design)

    assert case_in_design.status == CaseStatus.IN_PRODUCTION


def test_complete_production_hands_over_to_transit(case_in_design, machine):
    advance_to(machine, case_in_design, ProductionStage.PACKAGING)

    machine.complete_production(case_in_design)

    assert case_in_design.status == CaseStatus.IN_TRANSIT
    assert case_in_design.production_stage is None
    assert case_in_design.transit_status == TransitStatus.PENDING_PICKUP
    assert case_in_design.current_location == case_in_design.clinic
    [entry] = case_in_design.transit_history
    assert entry.status == TransitStatus.PENDING_PICKUP
    assert entry.location == case_in_design.clinic
    assert entry.notes == PRODUCTION_COMPLETE_NOTE
    assert isinstance(case_in_design.events[-1], events.ProductionCompleted)
    assert case_in_design.is_consistent()


def test_laboratory_cannot_change_once_in_transit(case_in_design, machine, lab_beta):
    advance_to(machine, case_in_design, ProductionStage.PACKAGING)
    machine.complete_production(case_in_design)

    with pytest.raises(InvalidTransition):
        machine.assign_laboratory(case_in_design, lab_beta)

    assert case_in_design.lab_id == "lab-alpha"
