"""Unit tests for command handlers and the message bus, against a fake unit of work."""
from unittest.mock import patch

import pytest

from lab_workflow.adapters.preferences import InMemoryPreferenceStore
from lab_workflow.domain import commands, events
from lab_workflow.domain.exceptions import (
    CaseNotFound,
    ConcurrentModification,
    InvalidTransition,
    InvalidTransitTransition,
    NoCapableLaboratory,
)
from lab_workflow.domain.model import CaseStatus, ProductionStage, TransitStatus
from lab_workflow.service_layer import messagebus


def published_events(mock_publish):
    return [call.args[1] for call in mock_publish.call_args_list]


@pytest.fixture
def mock_publish():
    with patch("lab_workflow.service_layer.handlers.redis_adapter.publish") as mock:
        yield mock


class TestAssignLaboratory:

    def test_assigns_lab_and_starts_production(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()
        uow = fake_uow_factory([case])

        [result] = messagebus.handle(commands.AssignLaboratory(case.case_id), uow)

        assert result["lab_id"] == "lab-beta"
        assert result["status"] == "in-production"
        assert result["production_stage"] == "design"
        assert uow.committed is True
        assert uow.preferences.get("co-1", "crown") == "lab-beta"
        assert [type(e) for e in published_events(mock_publish)] == [
            events.LaboratoryAssigned,
            events.ProductionStarted,
        ]

    def test_assign_without_starting(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()
        uow = fake_uow_factory([case])

        messagebus.handle(commands.AssignLaboratory(case.case_id, start_production=False), uow)

        assert case.status == CaseStatus.IN_PLANNING
        assert case.lab_id == "lab-beta"

    def test_sticky_preference_used(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()
        preferences = InMemoryPreferenceStore({("co-1", "crown"): "lab-alpha"})
        uow = fake_uow_factory([case], preferences=preferences)

        [result] = messagebus.handle(commands.AssignLaboratory(case.case_id), uow)

        assert result["lab_id"] == "lab-alpha"
        assert result["lab"] == "Alpha Dental Lab"

    def test_no_capable_lab_is_raised_and_nothing_published(self, make_case, fake_uow_factory, mock_publish):
        case = make_case(procedure="implant")
        uow = fake_uow_factory([case])

        with pytest.raises(NoCapableLaboratory):
            messagebus.handle(commands.AssignLaboratory(case.case_id), uow)

        assert uow.committed is False
        assert case.status == CaseStatus.IN_PLANNING
        mock_publish.assert_not_called()

    def test_unknown_case(self, fake_uow_factory, mock_publish):
        with pytest.raises(CaseNotFound):
            messagebus.handle(commands.AssignLaboratory("C-missing"), fake_uow_factory())

    def test_reassign_overwrites_preference(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()
        uow = fake_uow_factory([case])
        messagebus.handle(commands.AssignLaboratory(case.case_id), uow)

        [result] = messagebus.handle(commands.ReassignLaboratory(case.case_id, "lab-alpha"), uow)

        assert result["lab_id"] == "lab-alpha"
        assert uow.preferences.get("co-1", "crown") == "lab-alpha"

    @pytest.mark.parametrize("command", [
        commands.AssignLaboratory("C-0001"),
        commands.ReassignLaboratory("C-0001", "lab-alpha"),
    ])
    def test_rejected_lab_change_leaves_preference_untouched(self, make_case, fake_uow_factory, mock_publish, command):
        case = make_case(case_id="C-0001", status=CaseStatus.IN_TRANSIT,
                         transit_status=TransitStatus.PENDING_PICKUP, lab_id="lab-beta")
        uow = fake_uow_factory([case])

        with pytest.raises(InvalidTransition):
            messagebus.handle(command, uow)

        assert uow.preferences.get("co-1", "crown") is None
        assert uow.committed is False
        mock_publish.assert_not_called()

    def test_lost_race_leaves_preference_untouched(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()
        uow = fake_uow_factory([case])

        with patch.object(uow, "_commit", side_effect=ConcurrentModification(case.case_id)):
            with pytest.raises(ConcurrentModification):
                messagebus.handle(commands.AssignLaboratory(case.case_id), uow)

        assert uow.preferences.get("co-1", "crown") is None


class TestProductionAndTransitFlow:

    def test_full_lifecycle(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()
        uow = fake_uow_factory([case])
        case_id = case.case_id

        messagebus.handle(commands.AssignLaboratory(case_id), uow)
        messagebus.handle(commands.AssignTechnician(case_id, "tech-anna"), uow)
        for _ in range(5):
            messagebus.handle(commands.AdvanceProductionStage(case_id), uow)
        messagebus.handle(commands.CompleteProduction(case_id), uow)
        messagebus.handle(commands.AssignCourier(case_id, "SwissPost", "99.1", "north"), uow)
        for status in ("picked-up", "in-transit", "out-for-delivery"):
            messagebus.handle(commands.UpdateTransitStatus(case_id, status), uow)
        [result] = messagebus.handle(
            commands.UpdateTransitStatus(case_id, "delivered", location="Reception", signed_by="Dr. Meier"), uow
        )

        assert result["status"] == "completed"
        assert result["transit_status"] == "delivered"
        assert result["signed_by"] == "Dr. Meier"
        assert len(result["transit_history"]) == 5
        assert result["transit_history"][-1]["status"] == "delivered"
        assert isinstance(published_events(mock_publish)[-1], events.CaseCompleted)

    def test_qc_failure_reopens_finishing(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()
        uow = fake_uow_factory([case])
        messagebus.handle(commands.AssignLaboratory(case.case_id), uow)
        for _ in range(4):
            messagebus.handle(commands.AdvanceProductionStage(case.case_id), uow)
        assert case.production_stage == ProductionStage.QC

        [result] = messagebus.handle(commands.ReopenProductionStage(case.case_id, "finishing"), uow)

        assert result["production_stage"] == "finishing"
        last = published_events(mock_publish)[-1]
        assert isinstance(last, events.ProductionStageChanged)
        assert last.reopened is True

    def test_illegal_transit_transition_leaves_case_untouched(self, make_case, fake_uow_factory, mock_publish):
        case = make_case(status=CaseStatus.IN_TRANSIT, transit_status=TransitStatus.PENDING_PICKUP, lab_id="lab-alpha")
        uow = fake_uow_factory([case])

        with pytest.raises(InvalidTransitTransition):
            messagebus.handle(commands.UpdateTransitStatus(case.case_id, "delivered"), uow)

        assert case.transit_status == TransitStatus.PENDING_PICKUP
        assert case.transit_history == ()
        assert uow.committed is False

    def test_advance_in_planning_is_rejected(self, make_case, fake_uow_factory, mock_publish):
        case = make_case()

        with pytest.raises(InvalidTransition):
            messagebus.handle(commands.AdvanceProductionStage(case.case_id), fake_uow_factory([case]))


def test_publish_failure_does_not_undo_transition(make_case, fake_uow_factory):
    case = make_case()
    uow = fake_uow_factory([case])

    with patch(
        "lab_workflow.service_layer.handlers.redis_adapter.publish",
        side_effect=ConnectionError("redis down"),
    ):
        [result] = messagebus.handle(commands.AssignLaboratory(case.case_id), uow)

    assert result["status"] == "in-production"
    assert uow.committed is True


def test_unknown_message_type_is_rejected(fake_uow_factory):
    with pytest.raises(TypeError):
        messagebus.handle(object(), fake_uow_factory())


def test_failing_event_handler_is_skipped(make_case, fake_uow_factory, caplog):
    case = make_case()
    uow = fake_uow_factory([case])
    seen = []

    def broken(event, uow):
        raise RuntimeError("notifier exploded")

    bus = messagebus.MessageBus(
        uow,
        event_handlers={
            events.LaboratoryAssigned: [broken, lambda event, uow: seen.append(event)],
            events.ProductionStarted: [lambda event, uow: seen.append(event)],
        },
        command_handlers=messagebus.COMMAND_HANDLERS,
    )

    [result] = bus.handle(commands.AssignLaboratory(case.case_id))

    assert result["status"] == "in-production"
    assert [type(e) for e in seen] == [events.LaboratoryAssigned, events.ProductionStarted]
    assert "Exception handling event" in caplog.text
