# pylint: disable=broad-except
"""
Message bus for the case workflow engine.

A command runs exactly one handler and its failure reaches the caller. The
domain events it raised are then dispatched in order; a failing event handler
is logged and skipped, since the command has already been committed.
"""

from __future__ import annotations
import logging
from typing import Any, List, Dict, Callable, Type, Union, TYPE_CHECKING

from lab_workflow.domain import commands, events
from lab_workflow.domain.commands import Command
from lab_workflow.domain.events import Event
from lab_workflow.domain.exceptions import WorkflowError
from lab_workflow.service_layer import handlers

if TYPE_CHECKING:
    from lab_workflow.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

Message = Union[Command, Event]


class MessageBus:
    def __init__(
        self,
        uow: AbstractUnitOfWork,
        event_handlers: Dict[Type[Event], List[Callable]],
        command_handlers: Dict[Type[Command], Callable],
    ):
        self.uow = uow
        self.event_handlers = event_handlers
        self.command_handlers = command_handlers
        self.queue: List[Message] = []

    def handle(self, message: Message) -> List[Any]:
        """Process ``message`` and every event it causes; returns the command results."""
        results = []
        self.queue = [message]
        while self.queue:
            current = self.queue.pop(0)
            if isinstance(current, Command):
                results.append(self._run_command(current))
            elif isinstance(current, Event):
                self._dispatch_event(current)
            else:
                raise TypeError(f"{current!r} is neither a Command nor an Event")
        return results

    def _run_command(self, command: Command):
        name = type(command).__name__
        logger.debug(f"handling command {command}")
        try:
            handler = self.command_handlers[type(command)]
            result = handler(command, uow=self.uow)
        except WorkflowError as e:
            logger.warning("Command %s rejected: %s (%s)", name, e, e.code)
            raise
        except Exception:
            logger.exception("Exception handling command %s", command)
            raise
        self.queue.extend(self.uow.collect_new_events())
        return result

    def _dispatch_event(self, event: Event):
        for handler in self.event_handlers.get(type(event), []):
            logger.debug(f"handling event {event} with handler {handler.__name__}")
            try:
                handler(event, uow=self.uow)
            except Exception:
                logger.exception("Exception handling event %s", event)
                continue
            self.queue.extend(self.uow.collect_new_events())


def handle(message: Message, uow: AbstractUnitOfWork) -> List[Any]:
    """Run ``message`` on a bus wired with the default handlers."""
    return MessageBus(uow, EVENT_HANDLERS, COMMAND_HANDLERS).handle(message)


# Every successful transition is observable by the external notifier
EVENT_HANDLERS = {
    event_type: [handlers.publish_case_event]
    for event_type in (
        events.LaboratoryAssigned,
        events.ProductionStarted,
        events.ProductionStageChanged,
        events.TechnicianAssigned,
        events.ProductionCompleted,
        events.TransitStatusChanged,
        events.CourierAssigned,
        events.CaseCompleted,
    )
}  # type: Dict[Type[Event], List[Callable]]

COMMAND_HANDLERS = {
    commands.AssignLaboratory: handlers.assign_laboratory,
    commands.ReassignLaboratory: handlers.reassign_laboratory,
    commands.StartProduction: handlers.start_production,
    commands.AdvanceProductionStage: handlers.advance_production_stage,
    commands.ReopenProductionStage: handlers.reopen_production_stage,
    commands.AssignTechnician: handlers.assign_technician,
    commands.CompleteProduction: handlers.complete_production,
    commands.UpdateTransitStatus: handlers.update_transit_status,
    commands.AssignCourier: handlers.assign_courier,
}  # type: Dict[Type[Command], Callable]
