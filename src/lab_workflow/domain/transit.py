"""
Transit stage machine and its append-only history log.

    pending-pickup -> picked-up -> in-transit -> out-for-delivery -> delivered
          \\               \\             \\               \\
           +---------------+-------------+---------------+--> failed-delivery
                                                                   |
                          out-for-delivery <-------- retry --------+

``delivered`` is terminal. ``failed-delivery`` never expires on its own; a
caller must retry into ``out-for-delivery``.
"""

import logging
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Union

from lab_workflow.domain import events
from lab_workflow.domain.exceptions import InvalidTransition, InvalidTransitTransition
from lab_workflow.domain.model import (
    CaseStatus,
    LabCase,
    TransitHistoryEntry,
    TransitStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

FORWARD_CHAIN = (
    TransitStatus.PENDING_PICKUP,
    TransitStatus.PICKED_UP,
    TransitStatus.IN_TRANSIT,
    TransitStatus.OUT_FOR_DELIVERY,
    TransitStatus.DELIVERED,
)

TRANSIT_TRANSITIONS: Dict[TransitStatus, FrozenSet[TransitStatus]] = {
    TransitStatus.PENDING_PICKUP: frozenset(
        {TransitStatus.PICKED_UP, TransitStatus.FAILED_DELIVERY}
    ),
    TransitStatus.PICKED_UP: frozenset(
        {TransitStatus.IN_TRANSIT, TransitStatus.FAILED_DELIVERY}
    ),
    TransitStatus.IN_TRANSIT: frozenset(
        {TransitStatus.OUT_FOR_DELIVERY, TransitStatus.FAILED_DELIVERY}
    ),
    TransitStatus.OUT_FOR_DELIVERY: frozenset(
        {TransitStatus.DELIVERED, TransitStatus.FAILED_DELIVERY}
    ),
    TransitStatus.FAILED_DELIVERY: frozenset({TransitStatus.OUT_FOR_DELIVERY}),
    TransitStatus.DELIVERED: frozenset(),
}


def is_legal(current: Optional[TransitStatus], target: TransitStatus) -> bool:
    if current is None:
        return False
    return target in TRANSIT_TRANSITIONS[current]


def replay(history: Iterable[TransitHistoryEntry]) -> Optional[TransitStatus]:
    """Reconstruct the transit status from the log: the status of its last entry."""
    status = None
    for entry in history:
        status = entry.status
    return status


class TransitStageMachine:
    """Owns a case while ``status = in-transit``."""

    def __init__(self, clock: Optional[Callable] = None):
        self.clock = clock or utcnow

    def transition(
        self,
        case: LabCase,
        new_status: Union[str, TransitStatus],
        location: Optional[str] = None,
        notes: Optional[str] = None,
        signed_by: Optional[str] = None,
    ) -> LabCase:
        current = case.transit_status
        try:
            target = TransitStatus(new_status)
        except ValueError:
            raise InvalidTransitTransition(case.case_id, current, new_status)

        if case.status != CaseStatus.IN_TRANSIT or not is_legal(current, target):
            raise InvalidTransitTransition(case.case_id, current, target)

        now = self.clock()
        case.transit_status = target
        if location:
            case.current_location = location
        entry = case.append_history(
            TransitHistoryEntry(
                timestamp=now,
                location=location or case.current_location or "",
                status=target,
                notes=notes,
            )
        )

        if target == TransitStatus.PICKED_UP and case.pickup_date is None:
            case.pickup_date = entry.timestamp

        case.events.append(
            events.TransitStatusChanged(
                case_id=case.case_id,
                company_id=case.company_id,
                from_status=current.value,
                to_status=target.value,
                location=entry.location,
                notes=notes,
                occurred_at=entry.timestamp,
            )
        )

        if target == TransitStatus.DELIVERED:
            self._complete(case, entry.timestamp, signed_by)

        logger.info(f"Case {case.case_id} transit {current.value} -> {target.value}")
        return case

    def assign_courier(
        self,
        case: LabCase,
        courier_service: Optional[str] = None,
        tracking_number: Optional[str] = None,
        route_id: Optional[str] = None,
        estimated_delivery=None,
    ) -> LabCase:
        if case.status != CaseStatus.IN_TRANSIT:
            raise InvalidTransition(
                case.case_id, case.status, case.status, "couriers are assigned while in transit"
            )
        if courier_service is not None:
            case.courier_service = courier_service
        if tracking_number is not None:
            case.tracking_number = tracking_number
        if route_id is not None:
            case.route_id = route_id
        if estimated_delivery is not None:
            case.estimated_delivery = estimated_delivery
        case.events.append(
            events.CourierAssigned(
                case_id=case.case_id,
                company_id=case.company_id,
                courier_service=case.courier_service,
                tracking_number=case.tracking_number,
                route_id=case.route_id,
                occurred_at=self.clock(),
            )
        )
        return case

    def _complete(self, case: LabCase, delivered_at, signed_by: Optional[str]):
        # transit_status stays DELIVERED as the terminal marker of a completed case
        case.status = CaseStatus.COMPLETED
        case.actual_completion = delivered_at
        case.actual_delivery = delivered_at
        if signed_by:
            case.signed_by = signed_by
        case.events.append(
            events.CaseCompleted(
                case_id=case.case_id,
                company_id=case.company_id,
                clinic=case.clinic,
                procedure=case.procedure,
                occurred_at=delivered_at,
            )
        )
