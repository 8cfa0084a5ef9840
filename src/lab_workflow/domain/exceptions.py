"""
Typed exceptions raised by the laboratory case workflow engine.

Every exception carries a machine-readable ``code`` class attribute and the
structured context of the failure, so callers (the HTTP entrypoint, intake
flows, retry policies) catch by type and never parse messages.

    WorkflowError
    +-- CaseNotFound                 CASE_NOT_FOUND
    +-- NoCapableLaboratory          NO_CAPABLE_LABORATORY
    +-- LabNotAssigned               LAB_NOT_ASSIGNED
    +-- InvalidTransition            INVALID_TRANSITION
    +-- InvalidTransitTransition     INVALID_TRANSIT_TRANSITION
    +-- ConcurrentModification       CONCURRENT_MODIFICATION
    +-- InvalidDateRange             INVALID_DATE_RANGE

None of these are retried by the engine. ``ConcurrentModification`` means the
caller must re-read the case and decide on a fresh transition.
"""


class WorkflowError(Exception):
    """Base exception for all workflow engine errors."""

    code: str = "WORKFLOW_ERROR"


class CaseNotFound(WorkflowError):
    code: str = "CASE_NOT_FOUND"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case {case_id} not found")


class NoCapableLaboratory(WorkflowError):
    """No candidate laboratory offers the requested procedure."""

    code: str = "NO_CAPABLE_LABORATORY"

    def __init__(self, company_id: str, procedure: str):
        self.company_id = company_id
        self.procedure = procedure
        super().__init__(
            f"No laboratory offers procedure {procedure!r} for company {company_id}"
        )


class LabNotAssigned(WorkflowError):
    """A case tried to enter production without a resolved laboratory."""

    code: str = "LAB_NOT_ASSIGNED"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case {case_id} has no laboratory assigned")


class InvalidTransition(WorkflowError):
    """Production (or coarse status) change not reachable from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, case_id: str, current, attempted, reason: str = ""):
        self.case_id = case_id
        self.current = current
        self.attempted = attempted
        self.reason = reason
        message = f"Case {case_id}: cannot move from {_label(current)} to {_label(attempted)}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidTransitTransition(WorkflowError):
    """Transit status change not reachable from the current transit status."""

    code: str = "INVALID_TRANSIT_TRANSITION"

    def __init__(self, case_id: str, current, attempted):
        self.case_id = case_id
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Case {case_id}: transit status {_label(attempted)} "
            f"is not reachable from {_label(current)}"
        )


class ConcurrentModification(WorkflowError):
    """A transition lost a race against another transition on the same case."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(
            f"Case {case_id} was modified by another transaction; "
            "re-read the case and choose a new transition"
        )


class InvalidDateRange(WorkflowError):
    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"Start date {start} must be on or before end date {end}")


def _label(value) -> str:
    if value is None:
        return "<none>"
    return getattr(value, "value", str(value))
