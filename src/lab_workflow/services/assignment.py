"""Laboratory assignment resolver."""

import logging
from typing import Iterable, List

from lab_workflow.adapters.preferences import AbstractPreferenceStore
from lab_workflow.domain.exceptions import NoCapableLaboratory
from lab_workflow.domain.model import Laboratory

logger = logging.getLogger(__name__)


def capable_laboratories(procedure: str, candidate_labs: Iterable[Laboratory]) -> List[Laboratory]:
    return [lab for lab in candidate_labs if lab.offers(procedure)]


def rank_laboratories(procedure: str, labs: Iterable[Laboratory]) -> List[Laboratory]:
    """Highest daily capacity first; ties broken by name with ordinal comparison."""
    return sorted(labs, key=lambda lab: (-lab.capacity_for(procedure), lab.name))


class AssignmentResolver:
    """
    Picks the laboratory for a (company, procedure) pair.

    A stored preference wins as long as the referenced lab still offers the
    procedure. Otherwise the best-ranked capable lab is chosen and written
    back as the new preference.
    """

    def __init__(self, preferences: AbstractPreferenceStore):
        self.preferences = preferences

    def resolve_lab(self, company_id: str, procedure: str, candidate_labs: Iterable[Laboratory]) -> str:
        return self.choose_lab(company_id, procedure, candidate_labs).lab_id

    def choose_lab(self, company_id: str, procedure: str, candidate_labs: Iterable[Laboratory]) -> Laboratory:
        """Like ``resolve_lab`` but returns the whole laboratory record."""
        chosen = self.select_lab(company_id, procedure, candidate_labs)
        self.remember(company_id, procedure, chosen.lab_id)
        return chosen

    def select_lab(self, company_id: str, procedure: str, candidate_labs: Iterable[Laboratory]) -> Laboratory:
        """Pick the laboratory without writing to the preference store."""
        capable = capable_laboratories(procedure, candidate_labs)
        if not capable:
            logger.warning(f"No laboratory offers {procedure!r} for company {company_id}")
            raise NoCapableLaboratory(company_id, procedure)

        preferred_id = self.preferences.get(company_id, procedure)
        if preferred_id is not None:
            for lab in capable:
                if lab.lab_id == preferred_id:
                    logger.info(f"Using sticky preference {preferred_id} for {company_id}/{procedure}")
                    return lab
            logger.info(f"Stored preference {preferred_id} for {company_id}/{procedure} is no longer eligible")

        chosen = rank_laboratories(procedure, capable)[0]
        logger.info(f"Resolved {company_id}/{procedure} to lab {chosen.lab_id}")
        return chosen

    def remember(self, company_id: str, procedure: str, lab_id: str) -> None:
        if self.preferences.get(company_id, procedure) != lab_id:
            self.preferences.set(company_id, procedure, lab_id)

    def eligible_lab(
        self, company_id: str, procedure: str, lab_id: str, candidate_labs: Iterable[Laboratory]
    ) -> Laboratory:
        """The named lab, provided it offers the procedure."""
        for lab in capable_laboratories(procedure, candidate_labs):
            if lab.lab_id == lab_id:
                return lab
        raise NoCapableLaboratory(company_id, procedure)

    def record_preference(
        self, company_id: str, procedure: str, lab_id: str, candidate_labs: Iterable[Laboratory]
    ) -> Laboratory:
        """Store an explicit choice; the lab must offer the procedure."""
        lab = self.eligible_lab(company_id, procedure, lab_id, candidate_labs)
        self.remember(company_id, procedure, lab_id)
        return lab
