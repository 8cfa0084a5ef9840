import abc
import logging
from typing import List, Optional, Set

from lab_workflow.domain import model

logger = logging.getLogger(__name__)


class AbstractRepository(abc.ABC):
    def __init__(self):
        self.seen = set()  # type: Set[model.LabCase]

    def add(self, case: model.LabCase) -> str:
        self._add(case)
        self.seen.add(case)
        return case.case_id

    def get(self, case_id) -> Optional[model.LabCase]:
        case = self._get(case_id)
        if case:
            self.seen.add(case)
        return case

    def list_for_company(self, company_id: str, status: Optional[model.CaseStatus] = None) -> List[model.LabCase]:
        cases = self._list_for_company(company_id, status)
        for case in cases:
            self.seen.add(case)
        return cases

    @abc.abstractmethod
    def _add(self, case: model.LabCase):
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, case_id) -> Optional[model.LabCase]:
        raise NotImplementedError

    @abc.abstractmethod
    def _list_for_company(self, company_id: str, status: Optional[model.CaseStatus]) -> List[model.LabCase]:
        raise NotImplementedError


class SqlAlchemyRepository(AbstractRepository):
    def __init__(self, session):
        super().__init__()
        self.session = session

    def _add(self, case):
        self.session.add(case)

    def _get(self, case_id):
        return self.session.query(model.LabCase).filter_by(case_id=case_id).first()

    def _list_for_company(self, company_id, status):
        query = self.session.query(model.LabCase).filter_by(company_id=company_id)
        if status is not None:
            query = query.filter_by(status=status)
        return query.order_by(model.LabCase.id).all()
