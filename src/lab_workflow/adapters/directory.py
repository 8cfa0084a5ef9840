"""Read-only laboratory and technician directory."""

import abc
import logging
from typing import Dict, List

from sqlalchemy import text

from lab_workflow.domain.model import Laboratory, ProcedureCapacity, Technician, TechnicianRole

logger = logging.getLogger(__name__)


class AbstractDirectory(abc.ABC):
    @abc.abstractmethod
    def laboratories(self) -> List[Laboratory]:
        """Active laboratories with their procedure capacities."""
        raise NotImplementedError

    @abc.abstractmethod
    def technicians(self, company_id: str) -> List[Technician]:
        """Active technicians and lab managers of a company."""
        raise NotImplementedError


class SqlAlchemyDirectory(AbstractDirectory):
    def __init__(self, session):
        self.session = session

    def laboratories(self) -> List[Laboratory]:
        rows = self.session.execute(
            text("""
                SELECT l.lab_id, l.name, p.name AS procedure, p.daily_capacity
                FROM laboratories l
                LEFT JOIN laboratory_procedures p ON p.lab_id = l.lab_id
                WHERE l.is_active
                ORDER BY l.name, l.lab_id, p.id
            """)
        ).all()

        names: Dict[str, str] = {}
        procedures: Dict[str, List[ProcedureCapacity]] = {}
        for row in rows:
            names[row.lab_id] = row.name
            bucket = procedures.setdefault(row.lab_id, [])
            if row.procedure is not None:
                bucket.append(ProcedureCapacity(name=row.procedure, daily_capacity=row.daily_capacity or 0))

        return [
            Laboratory(lab_id=lab_id, name=name, procedures=tuple(procedures[lab_id]))
            for lab_id, name in names.items()
        ]

    def technicians(self, company_id: str) -> List[Technician]:
        rows = self.session.execute(
            text("""
                SELECT technician_id, name, role, capacity
                FROM technicians
                WHERE company_id = :company_id
                  AND is_active
                  AND role IN ('technician', 'lab-manager')
                ORDER BY name
            """),
            dict(company_id=company_id),
        ).all()
        return [
            Technician(
                technician_id=row.technician_id,
                name=row.name,
                role=TechnicianRole(row.role),
                capacity=row.capacity,
            )
            for row in rows
        ]
