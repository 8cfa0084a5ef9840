"""
Billing rollup: clinic -> procedure -> {quantity, amount} over a date window.

The rollup is a pure function of its inputs. Clinics and procedures are
emitted in first-seen order so exports are reproducible. A case without a
price still counts towards quantity with an amount of zero and is listed in
``price_missing`` for reconciliation.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from lab_workflow.domain.exceptions import InvalidDateRange
from lab_workflow.domain.model import LabCase

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class DateRange:
    """Inclusive on both ends; either bound may be left open."""
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self):
        if self.start is not None and self.end is not None and self.start > self.end:
            raise InvalidDateRange(self.start, self.end)

    def contains(self, day: date) -> bool:
        if isinstance(day, datetime):
            day = day.date()
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


@dataclass(frozen=True)
class ProcedureTotal:
    procedure: str
    quantity: int
    amount: Decimal


@dataclass(frozen=True)
class ClinicRollup:
    clinic_key: str
    clinic: str
    procedures: Tuple[ProcedureTotal, ...]
    quantity: int
    amount: Decimal


@dataclass(frozen=True)
class BillingRollup:
    company_id: str
    date_range: DateRange
    clinics: Tuple[ClinicRollup, ...]
    total_quantity: int
    total_amount: Decimal
    price_missing: Tuple[str, ...] = ()

    @property
    def clinic_count(self) -> int:
        return len(self.clinics)

    @property
    def procedure_count(self) -> int:
        return sum(len(clinic.procedures) for clinic in self.clinics)

    def to_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "start_date": self.date_range.start.isoformat() if self.date_range.start else None,
            "end_date": self.date_range.end.isoformat() if self.date_range.end else None,
            "clinics": [
                {
                    "clinic_key": clinic.clinic_key,
                    "clinic": clinic.clinic,
                    "quantity": clinic.quantity,
                    "amount": str(clinic.amount),
                    "procedures": [
                        {
                            "procedure": p.procedure,
                            "quantity": p.quantity,
                            "amount": str(p.amount),
                        }
                        for p in clinic.procedures
                    ],
                }
                for clinic in self.clinics
            ],
            "total_quantity": self.total_quantity,
            "total_amount": str(self.total_amount),
            "clinic_count": self.clinic_count,
            "procedure_count": self.procedure_count,
            "price_missing": list(self.price_missing),
        }


class _ClinicAccumulator:
    def __init__(self, clinic_key: str, clinic: str):
        self.clinic_key = clinic_key
        self.clinic = clinic
        self.procedures: Dict[str, List] = {}  # procedure -> [quantity, amount]

    def add(self, procedure: str, amount: Decimal):
        cell = self.procedures.setdefault(procedure, [0, ZERO])
        cell[0] += 1
        cell[1] += amount

    def freeze(self) -> ClinicRollup:
        procedures = tuple(
            ProcedureTotal(procedure=name, quantity=quantity, amount=amount)
            for name, (quantity, amount) in self.procedures.items()
        )
        return ClinicRollup(
            clinic_key=self.clinic_key,
            clinic=self.clinic,
            procedures=procedures,
            quantity=sum(p.quantity for p in procedures),
            amount=sum((p.amount for p in procedures), ZERO),
        )


def clinic_keys(cases: Iterable[LabCase]) -> Dict[str, str]:
    """
    Map each case_id to its billing group key.

    Cases are grouped by clinic id. A case without an id joins the first id
    seen for the same clinic name, or is keyed by the name when none exists.
    """
    cases = list(cases)
    id_by_name: Dict[str, str] = {}
    for case in cases:
        if case.clinic_id:
            id_by_name.setdefault(case.clinic, case.clinic_id)
    return {
        case.case_id: case.clinic_id or id_by_name.get(case.clinic, case.clinic)
        for case in cases
    }


def rollup(cases: Iterable[LabCase], company_id: str, date_range: DateRange) -> BillingRollup:
    billable = [
        case for case in cases
        if case.company_id == company_id
        and case.reservation_date is not None
        and date_range.contains(case.reservation_date)
    ]
    keys = clinic_keys(billable)
    clinics: Dict[str, _ClinicAccumulator] = {}
    price_missing = []

    for case in billable:
        if case.price is None:
            logger.warning(f"Case {case.case_id} has no price; billed as 0 pending reconciliation")
            price_missing.append(case.case_id)
            amount = ZERO
        else:
            amount = case.price if isinstance(case.price, Decimal) else Decimal(str(case.price))

        key = keys[case.case_id]
        accumulator = clinics.get(key)
        if accumulator is None:
            accumulator = clinics[key] = _ClinicAccumulator(key, case.clinic)
        accumulator.add(case.procedure, amount)

    frozen = tuple(accumulator.freeze() for accumulator in clinics.values())
    return BillingRollup(
        company_id=company_id,
        date_range=date_range,
        clinics=frozen,
        total_quantity=sum(clinic.quantity for clinic in frozen),
        total_amount=sum((clinic.amount for clinic in frozen), ZERO),
        price_missing=tuple(price_missing),
    )
