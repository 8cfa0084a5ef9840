# pylint: disable=redefined-outer-name
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, clear_mappers

from lab_workflow.adapters import orm, redis_adapter
from lab_workflow.adapters.directory import AbstractDirectory
from lab_workflow.adapters.preferences import InMemoryPreferenceStore, RedisPreferenceStore
from lab_workflow.adapters.repository import AbstractRepository
from lab_workflow.domain.model import (
    LabCase,
    Laboratory,
    ProcedureCapacity,
    Technician,
    TechnicianRole,
)
from lab_workflow.service_layer.unit_of_work import AbstractUnitOfWork


class FakeRepository(AbstractRepository):
    def __init__(self, cases=()):
        super().__init__()
        self._cases = {case.case_id: case for case in cases}

    def _add(self, case):
        self._cases[case.case_id] = case

    def _get(self, case_id):
        return self._cases.get(case_id)

    def _list_for_company(self, company_id, status):
        return [
            case for case in self._cases.values()
            if case.company_id == company_id and (status is None or case.status == status)
        ]


class FakeDirectory(AbstractDirectory):
    def __init__(self, laboratories=(), technicians=None):
        self._laboratories = list(laboratories)
        self._technicians = dict(technicians or {})

    def laboratories(self):
        return list(self._laboratories)

    def technicians(self, company_id):
        return list(self._technicians.get(company_id, []))


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, cases=(), laboratories=(), technicians=None, preferences=None):
        self.cases = FakeRepository(cases)
        self.directory = FakeDirectory(laboratories, technicians)
        self.preferences = preferences or InMemoryPreferenceStore()
        self.committed = False

    def __enter__(self):
        # a fresh "transaction" tracks only what it loads
        self.cases.seen = set()
        return super().__enter__()

    def _commit(self):
        self.committed = True

    def rollback(self):
        pass


@pytest.fixture
def lab_alpha():
    return Laboratory(
        lab_id="lab-alpha",
        name="Alpha Dental Lab",
        procedures=(ProcedureCapacity("crown", 20), ProcedureCapacity("bridge", 5)),
    )


@pytest.fixture
def lab_beta():
    return Laboratory(
        lab_id="lab-beta",
        name="Beta Ceramics",
        procedures=(ProcedureCapacity("crown", 30), ProcedureCapacity("veneer", 8)),
    )


@pytest.fixture
def technicians():
    return {
        "co-1": [
            Technician("tech-anna", "Anna Keller", TechnicianRole.TECHNICIAN, 4),
            Technician("tech-ben", "Ben Wyss", TechnicianRole.TECHNICIAN),
            Technician("mgr-clara", "Clara Frei", TechnicianRole.LAB_MANAGER, 2),
        ]
    }


@pytest.fixture
def make_case():
    counter = {"n": 0}

    def _make_case(**overrides):
        counter["n"] += 1
        values = dict(
            case_id=f"C-{counter['n']:04d}",
            company_id="co-1",
            clinic="Zahnarztpraxis Seefeld",
            clinic_id="clinic-seefeld",
            procedure="crown",
            reservation_date=date(2024, 3, 15),
            price=Decimal("450.00"),
        )
        values.update(overrides)
        return LabCase(**values)

    return _make_case


@pytest.fixture
def ticking_clock():
    """Clock advancing one minute per call."""
    state = {"now": datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)}

    def _clock():
        state["now"] = state["now"] + timedelta(minutes=1)
        return state["now"]

    return _clock


@pytest.fixture
def fake_uow_factory(lab_alpha, lab_beta, technicians):
    def _factory(cases=(), laboratories=None, preferences=None):
        return FakeUnitOfWork(
            cases=cases,
            laboratories=[lab_alpha, lab_beta] if laboratories is None else laboratories,
            technicians=technicians,
            preferences=preferences,
        )

    return _factory


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis()


@pytest.fixture(autouse=True)
def fake_publisher(monkeypatch, fake_redis):
    """Case notifications go to an in-process fake Redis in every test."""
    monkeypatch.setattr(redis_adapter, "r", fake_redis)
    return fake_redis


@pytest.fixture
def redis_preferences(fake_redis):
    return RedisPreferenceStore(client=fake_redis)


@pytest.fixture
def sqlite_session_factory(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    engine = create_engine(f"sqlite:///{tmp_path / 'lab_workflow.db'}")
    orm.metadata.create_all(engine)
    orm.start_mappers()

    yield sessionmaker(bind=engine)

    clear_mappers()
    engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_session_factory):
    session = sqlite_session_factory()
    yield session
    session.close()
