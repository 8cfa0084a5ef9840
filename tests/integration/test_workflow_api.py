"""API tests for the workflow entrypoint, wired to a fake unit of work."""
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from lab_workflow.domain.model import CaseStatus, ProductionStage, TransitStatus
from lab_workflow.entrypoints.workflow_api import app, get_engine
from lab_workflow.service_layer.engine import WorkflowEngine


@pytest.fixture
def uow(fake_uow_factory, make_case):
    return fake_uow_factory([
        make_case(case_id="C-PLAN"),
        make_case(case_id="C-IMPLANT", procedure="implant"),
        make_case(case_id="C-QC", status=CaseStatus.IN_PRODUCTION, lab_id="lab-alpha",
                  production_stage=ProductionStage.QC, technician_id="tech-anna"),
        make_case(case_id="C-SHIP", status=CaseStatus.IN_TRANSIT, lab_id="lab-alpha",
                  transit_status=TransitStatus.PENDING_PICKUP, route_id="north"),
        make_case(case_id="C-DONE", status=CaseStatus.COMPLETED, lab_id="lab-alpha",
                  transit_status=TransitStatus.DELIVERED, price=Decimal("210.00")),
    ])


@pytest.fixture
def client(uow):
    app.dependency_overrides[get_engine] = lambda: WorkflowEngine(lambda: uow)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_get_case(client):
    response = client.get("/api/v1/cases/C-QC")

    assert response.status_code == 200
    assert response.json()["production_stage"] == "qc"


def test_get_unknown_case(client):
    assert client.get("/api/v1/cases/C-NOPE").status_code == 404


def test_assign_lab(client):
    response = client.post("/api/v1/cases/C-PLAN/assign-lab")

    assert response.status_code == 200
    body = response.json()
    assert body["lab_id"] == "lab-beta"
    assert body["status"] == "in-production"


def test_assign_lab_without_capable_lab(client):
    response = client.post("/api/v1/cases/C-IMPLANT/assign-lab", json={"start_production": False})

    assert response.status_code == 422
    assert response.json()["code"] == "NO_CAPABLE_LABORATORY"


def test_command_on_unknown_case(client):
    response = client.post("/api/v1/cases/C-NOPE/production/advance")

    assert response.status_code == 404
    assert response.json()["code"] == "CASE_NOT_FOUND"


def test_reopen_after_qc_failure(client):
    response = client.post("/api/v1/cases/C-QC/production/reopen", json={"target_stage": "finishing"})

    assert response.status_code == 200
    assert response.json()["production_stage"] == "finishing"


def test_invalid_production_transition(client):
    response = client.post("/api/v1/cases/C-PLAN/production/complete")

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"


def test_start_without_lab(client):
    response = client.post("/api/v1/cases/C-PLAN/production/start")

    assert response.status_code == 409
    assert response.json()["code"] == "LAB_NOT_ASSIGNED"


def test_transit_update(client):
    response = client.post(
        "/api/v1/cases/C-SHIP/transit",
        json={"transit_status": "picked-up", "location": "Lab dispatch", "notes": "3 boxes"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["transit_status"] == "picked-up"
    assert body["transit_history"][-1]["notes"] == "3 boxes"


def test_illegal_transit_update(client):
    response = client.post("/api/v1/cases/C-SHIP/transit", json={"transit_status": "delivered"})

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSIT_TRANSITION"


def test_assign_courier(client):
    response = client.post(
        "/api/v1/cases/C-SHIP/transit/courier",
        json={"courier_service": "SwissPost", "estimated_delivery": "2024-03-16T10:00:00+00:00"},
    )

    assert response.status_code == 200
    assert response.json()["courier_service"] == "SwissPost"


def test_read_endpoints(client):
    workload = client.get("/api/v1/companies/co-1/workload").json()
    production = client.get("/api/v1/companies/co-1/production-board", params={"stage": "qc"}).json()
    transit = client.get("/api/v1/companies/co-1/transit-board").json()
    routes = client.get("/api/v1/companies/co-1/transit-routes").json()

    assert workload["technicians"][0]["technician_id"] == "tech-anna"
    assert len(production["stages"]["qc"]) == 1
    assert transit["pending_pickup"] == 1
    assert transit["delivered"] == 1
    assert routes["routes"][0]["route_id"] == "north"


def test_billing(client):
    response = client.get(
        "/api/v1/companies/co-1/billing",
        params={"start_date": date(2024, 3, 1).isoformat(), "end_date": "2024-03-31"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_quantity"] == 1
    assert body["total_amount"] == "210.00"


def test_billing_inverted_range(client):
    response = client.get(
        "/api/v1/companies/co-1/billing",
        params={"start_date": "2024-04-01", "end_date": "2024-03-01"},
    )

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_DATE_RANGE"
