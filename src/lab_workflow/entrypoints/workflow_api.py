"""
Laboratory Workflow API Entrypoint - Thin API with Command Dispatch
"""
import config
from typing import Any, Dict, List, Optional
from sqlalchemy import create_engine
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging
from datetime import date, datetime, timezone
from lab_workflow.adapters import orm
from lab_workflow.domain import exceptions
from lab_workflow.domain.model import ProductionStage, TransitStatus
from lab_workflow.service_layer.engine import WorkflowEngine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Laboratory Workflow API",
    description="Case assignment, production, transit and billing for dental laboratories",
    version="1.0.0"
)

ERROR_STATUS = {
    exceptions.CaseNotFound: 404,
    exceptions.LabNotAssigned: 409,
    exceptions.InvalidTransition: 409,
    exceptions.InvalidTransitTransition: 409,
    exceptions.ConcurrentModification: 409,
    exceptions.NoCapableLaboratory: 422,
    exceptions.InvalidDateRange: 422,
}


@app.on_event("startup")
async def startup_event():
    engine = create_engine(config.get_postgres_uri())
    orm.metadata.create_all(engine)
    orm.start_mappers()
    logger.info("✓ Workflow database initialized")


@app.exception_handler(exceptions.WorkflowError)
async def workflow_error_handler(request: Request, exc: exceptions.WorkflowError):
    return JSONResponse(
        status_code=ERROR_STATUS.get(type(exc), 400),
        content={"code": exc.code, "detail": str(exc)},
    )


def get_engine() -> WorkflowEngine:
    return WorkflowEngine()


# ---------- Request/Response models ----------

class TransitHistoryEntryModel(BaseModel):
    timestamp: str
    location: str
    status: str
    notes: Optional[str] = None


class CaseResponse(BaseModel):
    case_id: str
    company_id: str
    clinic_id: Optional[str] = None
    clinic: str
    lab_id: Optional[str] = None
    lab: Optional[str] = None
    patient_id: Optional[str] = None
    doctor: Optional[str] = None
    procedure: str
    priority: str
    status: str
    production_stage: Optional[str] = None
    transit_status: Optional[str] = None
    technician_id: Optional[str] = None
    courier_service: Optional[str] = None
    tracking_number: Optional[str] = None
    route_id: Optional[str] = None
    estimated_delivery: Optional[str] = None
    current_location: Optional[str] = None
    pickup_date: Optional[str] = None
    actual_delivery: Optional[str] = None
    signed_by: Optional[str] = None
    price: Optional[str] = None
    reservation_date: str
    actual_completion: Optional[str] = None
    transit_history: List[TransitHistoryEntryModel] = []
    version_number: int


class AssignLabRequest(BaseModel):
    start_production: bool = True


class ReassignLabRequest(BaseModel):
    lab_id: str


class ReopenRequest(BaseModel):
    target_stage: str        # e.g. "finishing" after a failed QC


class AssignTechnicianRequest(BaseModel):
    technician_id: Optional[str] = None     # None unassigns


class TransitRequest(BaseModel):
    transit_status: str
    location: Optional[str] = None
    notes: Optional[str] = None
    signed_by: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "transit_status": "picked-up",
                "location": "Lab Zurich dispatch",
                "notes": "Courier collected 3 boxes",
            }
        }
    }


class CourierRequest(BaseModel):
    courier_service: Optional[str] = None
    tracking_number: Optional[str] = None
    route_id: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


# ---------- Endpoints ----------

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "lab-workflow-api",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/api/v1/cases/{case_id}", response_model=CaseResponse, summary="Get case by case_id")
def get_case(case_id: str, engine: WorkflowEngine = Depends(get_engine)):
    case = engine.get_case(case_id)
    if case is None:
        raise HTTPException(status_code=404, detail=f"Case with ID {case_id} not found")
    return case


@app.post("/api/v1/cases/{case_id}/assign-lab", response_model=CaseResponse)
def assign_lab(case_id: str, request: Optional[AssignLabRequest] = None, engine: WorkflowEngine = Depends(get_engine)):
    """Resolve the laboratory (sticky per company and procedure) and start production."""
    start = request.start_production if request else True
    return engine.resolve_lab(case_id, start)


@app.post("/api/v1/cases/{case_id}/reassign-lab", response_model=CaseResponse)
def reassign_lab(case_id: str, request: ReassignLabRequest, engine: WorkflowEngine = Depends(get_engine)):
    return engine.reassign_lab(case_id, request.lab_id)


@app.post("/api/v1/cases/{case_id}/production/start", response_model=CaseResponse)
def start_production(case_id: str, engine: WorkflowEngine = Depends(get_engine)):
    return engine.start_production(case_id)


@app.post("/api/v1/cases/{case_id}/production/advance", response_model=CaseResponse)
def advance_stage(case_id: str, engine: WorkflowEngine = Depends(get_engine)):
    return engine.advance(case_id)


@app.post("/api/v1/cases/{case_id}/production/reopen", response_model=CaseResponse)
def reopen_stage(case_id: str, request: ReopenRequest, engine: WorkflowEngine = Depends(get_engine)):
    return engine.reopen(case_id, request.target_stage)


@app.post("/api/v1/cases/{case_id}/production/technician", response_model=CaseResponse)
def assign_technician(case_id: str, request: AssignTechnicianRequest, engine: WorkflowEngine = Depends(get_engine)):
    return engine.assign_technician(case_id, request.technician_id)


@app.post("/api/v1/cases/{case_id}/production/complete", response_model=CaseResponse)
def complete_production(case_id: str, engine: WorkflowEngine = Depends(get_engine)):
    return engine.complete_production(case_id)


@app.post("/api/v1/cases/{case_id}/transit", response_model=CaseResponse)
def update_transit(case_id: str, request: TransitRequest, engine: WorkflowEngine = Depends(get_engine)):
    logger.info(f"Transit update for {case_id}: {request.transit_status}")
    return engine.transition(
        case_id,
        request.transit_status,
        location=request.location,
        notes=request.notes,
        signed_by=request.signed_by,
    )


@app.post("/api/v1/cases/{case_id}/transit/courier", response_model=CaseResponse)
def assign_courier(case_id: str, request: CourierRequest, engine: WorkflowEngine = Depends(get_engine)):
    return engine.assign_courier(
        case_id,
        courier_service=request.courier_service,
        tracking_number=request.tracking_number,
        route_id=request.route_id,
        estimated_delivery=request.estimated_delivery,
    )


@app.get("/api/v1/companies/{company_id}/workload")
def technician_workload(company_id: str, engine: WorkflowEngine = Depends(get_engine)) -> Dict[str, Any]:
    workloads = engine.workload(company_id)
    return {
        "company_id": company_id,
        "technicians": [w.to_dict() for w in workloads],
        "total_count": len(workloads),
    }


@app.get("/api/v1/companies/{company_id}/production-board")
def production_board(
    company_id: str,
    stage: Optional[ProductionStage] = None,
    technician_id: Optional[str] = None,
    engine: WorkflowEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return engine.production_board(company_id, stage, technician_id)


@app.get("/api/v1/companies/{company_id}/transit-board")
def transit_board(
    company_id: str,
    transit_status: Optional[TransitStatus] = None,
    engine: WorkflowEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return engine.transit_board(company_id, transit_status)


@app.get("/api/v1/companies/{company_id}/transit-routes")
def transit_routes(company_id: str, engine: WorkflowEngine = Depends(get_engine)) -> Dict[str, Any]:
    routes = engine.transit_routes(company_id)
    return {"company_id": company_id, "routes": routes, "total_count": len(routes)}


@app.get("/api/v1/companies/{company_id}/billing")
def billing_rollup(
    company_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    engine: WorkflowEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Clinic -> procedure rollup over completed cases reserved within the window."""
    return engine.billing_rollup(company_id, start_date, end_date).to_dict()


def main():
    import uvicorn

    uvicorn.run(app, **config.get_api_host_and_port())


if __name__ == "__main__":
    main()
