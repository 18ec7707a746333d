from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import Response
from pydantic import BaseModel

from backend.api.deps import get_service
from backend.core.engine import compute_current_average
from backend.core.pipeline import TrackerService
from backend.reporting.pdf import candidate_report, report_filename

router = APIRouter(prefix="/api/candidates", tags=["candidates"])


# --------- Request models ----------
class EnrollmentInput(BaseModel):
    code: str
    cohort: str = ""
    startDate: str = ""
    endDate: str = ""
    assignedBy: str = "Manual"


class EnrollmentStatusInput(BaseModel):
    status: str


class ResultInput(BaseModel):
    code: str
    score: Optional[float] = None
    passed: Optional[bool] = None
    date: str = ""


class NoteInput(BaseModel):
    text: str
    by: str = "System"


# --------- Endpoints ----------
@router.get("")
def list_candidates(service: TrackerService = Depends(get_service)) -> List[Dict[str, Any]]:
    return [c.to_dict() for c in service.list_candidates()]


@router.get("/status/{candidate_status}")
def candidates_by_status(candidate_status: str, service: TrackerService = Depends(get_service)):
    return [c.to_dict() for c in service.list_candidates(candidate_status)]


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
def bulk_create(items: List[Dict[str, Any]] = Body(...), service: TrackerService = Depends(get_service)):
    outcome = service.bulk_create_candidates(items)
    return {"success": [c.to_dict() for c in outcome["success"]], "errors": outcome["errors"]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_candidate(data: Dict[str, Any] = Body(...), service: TrackerService = Depends(get_service)):
    return service.create_candidate(data).to_dict()


@router.get("/{candidate_id}")
def get_candidate(candidate_id: str, service: TrackerService = Depends(get_service)):
    return service.get_candidate(candidate_id).to_dict()


@router.put("/{candidate_id}")
def update_candidate(candidate_id: str, changes: Dict[str, Any] = Body(...),
                     service: TrackerService = Depends(get_service)):
    return service.update_candidate(candidate_id, changes).to_dict()


@router.delete("/{candidate_id}")
def delete_candidate(candidate_id: str, service: TrackerService = Depends(get_service)):
    service.delete_candidate(candidate_id)
    return {"success": True, "id": candidate_id}


@router.get("/{candidate_id}/eligibility")
def eligibility(candidate_id: str, service: TrackerService = Depends(get_service)):
    result = service.eligibility(candidate_id)
    current = compute_current_average(result.candidate, service.repos.courses.list_all())
    return {**result.to_dict(), "currentAverage": current}


@router.post("/{candidate_id}/enrollments", status_code=status.HTTP_201_CREATED)
def assign_enrollment(candidate_id: str, req: EnrollmentInput, service: TrackerService = Depends(get_service)):
    enr = service.assign_enrollment(
        candidate_id, req.code, cohort=req.cohort, start_date=req.startDate,
        end_date=req.endDate, assigned_by=req.assignedBy,
    )
    return enr.to_dict()


@router.put("/{candidate_id}/enrollments/{code}")
def set_enrollment_status(candidate_id: str, code: str, req: EnrollmentStatusInput,
                          service: TrackerService = Depends(get_service)):
    return service.set_enrollment_status(candidate_id, code, req.status).to_dict()


@router.delete("/{candidate_id}/enrollments/{code}")
def remove_enrollment(candidate_id: str, code: str, service: TrackerService = Depends(get_service)):
    service.remove_enrollment(candidate_id, code)
    return {"success": True, "code": code}


@router.post("/{candidate_id}/results")
def record_result(candidate_id: str, req: ResultInput, service: TrackerService = Depends(get_service)):
    return service.record_result(candidate_id, req.code, req.score, req.passed, req.date).to_dict()


@router.post("/{candidate_id}/notes", status_code=status.HTTP_201_CREATED)
def add_note(candidate_id: str, req: NoteInput, service: TrackerService = Depends(get_service)):
    return service.add_note(candidate_id, req.text, req.by).to_dict()


@router.get("/{candidate_id}/report.pdf")
def candidate_pdf(candidate_id: str, by: str = Query("User"), service: TrackerService = Depends(get_service)):
    cand = service.get_candidate(candidate_id)
    pdf = candidate_report(cand, service.repos.courses.list_all(), generated_by=by)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(cand)}"'},
    )
