"""
Spreadsheet imports.

Uploads are parsed once (``/parse``) and the dashboard then sends the rows
back as JSON, first to ``preview`` (dry run, nothing written) and then to
``commit``. Commit re-checks every row against the current data.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from backend.api.deps import get_service, upload_rows
from backend.core.errors import NotFoundError
from backend.core.intake import intake_template_csv
from backend.core.pipeline import TrackerService
from backend.reporting.exports import to_csv

router = APIRouter(prefix="/api/imports", tags=["imports"])

TEMPLATES = {
    "enrollments": (
        ["candidate_email", "candidate_id", "course_code", "cohort", "start_date", "end_date"],
        [["sara.ahmed@example.ae", "", "MATH101", "Cohort 1", "2025-01-15", "2025-03-15"]],
    ),
    "results": (
        ["candidate_email", "candidate_id", "course_code", "cohort", "start_date", "end_date", "passed", "score"],
        [["sara.ahmed@example.ae", "", "MATH101", "Cohort 1", "2025-01-15", "2025-03-15", "yes", "84"]],
    ),
    "results-upload": (
        ["CandidateID", "CourseCode", "Score", "Pass", "Date"],
        [["C-1001", "MATH101", "84", "Pass", "2025-03-15"]],
    ),
}


class RowsRequest(BaseModel):
    rows: List[Dict[str, Any]]
    mapping: Optional[Dict[str, str]] = None
    by: str = ""


@router.post("/parse")
async def parse_upload(file: UploadFile = File(...)):
    rows = await upload_rows(file)
    return {"filename": file.filename, "headers": list(rows[0].keys()), "rows": rows}


@router.get("/templates/{flow}.csv")
def template(flow: str):
    if flow == "intake":
        body = intake_template_csv()
    elif flow in TEMPLATES:
        header, sample = TEMPLATES[flow]
        body = to_csv(header, sample)
    else:
        raise NotFoundError(f"No template for {flow}")
    return Response(
        content="\ufeff" + body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{flow}-template.csv"'},
    )


# ---------- enroll only ----------
@router.post("/enrollments/preview")
def preview_enrollments(req: RowsRequest, service: TrackerService = Depends(get_service)):
    return service.preview_enrollments(req.rows).to_dict()


@router.post("/enrollments/commit")
def commit_enrollments(req: RowsRequest, service: TrackerService = Depends(get_service)):
    return service.commit_enrollments(req.rows, by=req.by or "Bulk Enroll")


# ---------- enroll + results ----------
@router.post("/results/preview")
def preview_results(req: RowsRequest, service: TrackerService = Depends(get_service)):
    return service.preview_results(req.rows).to_dict()


@router.post("/results/commit")
def commit_results(req: RowsRequest, service: TrackerService = Depends(get_service)):
    return service.commit_results(req.rows)


# ---------- trainer results upload ----------
@router.post("/results-upload/preview")
def preview_results_upload(req: RowsRequest, service: TrackerService = Depends(get_service)):
    return service.preview_results_upload(req.rows).to_dict()


@router.post("/results-upload/commit")
def commit_results_upload(req: RowsRequest, service: TrackerService = Depends(get_service)):
    return service.commit_results_upload(req.rows)


# ---------- intake ----------
@router.post("/intake/preview")
def preview_intake(req: RowsRequest, service: TrackerService = Depends(get_service)):
    return service.preview_intake(req.rows, req.mapping).to_dict()


@router.post("/intake/commit")
def commit_intake(req: RowsRequest, service: TrackerService = Depends(get_service)):
    created = service.commit_intake(req.rows, req.mapping)
    return {"created": len(created), "candidates": [c.to_dict() for c in created]}
