from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel

from backend.api.deps import get_service
from backend.core import reports
from backend.core.errors import NotFoundError
from backend.core.pipeline import TrackerService
from backend.reporting.exports import XLSX_MEDIA_TYPE, to_xlsx

router = APIRouter(prefix="/api/reports", tags=["reports"])
activity = APIRouter(prefix="/api", tags=["activity"])

# export name -> (file name, sheet name)
EXPORTS = {
    "hiring-ready": ("Hiring-Ready.xlsx", "Hiring Ready"),
    "audit-snapshot": ("AuditSnapshot.xlsx", "Audit"),
    "audit-log": ("AuditLog.xlsx", "AuditLog"),
    "courses-catalog": ("Courses-Catalog.xlsx", "Courses"),
    "courses-stats": ("Courses-Stats.xlsx", "Course Stats"),
}


class CorrectionRequest(BaseModel):
    candidateId: str
    text: str
    by: str = ""
    role: str = ""
    forRole: str = "Admin"


class ResolveRequest(BaseModel):
    response: str = ""
    by: str = ""


class ReadAllRequest(BaseModel):
    email: str = ""
    role: str = ""


# ---------- reports ----------
@router.get("/dashboard")
def dashboard(service: TrackerService = Depends(get_service)):
    return service.dashboard()


@router.get("/course-stats")
def course_stats(service: TrackerService = Depends(get_service)):
    return reports.course_stats_rows(service.repos.candidates.list(), service.repos.courses.list_all())


@router.get("/exports/{name}.xlsx")
def export(name: str, service: TrackerService = Depends(get_service)):
    if name not in EXPORTS:
        raise NotFoundError(f"Unknown export {name}")
    filename, sheet = EXPORTS[name]
    candidates = service.repos.candidates.list()
    courses = service.repos.courses.list_all()
    if name == "hiring-ready":
        rows, columns = reports.hiring_ready_rows(candidates, courses), reports.HIRING_READY_COLUMNS
    elif name == "audit-snapshot":
        rows, columns = reports.audit_snapshot_rows(candidates, courses), reports.AUDIT_SNAPSHOT_COLUMNS
    elif name == "audit-log":
        rows, columns = reports.audit_log_rows(service.audit_log()), reports.AUDIT_LOG_COLUMNS
    elif name == "courses-catalog":
        rows, columns = reports.course_catalog_rows(courses), reports.COURSE_CATALOG_COLUMNS
    else:
        rows, columns = reports.course_stats_rows(candidates, courses), reports.COURSE_STATS_COLUMNS
    return Response(
        content=to_xlsx(rows, sheet, columns),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------- audit, corrections, notifications ----------
@activity.get("/audit")
def audit_log(service: TrackerService = Depends(get_service)):
    return [e.to_dict() for e in service.audit_log()]


@activity.get("/corrections")
def list_corrections(forRole: Optional[str] = None, status: Optional[str] = None,
                     service: TrackerService = Depends(get_service)):
    return [c.to_dict() for c in service.list_corrections(for_role=forRole, status=status)]


@activity.post("/corrections", status_code=201)
def submit_correction(req: CorrectionRequest, service: TrackerService = Depends(get_service)):
    return service.submit_correction(req.candidateId, req.text, req.by, req.role, req.forRole).to_dict()


@activity.post("/corrections/{correction_id}/resolve")
def resolve_correction(correction_id: str, req: ResolveRequest, service: TrackerService = Depends(get_service)):
    return service.resolve_correction(correction_id, req.response, req.by).to_dict()


@activity.get("/notifications")
def notifications(email: str = "", role: str = "", service: TrackerService = Depends(get_service)):
    return [n.to_dict() for n in service.repos.notifications.for_user(email, role)]


@activity.post("/notifications/{notification_id}/read")
def mark_read(notification_id: str, service: TrackerService = Depends(get_service)):
    return service.repos.notifications.mark_read(notification_id).to_dict()


@activity.post("/notifications/read-all")
def mark_all_read(req: ReadAllRequest, service: TrackerService = Depends(get_service)):
    return {"updated": service.repos.notifications.mark_all_read(req.email, req.role)}
