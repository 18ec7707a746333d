from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from backend.api.deps import get_service
from backend.core.pipeline import CLARIFICATION_TEXT, TrackerService

graduation = APIRouter(prefix="/api/graduation", tags=["graduation"])
hiring = APIRouter(prefix="/api/hiring", tags=["hiring"])


class ActorRequest(BaseModel):
    by: str = ""


class ClarificationRequest(BaseModel):
    by: str = "Graduation Review"
    text: str = CLARIFICATION_TEXT


class StageRequest(BaseModel):
    stage: str


class NotesRequest(BaseModel):
    notes: str = ""


# ---------- graduation review ----------
@graduation.get("/exceptions")
def exceptions(service: TrackerService = Depends(get_service)):
    return [r.to_dict() for r in service.graduation_exceptions()]


@graduation.post("/{candidate_id}/force-approve")
def force_approve(candidate_id: str, req: Optional[ActorRequest] = None,
                  service: TrackerService = Depends(get_service)):
    return service.force_approve(candidate_id, by=req.by if req else "").to_dict()


@graduation.post("/{candidate_id}/clarification")
def request_clarification(candidate_id: str, req: Optional[ClarificationRequest] = None,
                          service: TrackerService = Depends(get_service)):
    req = req or ClarificationRequest()
    return service.request_clarification(candidate_id, by=req.by, text=req.text).to_dict()


@graduation.post("/approve-all-valid")
def approve_all_valid(service: TrackerService = Depends(get_service)):
    return {"applied": service.approve_all_valid()}


@graduation.post("/mark-ready-for-hiring")
def mark_ready_for_hiring(service: TrackerService = Depends(get_service)):
    return {"applied": service.mark_ready_for_hiring()}


# ---------- hiring tracker ----------
@hiring.get("")
def hiring_board(q: str = "", stage: Optional[str] = Query(None),
                 service: TrackerService = Depends(get_service)):
    rows = service.hiring_board(q=q, stage=stage)
    return {"rows": [c.to_dict() for c in rows], "kpis": service.hiring_kpis()}


@hiring.put("/{candidate_id}/stage")
def set_stage(candidate_id: str, req: StageRequest, service: TrackerService = Depends(get_service)):
    return service.set_hiring_stage(candidate_id, req.stage).to_dict()


@hiring.put("/{candidate_id}/notes")
def set_notes(candidate_id: str, req: NotesRequest, service: TrackerService = Depends(get_service)):
    return service.set_hiring_notes(candidate_id, req.notes).to_dict()
