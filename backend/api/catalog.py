from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from backend.api.deps import get_service
from backend.core.errors import ValidationError
from backend.core.models import DEFAULT_COURSE_WEIGHT, Course, Mentor
from backend.core.pipeline import TrackerService

courses = APIRouter(prefix="/api/courses", tags=["courses"])
mentors = APIRouter(prefix="/api/mentors", tags=["mentors"])


# ---------- courses ----------
@courses.get("")
def list_courses(include_inactive: bool = Query(False, alias="includeInactive"),
                 service: TrackerService = Depends(get_service)):
    return [c.to_dict() for c in service.repos.courses.list(include_inactive=include_inactive)]


@courses.get("/track/{track_id}")
def courses_for_track(track_id: str, service: TrackerService = Depends(get_service)):
    return [c.to_dict() for c in service.repos.courses.by_track(track_id)]


@courses.get("/{course_id}")
def get_course(course_id: str, service: TrackerService = Depends(get_service)):
    return service.repos.courses.get(course_id).to_dict()


@courses.post("", status_code=status.HTTP_201_CREATED)
def create_course(data: Dict[str, Any] = Body(...), service: TrackerService = Depends(get_service)):
    course = Course.from_dict(data)
    course.code = course.code.strip().upper()
    if not course.code:
        raise ValidationError("Course code is required")
    if not course.weight:
        course.weight = DEFAULT_COURSE_WEIGHT
    return service.repos.courses.create(course).to_dict()


@courses.put("/{course_id}")
def update_course(course_id: str, changes: Dict[str, Any] = Body(...),
                  service: TrackerService = Depends(get_service)):
    return service.repos.courses.update_fields(course_id, changes).to_dict()


@courses.delete("/{course_id}")
def delete_course(course_id: str, service: TrackerService = Depends(get_service)):
    course = service.repos.courses.deactivate(course_id)
    return {"success": True, "id": course.id}


# ---------- mentors ----------
@mentors.get("")
def list_mentors(subject: Optional[str] = None, service: TrackerService = Depends(get_service)):
    return [m.to_dict() for m in service.repos.mentors.list(subject=subject)]


@mentors.get("/subject/{subject}")
def mentors_for_subject(subject: str, service: TrackerService = Depends(get_service)):
    return [m.to_dict() for m in service.repos.mentors.list(subject=subject)]


@mentors.get("/{mentor_id}")
def get_mentor(mentor_id: str, service: TrackerService = Depends(get_service)):
    return service.repos.mentors.get(mentor_id).to_dict()


@mentors.post("", status_code=status.HTTP_201_CREATED)
def create_mentor(data: Dict[str, Any] = Body(...), service: TrackerService = Depends(get_service)):
    mentor = Mentor.from_dict(data)
    if not mentor.name.strip():
        raise ValidationError("Mentor name is required")
    return service.repos.mentors.create(mentor).to_dict()


@mentors.put("/{mentor_id}")
def update_mentor(mentor_id: str, changes: Dict[str, Any] = Body(...),
                  service: TrackerService = Depends(get_service)):
    return service.repos.mentors.update_fields(mentor_id, changes).to_dict()


@mentors.delete("/{mentor_id}")
def delete_mentor(mentor_id: str, service: TrackerService = Depends(get_service)):
    service.repos.mentors.delete(mentor_id)
    return {"success": True, "id": mentor_id}
