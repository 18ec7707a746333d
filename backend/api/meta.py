from typing import Any, Dict

from fastapi import APIRouter

from backend.core.models import (
    MAIN_STAGES,
    ROLE_PAGES,
    SUBJECTS,
    TRACKS,
    ApplicantStatus,
    CandidateStatus,
    EnrollmentStatus,
    HiringStage,
)

router = APIRouter(prefix="/api/meta", tags=["meta"])


def _tracks():
    return [{"id": t.id, "name": t.name, "minAverage": t.min_average} for t in TRACKS]


@router.get("")
def meta() -> Dict[str, Any]:
    """Static vocabularies the dashboard renders its pickers from."""
    return {
        "tracks": _tracks(),
        "subjects": SUBJECTS,
        "candidateStatuses": [s.value for s in CandidateStatus],
        "mainStages": MAIN_STAGES,
        "enrollmentStatuses": [s.value for s in EnrollmentStatus],
        "applicantStatuses": [s.value for s in ApplicantStatus],
        "hiringStages": [s.value for s in HiringStage],
        "rolePages": {role.value: pages for role, pages in ROLE_PAGES.items()},
    }


@router.get("/tracks")
def tracks():
    return _tracks()
