from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from backend.core.errors import ValidationError


# ---------- enumerations ----------

class _Choice(str, Enum):
    """String enum whose value is the display label stored in JSON."""

    @classmethod
    def parse(cls, value: Any):
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        aliases = getattr(cls, "_aliases", lambda: {})()
        if text in aliases:
            return cls(aliases[text])
        try:
            return cls(text)
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(f"Invalid {cls.__name__} '{text}'. Allowed: {allowed}")


class CandidateStatus(_Choice):
    IMPORTED = "Imported"
    ELIGIBLE = "Eligible"
    ASSIGNED = "Assigned"
    IN_TRAINING = "In Training"
    COURSES_COMPLETED = "Courses Completed"
    ASSESSED = "Assessed"
    GRADUATED = "Graduated"
    READY_FOR_HIRING = "Ready for Hiring"
    HIRED_CLOSED = "Hired/Closed"
    ON_HOLD = "On Hold"
    WITHDRAWN = "Withdrawn"
    REJECTED = "Rejected"

    @staticmethod
    def _aliases() -> Dict[str, str]:
        # labels written by older clients
        return {"Deployed": "Hired/Closed", "Ready": "Eligible"}

    @property
    def main_stage(self) -> int:
        return _MAIN_STAGE[self]


_MAIN_STAGE = {
    CandidateStatus.IMPORTED: 0,
    CandidateStatus.ELIGIBLE: 0,
    CandidateStatus.WITHDRAWN: 0,
    CandidateStatus.REJECTED: 0,
    CandidateStatus.ASSIGNED: 1,
    CandidateStatus.ON_HOLD: 1,
    CandidateStatus.IN_TRAINING: 2,
    CandidateStatus.COURSES_COMPLETED: 2,
    CandidateStatus.ASSESSED: 2,
    CandidateStatus.GRADUATED: 3,
    CandidateStatus.READY_FOR_HIRING: 4,
    CandidateStatus.HIRED_CLOSED: 4,
}

MAIN_STAGES = ["Imported", "Assigned", "In Training", "Graduated", "Ready for Hiring"]

TRAINING_STATUSES = {CandidateStatus.ASSIGNED, CandidateStatus.IN_TRAINING}


class EnrollmentStatus(_Choice):
    ENROLLED = "Enrolled"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    WITHDRAWN = "Withdrawn"


class UserRole(_Choice):
    ADMIN = "Admin"
    ECAE_MANAGER = "ECAE Manager"
    ECAE_TRAINER = "ECAE Trainer"
    AUDITOR = "Auditor"
    TEACHER = "Teacher"


ROLE_PAGES: Dict[UserRole, List[str]] = {
    UserRole.ADMIN: [
        "dashboard", "candidates", "courses", "import", "results", "graduation",
        "applicants", "hiring", "enrollment", "mentors", "exports", "users", "settings",
    ],
    UserRole.ECAE_MANAGER: [
        "dashboard", "candidates", "courses", "results", "graduation",
        "applicants", "hiring", "enrollment", "mentors",
    ],
    UserRole.ECAE_TRAINER: ["candidates", "courses", "results", "enrollment"],
    UserRole.AUDITOR: ["dashboard", "candidates"],
    UserRole.TEACHER: ["profile"],
}


class ApplicantStatus(_Choice):
    NONE = "None"
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class HiringStage(_Choice):
    GRADUATED = "Graduated"
    SCREENING = "Screening"
    INTERVIEW = "Interview"
    OFFER_MADE = "Offer Made"
    OFFER_ACCEPTED = "Offer Accepted"
    BACKGROUND_CHECK = "Background Check"
    CONTRACT_SIGNED = "Contract Signed"
    ASSIGNED_SCHOOL = "Assigned School"
    ON_HOLD = "On Hold"
    REJECTED_CLOSED = "Rejected/Closed"


# ---------- tracks and subjects (static configuration) ----------

@dataclass(frozen=True)
class Track:
    id: str
    name: str
    min_average: float


TRACKS: Tuple[Track, ...] = (
    Track("t1", "STEM Core", 70),
    Track("t2", "Languages", 75),
    Track("t3", "ICT", 70),
)

SUBJECTS = [
    "Mathematics", "Science", "Physics", "Chemistry",
    "Biology", "Arabic", "English", "Computer Science",
]

DEFAULT_PASS_THRESHOLD = 70
DEFAULT_COURSE_WEIGHT = 0.3


def track_by_id(track_id: Optional[str]) -> Optional[Track]:
    for t in TRACKS:
        if t.id == track_id:
            return t
    return None


def track_name(track_id: Optional[str]) -> str:
    t = track_by_id(track_id)
    return t.name if t else "—"


def subject_to_track_id(subject: Optional[str]) -> str:
    if subject in ("Arabic", "English"):
        return "t2"
    if subject == "Computer Science":
        return "t3"
    return "t1"


# ---------- value coercion ----------

def to_number(value: Any) -> Optional[float]:
    """Finite numeric value or None. Booleans, blank strings, NaN and infinities are not numbers."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        result = float(text)
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def _key(key: str, default: Any = None, factory: Optional[Callable[[], Any]] = None,
         load: Optional[Callable[[Any], Any]] = None, dump: Optional[Callable[[Any], Any]] = None):
    meta = {"key": key, "load": load, "dump": dump}
    if factory is not None:
        return field(default_factory=factory, metadata=meta)
    return field(default=default, metadata=meta)


class JsonRecord:
    """
    Maps a dataclass to the camelCase JSON documents kept in storage.

    Keys the dataclass does not declare are carried in ``extra`` so that a
    load/save cycle never drops fields written by the dashboard.
    """

    extra: Dict[str, Any]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        remaining = dict(data or {})
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "extra":
                continue
            key = f.metadata.get("key", f.name)
            if key not in remaining:
                continue
            raw = remaining.pop(key)
            load = f.metadata.get("load")
            kwargs[f.name] = load(raw) if load else raw
        kwargs["extra"] = remaining
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            dump = f.metadata.get("dump")
            if dump is not None:
                value = dump(value)
            elif isinstance(value, Enum):
                value = value.value
            out[f.metadata.get("key", f.name)] = value
        return out


def _list_of(model):
    return lambda items: [model.from_dict(x) for x in (items or [])]


def _dump_list(items):
    return [x.to_dict() for x in items]


def _dump_optional(value):
    return value.to_dict() if value is not None else None


# ---------- catalog ----------

@dataclass
class Course(JsonRecord):
    code: str = _key("code", "", load=_to_str)
    title: str = _key("title", "", load=_to_str)
    brief: str = _key("brief", "", load=_to_str)
    weight: Optional[float] = _key("weight", None, load=to_number)
    pass_threshold: Optional[float] = _key("passThreshold", None, load=to_number)
    is_required: bool = _key("isRequired", False, load=_to_bool)
    tracks: List[str] = _key("tracks", factory=list, load=lambda v: list(v or []))
    active: bool = _key("active", True, load=lambda v: v is not False)
    id: Optional[str] = _key("id", None)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def threshold(self) -> float:
        return self.pass_threshold if self.pass_threshold is not None else DEFAULT_PASS_THRESHOLD

    def is_required_for(self, track_id: Optional[str]) -> bool:
        return self.active and self.is_required and track_id in self.tracks


# ---------- candidate ----------

@dataclass
class Enrollment(JsonRecord):
    code: str = _key("code", "", load=_to_str)
    title: str = _key("title", "", load=_to_str)
    cohort: str = _key("cohort", "", load=_to_str)
    start_date: str = _key("startDate", "", load=_to_str)
    end_date: str = _key("endDate", "", load=_to_str)
    status: EnrollmentStatus = _key(
        "status", EnrollmentStatus.ENROLLED,
        load=lambda v: EnrollmentStatus.parse(v) if v else EnrollmentStatus.ENROLLED,
    )
    required: bool = _key("required", False, load=_to_bool)
    type: str = _key("type", "Optional", load=_to_str)
    assigned_by: str = _key("assignedBy", "", load=_to_str)
    assigned_ts: str = _key("assignedTs", "", load=_to_str)
    id: Optional[str] = _key("id", None)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_internship(self) -> bool:
        return (
            bool(self.extra.get("isInternship"))
            or self.code.upper() == "INTERN"
            or "internship" in self.title.lower()
        )

    def merge(self, cohort: str = "", start_date: str = "", end_date: str = "") -> None:
        """Fold new schedule values in; blanks keep what is there, status is untouched."""
        self.cohort = cohort or self.cohort
        self.start_date = start_date or self.start_date
        if end_date:
            self.end_date = end_date


@dataclass
class CourseResult(JsonRecord):
    code: str = _key("code", "", load=_to_str)
    title: str = _key("title", "", load=_to_str)
    score: Optional[float] = _key("score", None, load=to_number)
    passed: bool = _key("pass", False, load=_to_bool)
    date: str = _key("date", "", load=_to_str)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Note(JsonRecord):
    id: str = _key("id", "")
    by: str = _key("by", "", load=_to_str)
    text: str = _key("text", "", load=_to_str)
    ts: str = _key("ts", "", load=_to_str)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HiringRecord(JsonRecord):
    stage: HiringStage = _key("stage", HiringStage.GRADUATED, load=HiringStage.parse)
    updated_at: str = _key("updatedAt", "", load=_to_str)
    notes: str = _key("notes", "", load=_to_str)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Candidate(JsonRecord):
    id: str = _key("id", "", load=_to_str)
    name: str = _key("name", "", load=_to_str)
    email: str = _key("email", "", load=_to_str)
    subject: str = _key("subject", "", load=_to_str)
    track_id: Optional[str] = _key("trackId", None)
    gpa: Optional[float] = _key("gpa", None, load=to_number)
    emirate: str = _key("emirate", "", load=_to_str)
    mobile: str = _key("mobile", "", load=_to_str)
    national_id: str = _key("nationalId", "", load=_to_str)
    status: CandidateStatus = _key(
        "status", CandidateStatus.IMPORTED,
        load=lambda v: CandidateStatus.parse(v) if v else CandidateStatus.IMPORTED,
    )
    enrollments: List[Enrollment] = _key("enrollments", factory=list, load=_list_of(Enrollment), dump=_dump_list)
    course_results: List[CourseResult] = _key(
        "courseResults", factory=list, load=_list_of(CourseResult), dump=_dump_list,
    )
    notes_thread: List[Note] = _key("notesThread", factory=list, load=_list_of(Note), dump=_dump_list)
    hiring: Optional[HiringRecord] = _key(
        "hiring", None, load=lambda v: HiringRecord.from_dict(v) if v else None, dump=_dump_optional,
    )
    created_at: Optional[str] = _key("createdAt", None)
    updated_at: Optional[str] = _key("updatedAt", None)
    extra: Dict[str, Any] = field(default_factory=dict)

    def find_enrollment(self, code: str) -> Optional[Enrollment]:
        wanted = str(code).upper()
        for e in self.enrollments:
            if e.code.upper() == wanted:
                return e
        return None

    def find_result(self, code: str) -> Optional[CourseResult]:
        wanted = str(code).upper()
        for r in self.course_results:
            if r.code.upper() == wanted:
                return r
        return None

    def add_enrollment(self, enrollment: Enrollment) -> None:
        # newest first; assigning moves a fresh candidate into the pipeline
        self.enrollments.insert(0, enrollment)
        if self.status in (CandidateStatus.IMPORTED, CandidateStatus.ELIGIBLE):
            self.status = CandidateStatus.ASSIGNED

    def put_result(self, result: CourseResult) -> None:
        """Keep at most one result per course code; a later upload overwrites."""
        wanted = result.code.upper()
        for i, r in enumerate(self.course_results):
            if r.code.upper() == wanted:
                result.extra = {**r.extra, **result.extra}
                self.course_results[i] = result
                return
        self.course_results.insert(0, result)


# ---------- people ----------

@dataclass
class User(JsonRecord):
    email: str = _key("email", "", load=lambda v: _to_str(v).strip().lower())
    name: str = _key("name", "", load=_to_str)
    role: UserRole = _key("role", UserRole.TEACHER, load=UserRole.parse)
    password: Optional[str] = _key("password", None)
    verified: bool = _key("verified", False, load=bool)
    applicant_status: ApplicantStatus = _key(
        "applicantStatus", ApplicantStatus.NONE,
        load=lambda v: ApplicantStatus.parse(v) if v else ApplicantStatus.NONE,
    )
    interested: bool = _key("interested", False, load=_to_bool)
    docs: Dict[str, Any] = _key("docs", factory=dict, load=lambda v: dict(v or {}))
    candidate_id: Optional[str] = _key("candidateId", None)
    created_at: Optional[str] = _key("createdAt", None)
    updated_at: Optional[str] = _key("updatedAt", None)
    extra: Dict[str, Any] = field(default_factory=dict)

    def public_dict(self) -> Dict[str, Any]:
        data = self.to_dict()
        data.pop("password", None)
        return data


@dataclass
class Mentor(JsonRecord):
    id: str = _key("id", "", load=_to_str)
    name: str = _key("name", "", load=_to_str)
    subject: str = _key("subject", "", load=_to_str)
    email: str = _key("email", "", load=_to_str)
    created_at: Optional[str] = _key("createdAt", None)
    updated_at: Optional[str] = _key("updatedAt", None)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Correction(JsonRecord):
    id: str = _key("id", "", load=_to_str)
    candidate_id: str = _key("candidateId", "", load=_to_str)
    by: str = _key("by", "", load=_to_str)
    role: str = _key("role", "", load=_to_str)
    for_role: str = _key("forRole", "", load=_to_str)
    text: str = _key("text", "", load=_to_str)
    status: str = _key("status", "Pending", load=_to_str)
    ts: str = _key("ts", "", load=_to_str)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuditEvent(JsonRecord):
    id: str = _key("id", "", load=_to_str)
    type: str = _key("type", "", load=_to_str)
    ts: str = _key("ts", "", load=_to_str)
    payload: Dict[str, Any] = _key("payload", factory=dict, load=lambda v: dict(v or {}))
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Notification(JsonRecord):
    id: str = _key("id", "", load=_to_str)
    ts: str = _key("ts", "", load=_to_str)
    to: Dict[str, Any] = _key("to", factory=dict, load=lambda v: dict(v or {}))
    type: str = _key("type", "", load=_to_str)
    title: str = _key("title", "", load=_to_str)
    body: str = _key("body", "", load=_to_str)
    target: Dict[str, Any] = _key("target", factory=dict, load=lambda v: dict(v or {}))
    read: bool = _key("read", False, load=bool)
    extra: Dict[str, Any] = field(default_factory=dict)

    def is_for(self, email: str = "", role: str = "") -> bool:
        to_email = str(self.to.get("email") or "").lower()
        if to_email and email and to_email == email.lower():
            return True
        return bool(role) and self.to.get("role") == role


# ---------- derived results ----------

@dataclass
class RuleResult:
    passed: bool
    explanation: str


@dataclass
class EligibilityResult:
    candidate: Candidate
    track: Optional[Track]
    eligible: bool
    final_average: Optional[float]
    missing_courses: List[str]
    explanations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidateId": self.candidate.id,
            "name": self.candidate.name,
            "trackId": self.candidate.track_id,
            "trackName": self.track.name if self.track else "—",
            "minAverage": self.track.min_average if self.track else None,
            "finalAverage": self.final_average,
            "eligible": self.eligible,
            "missingCourses": self.missing_courses,
            "explanations": self.explanations,
            "status": self.candidate.status.value,
        }
