"""
Bulk import reconcilers.

Every flow works in two steps. ``analyze_*`` classifies each parsed row
(``add`` / ``update`` / ``skip`` / ``error``) against the current candidates
and catalog without touching them; ``apply_*`` then replays only the
``add`` and ``update`` actions onto candidate objects and reports which
ones changed, so the caller can persist them in one batch write.

Applying is idempotent per (candidate, course): enrollments are matched by
course code before anything is created.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from backend.core.engine import find_course
from backend.core.errors import ValidationError
from backend.core.models import (
    Candidate,
    Course,
    CourseResult,
    Enrollment,
    EnrollmentStatus,
    to_number,
)
from backend.core.stamps import iso, new_id, today

FIELD_ALIASES: Dict[str, str] = {
    "candidate_id": "candidate_id",
    "id": "candidate_id",
    "candidate_email": "candidate_email",
    "email": "candidate_email",
    "candidate": "candidate_email",
    "course_code": "course_code",
    "code": "course_code",
    "cohort": "cohort",
    "start_date": "start_date",
    "startdate": "start_date",
    "end_date": "end_date",
    "enddate": "end_date",
    "passed": "passed",
    "score": "score",
}

RESULTS_UPLOAD_COLUMNS = ["candidateid", "coursecode", "score", "pass", "date"]

_TRUTHY = re.compile(r"^(1|true|yes|y|pass|passed)$", re.IGNORECASE)

ACTIONABLE = ("add", "update")


def canonicalize(row: Dict[str, Any]) -> Dict[str, str]:
    """Map alias column names onto canonical keys; unknown columns are dropped."""
    out: Dict[str, str] = {}
    for k, v in (row or {}).items():
        canon = FIELD_ALIASES.get(str(k).strip().lower())
        if canon:
            out[canon] = "" if v is None else str(v).strip()
    return out


def truthy(value: Any) -> bool:
    return bool(_TRUTHY.match(str(value if value is not None else "").strip()))


@dataclass
class RowAction:
    row: int
    raw: Dict[str, str]
    action: str
    reason: str = ""
    candidate_id: Optional[str] = None
    code: str = ""
    cohort: str = ""
    start_date: str = ""
    end_date: str = ""
    title: str = ""
    required: bool = False
    passed: bool = False
    score: Optional[float] = None
    date: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "raw": self.raw,
            "action": self.action,
            "reason": self.reason,
            "candidateId": self.candidate_id,
            "code": self.code,
            "cohort": self.cohort,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "title": self.title,
            "required": self.required,
            "passed": self.passed,
            "score": self.score,
            "date": self.date,
        }


@dataclass
class ImportPreview:
    actions: List[RowAction]
    stats: Dict[str, int]
    log_lines: List[str] = field(default_factory=list)

    @property
    def applicable(self) -> List[RowAction]:
        return [a for a in self.actions if a.action in ACTIONABLE]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": [a.to_dict() for a in self.actions],
            "stats": self.stats,
            "logLines": self.log_lines,
        }


@dataclass
class ApplySummary:
    added: int = 0
    updated: int = 0
    completed: int = 0
    changed: List[Candidate] = field(default_factory=list)

    def touch(self, candidate: Candidate) -> None:
        if all(c is not candidate for c in self.changed):
            self.changed.append(candidate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": self.added,
            "updated": self.updated,
            "completed": self.completed,
            "candidatesChanged": len(self.changed),
        }


class CandidateIndex:
    """Resolve a row's candidate by exact id first, then by case-insensitive email."""

    def __init__(self, candidates: Iterable[Candidate]):
        self.by_id: Dict[str, Candidate] = {}
        self.by_email: Dict[str, Candidate] = {}
        for c in candidates:
            if c.id:
                self.by_id[str(c.id)] = c
            if c.email:
                self.by_email[c.email.lower()] = c

    def resolve(self, candidate_id: str = "", email: str = "") -> Optional[Candidate]:
        if candidate_id and candidate_id in self.by_id:
            return self.by_id[candidate_id]
        if email:
            return self.by_email.get(email.lower())
        return None


# ---------- enroll-only import ----------

def _classify(
    row_no: int,
    raw: Dict[str, str],
    index: CandidateIndex,
    courses: Sequence[Course],
    counters: Dict[str, int],
    log: List[str],
    start_default: str = "",
) -> RowAction:
    cid = raw.get("candidate_id", "")
    email = raw.get("candidate_email", "").lower()
    code = raw.get("course_code", "").upper()

    if not code or (not cid and not email):
        counters["skipped"] += 1
        log.append(f"SKIP: missing identifier/code -> {raw}")
        return RowAction(row_no, raw, "skip", reason="missing identifier/code")

    cohort = raw.get("cohort", "")
    start_date = raw.get("start_date", "") or start_default
    end_date = raw.get("end_date", "")

    cand = index.resolve(cid, email)
    if cand is None:
        counters["unknownCandidates"] += 1
        log.append(f"NOT FOUND: id={cid or '-'} email={email or '-'}")
        return RowAction(row_no, raw, "error", reason="unknown candidate", code=code)

    course = find_course(courses, code)
    if course is None:
        counters["unknownCourses"] += 1
        log.append(f"UNKNOWN COURSE: {code} for {email or cid}")
        return RowAction(row_no, raw, "error", reason="unknown course", candidate_id=cand.id, code=code)

    action = "update" if cand.find_enrollment(code) is not None else "add"
    counters["willAdd" if action == "add" else "willUpdate"] += 1
    return RowAction(
        row_no, raw, action,
        candidate_id=cand.id,
        code=code,
        cohort=cohort,
        start_date=start_date,
        end_date=end_date,
        title=course.title or code,
        required=course.is_required,
    )


def _new_counters() -> Dict[str, int]:
    return {"willAdd": 0, "willUpdate": 0, "unknownCandidates": 0, "unknownCourses": 0, "skipped": 0}


def analyze_enrollment_rows(
    rows: Sequence[Dict[str, Any]],
    candidates: Sequence[Candidate],
    courses: Sequence[Course],
) -> ImportPreview:
    index = CandidateIndex(candidates)
    counters = _new_counters()
    log: List[str] = []
    actions = [
        _classify(i + 2, canonicalize(raw), index, courses, counters, log)
        for i, raw in enumerate(rows)
    ]
    stats = {"rows": len(rows), **counters}
    return ImportPreview(actions=actions, stats=stats, log_lines=log)


def _upsert_enrollment(
    cand: Candidate,
    act: RowAction,
    assigned_by: str,
    now: Optional[datetime],
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED,
) -> Tuple[Enrollment, bool]:
    enr = cand.find_enrollment(act.code)
    if enr is not None:
        enr.merge(act.cohort, act.start_date, act.end_date)
        return enr, False
    enr = Enrollment(
        id=new_id("ENR"),
        code=act.code,
        title=act.title or act.code,
        required=act.required,
        type="Required" if act.required else "Optional",
        cohort=act.cohort,
        start_date=act.start_date,
        end_date=act.end_date,
        status=status,
        assigned_by=assigned_by,
        assigned_ts=iso(now),
    )
    cand.add_enrollment(enr)
    return enr, True


def apply_enrollment_actions(
    actions: Iterable[RowAction],
    candidates: Sequence[Candidate],
    now: Optional[datetime] = None,
    assigned_by: str = "Bulk Enroll",
) -> ApplySummary:
    by_id = {str(c.id): c for c in candidates}
    summary = ApplySummary()
    for act in actions:
        if act.action not in ACTIONABLE:
            continue
        cand = by_id.get(str(act.candidate_id))
        if cand is None:
            continue
        _, created = _upsert_enrollment(cand, act, assigned_by, now)
        if created:
            summary.added += 1
        else:
            summary.updated += 1
        summary.touch(cand)
    return summary


# ---------- enroll + results import ----------

def analyze_result_rows(
    rows: Sequence[Dict[str, Any]],
    candidates: Sequence[Candidate],
    courses: Sequence[Course],
    now: Optional[datetime] = None,
) -> ImportPreview:
    index = CandidateIndex(candidates)
    counters = _new_counters()
    counters["willComplete"] = 0
    log: List[str] = []
    actions: List[RowAction] = []
    for i, raw in enumerate(rows):
        canon = canonicalize(raw)
        act = _classify(i + 2, canon, index, courses, counters, log, start_default=today(now))
        if act.action in ACTIONABLE:
            act.passed = truthy(canon.get("passed"))
            act.score = to_number(canon.get("score"))
            if act.passed:
                counters["willComplete"] += 1
        actions.append(act)
    stats = {"rows": len(rows), **counters}
    return ImportPreview(actions=actions, stats=stats, log_lines=log)


def apply_result_actions(
    actions: Iterable[RowAction],
    candidates: Sequence[Candidate],
    now: Optional[datetime] = None,
) -> ApplySummary:
    by_id = {str(c.id): c for c in candidates}
    summary = ApplySummary()
    for act in actions:
        if act.action not in ACTIONABLE:
            continue
        cand = by_id.get(str(act.candidate_id))
        if cand is None:
            continue
        status = EnrollmentStatus.COMPLETED if act.passed else EnrollmentStatus.ENROLLED
        enr, created = _upsert_enrollment(cand, act, "Bulk Import", now, status=status)
        if created:
            summary.added += 1
        else:
            summary.updated += 1

        if act.passed:
            date = act.end_date or enr.end_date or today(now)
            cand.put_result(CourseResult(
                code=act.code,
                title=act.title or enr.title or act.code,
                score=act.score,
                passed=True,
                date=date,
            ))
            enr.status = EnrollmentStatus.COMPLETED
            enr.end_date = date
            summary.completed += 1
        summary.touch(cand)
    return summary


# ---------- trainer results upload ----------

def parse_results_upload(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Normalise rows of the CandidateID/CourseCode/Score/Pass/Date template."""
    if rows:
        present = {str(k).strip().lower() for k in rows[0].keys()}
        missing = [c for c in RESULTS_UPLOAD_COLUMNS if c not in present]
        if missing:
            raise ValidationError("Missing required columns. Need: " + ", ".join(RESULTS_UPLOAD_COLUMNS))
    out: List[Dict[str, Any]] = []
    for raw in rows:
        row = {str(k).strip().lower(): ("" if v is None else str(v).strip()) for k, v in raw.items()}
        pass_text = row.get("pass", "").lower()
        out.append({
            "candidateId": row.get("candidateid", ""),
            "courseCode": row.get("coursecode", ""),
            "score": to_number(row.get("score")) or 0,
            "pass": pass_text.startswith("p") or pass_text == "true",
            "date": row.get("date", ""),
        })
    return out


def analyze_results_upload(
    rows: Sequence[Dict[str, Any]],
    candidates: Sequence[Candidate],
) -> ImportPreview:
    parsed = parse_results_upload(rows)
    index = CandidateIndex(candidates)
    actions: List[RowAction] = []
    log: List[str] = []
    unknown = 0
    for i, r in enumerate(parsed):
        raw = {k: str(v) for k, v in r.items()}
        cand = index.resolve(candidate_id=r["candidateId"])
        if cand is None:
            unknown += 1
            log.append(f"Row {i + 2}: Unknown CandidateID {r['candidateId']}")
            actions.append(RowAction(i + 2, raw, "error", reason="unknown candidate", code=r["courseCode"]))
            continue
        action = "update" if cand.find_result(r["courseCode"]) is not None else "add"
        actions.append(RowAction(
            i + 2, raw, action,
            candidate_id=cand.id,
            code=r["courseCode"],
            title=r["courseCode"],
            passed=r["pass"],
            score=r["score"],
            date=r["date"],
        ))
    stats = {
        "rows": len(parsed),
        "willAdd": sum(1 for a in actions if a.action == "add"),
        "willUpdate": sum(1 for a in actions if a.action == "update"),
        "unknownCandidates": unknown,
    }
    return ImportPreview(actions=actions, stats=stats, log_lines=log)


def apply_results_upload(actions: Iterable[RowAction], candidates: Sequence[Candidate]) -> ApplySummary:
    by_id = {str(c.id): c for c in candidates}
    summary = ApplySummary()
    for act in actions:
        if act.action not in ACTIONABLE:
            continue
        cand = by_id.get(str(act.candidate_id))
        if cand is None:
            continue
        cand.put_result(CourseResult(
            code=act.code, title=act.title, score=act.score, passed=act.passed, date=act.date,
        ))
        if act.action == "add":
            summary.added += 1
        else:
            summary.updated += 1
        summary.touch(cand)
    return summary
