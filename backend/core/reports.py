"""
Dashboard and export roll-ups.

Every function re-scans the candidate list it is given; nothing here is
cached or maintained incrementally.
"""
from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from backend.core.engine import EligibilityEngine, compute_final_average, course_by_code
from backend.core.models import (
    AuditEvent,
    Candidate,
    CandidateStatus,
    Correction,
    Course,
    UserRole,
    track_name,
)
from backend.core.stamps import parse_ts, utcnow

STALE_DAYS = 21

HIRING_READY_COLUMNS = [
    "ID", "Name", "Subject", "Emirate", "Email", "Mobile", "Final Average", "Status", "Notes",
]
AUDIT_SNAPSHOT_COLUMNS = [
    "ID", "Name", "Emirate", "Subject", "GPA", "Track", "Status", "Email", "Mobile",
    "Final Average", "LastNoteBy", "LastNoteAt", "LastNote",
]
AUDIT_LOG_COLUMNS = ["ID", "Type", "Timestamp", "Payload"]
COURSE_CATALOG_COLUMNS = [
    "Code", "Title", "Brief", "Tracks", "Weight", "Pass ≥", "Required", "Modality", "Hours", "Active",
]
COURSE_STATS_COLUMNS = [
    "Code", "Title", "Tracks", "Required", "Pass ≥", "Weight", "Active",
    "Enrolled", "With Results", "Passes", "Fails", "Pass Rate %", "Unique Candidates",
]


def status_histogram(candidates: Iterable[Candidate]) -> Dict[str, int]:
    return dict(Counter(c.status.value for c in candidates))


def subject_histogram(candidates: Iterable[Candidate]) -> Dict[str, int]:
    return dict(Counter(c.subject for c in candidates))


def emirate_histogram(candidates: Iterable[Candidate]) -> Dict[str, int]:
    return dict(Counter(c.emirate for c in candidates))


def course_engagement(candidates: Iterable[Candidate]) -> Dict[str, int]:
    """Distinct candidates per course code, counting enrollments and results together."""
    per_course: Dict[str, Set[str]] = {}
    for c in candidates:
        for e in c.enrollments:
            per_course.setdefault(e.code, set()).add(c.id)
        for r in c.course_results:
            per_course.setdefault(r.code, set()).add(c.id)
    return {code: len(ids) for code, ids in per_course.items()}


@dataclass
class PassRate:
    code: str
    title: str
    total: int
    passed: int
    rate: int
    threshold: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "title": self.title,
            "total": self.total,
            "pass": self.passed,
            "rate": self.rate,
            "threshold": self.threshold,
        }


def _percent(part: int, whole: int) -> int:
    return int(part / whole * 100 + 0.5)


def pass_rates(candidates: Sequence[Candidate], courses: Sequence[Course]) -> List[PassRate]:
    """Pass rate of every active required course that has at least one numeric result."""
    out: List[PassRate] = []
    for course in courses:
        if not (course.active and course.is_required):
            continue
        total = passed = 0
        for c in candidates:
            r = c.find_result(course.code)
            if r is None or r.score is None:
                continue
            total += 1
            if r.score >= course.threshold:
                passed += 1
        if total:
            out.append(PassRate(course.code, course.title, total, passed, _percent(passed, total), course.threshold))
    return out


def lowest_pass_rates(candidates: Sequence[Candidate], courses: Sequence[Course], limit: int = 5) -> List[PassRate]:
    return sorted(pass_rates(candidates, courses), key=lambda p: p.rate)[:limit]


def last_activity(candidate: Candidate) -> Optional[datetime]:
    stamps: List[Optional[datetime]] = []
    if candidate.notes_thread:
        stamps.append(parse_ts(candidate.notes_thread[0].ts))
    stamps.extend(parse_ts(e.assigned_ts) for e in candidate.enrollments)
    stamps.extend(parse_ts(r.date) for r in candidate.course_results)
    known = [s for s in stamps if s is not None]
    return max(known) if known else None


def is_stale(candidate: Candidate, now: Optional[datetime] = None, days: int = STALE_DAYS) -> bool:
    ts = last_activity(candidate)
    if ts is None:
        return True
    return (now or utcnow()) - ts > timedelta(days=days)


def stale_candidates(candidates: Iterable[Candidate], now: Optional[datetime] = None,
                     days: int = STALE_DAYS) -> List[Candidate]:
    now = now or utcnow()
    return [c for c in candidates if is_stale(c, now, days)]


def at_risk(candidates: Iterable[Candidate], courses: Sequence[Course]) -> List[Candidate]:
    engine = EligibilityEngine(courses)
    return [r.candidate for r in engine.exceptions(candidates)]


def waiting_without_enrollment(candidates: Iterable[Candidate]) -> List[Candidate]:
    waiting = (CandidateStatus.ASSIGNED, CandidateStatus.IN_TRAINING)
    return [c for c in candidates if c.status in waiting and not c.enrollments]


def pending_trainer_clarifications(corrections: Iterable[Correction]) -> List[Correction]:
    return [x for x in corrections if x.for_role == UserRole.ECAE_TRAINER.value and x.status == "Pending"]


def _top(hist: Dict[str, int], limit: int) -> List[Dict[str, Any]]:
    ranked = sorted(hist.items(), key=lambda kv: kv[1], reverse=True)[:limit]
    return [{"label": k, "value": v} for k, v in ranked]


def dashboard_summary(
    candidates: Sequence[Candidate],
    courses: Sequence[Course],
    corrections: Sequence[Correction] = (),
    now: Optional[datetime] = None,
    stale_days: int = STALE_DAYS,
) -> Dict[str, Any]:
    by_status = status_histogram(candidates)
    by_subject = subject_histogram(candidates)
    engagement = course_engagement(candidates)

    donut = [{"label": s.value, "value": by_status[s.value]} for s in CandidateStatus if by_status.get(s.value)]

    top_courses = []
    for item in _top(engagement, 5):
        course = course_by_code(courses, item["label"])
        label = f"{item['label']} — {course.title if course else ''}".strip()
        top_courses.append({"label": label, "value": item["value"]})

    return {
        "kpis": {
            "totalCandidates": len(candidates),
            "graduated": by_status.get(CandidateStatus.GRADUATED.value, 0),
            "readyForHiring": by_status.get(CandidateStatus.READY_FOR_HIRING.value, 0),
            "totalCourses": len(courses),
            "activeSubjects": len(by_subject),
            "atRisk": len(at_risk(candidates, courses)),
            "stale": len(stale_candidates(candidates, now, stale_days)),
            "waitingNoEnrollment": len(waiting_without_enrollment(candidates)),
            "pendingTrainerClarifications": len(pending_trainer_clarifications(corrections)),
        },
        "statusDonut": donut,
        "topSubjects": _top(by_subject, 5),
        "topCourses": top_courses,
        "lowestPassRates": [p.to_dict() for p in lowest_pass_rates(candidates, courses)],
        "emirates": _top(emirate_histogram(candidates), 8),
    }


# ---------- tabular rows for exports ----------

def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _blank(value: Any) -> Any:
    return "" if value is None else value


def _latest_note(c: Candidate, attr: str) -> str:
    return getattr(c.notes_thread[0], attr) if c.notes_thread else ""


def _tracks_label(course: Course) -> str:
    return ", ".join(track_name(t) for t in course.tracks)


def hiring_ready_rows(candidates: Sequence[Candidate], courses: Sequence[Course]) -> List[Dict[str, Any]]:
    return [
        {
            "ID": c.id,
            "Name": c.name,
            "Subject": c.subject,
            "Emirate": c.emirate,
            "Email": c.email,
            "Mobile": c.mobile,
            "Final Average": _blank(compute_final_average(c, courses)),
            "Status": c.status.value,
            "Notes": _latest_note(c, "text"),
        }
        for c in candidates
        if c.status == CandidateStatus.READY_FOR_HIRING
    ]


def audit_snapshot_rows(candidates: Sequence[Candidate], courses: Sequence[Course]) -> List[Dict[str, Any]]:
    return [
        {
            "ID": c.id,
            "Name": c.name,
            "Emirate": c.emirate,
            "Subject": c.subject,
            "GPA": _blank(c.gpa),
            "Track": _blank(c.track_id),
            "Status": c.status.value,
            "Email": c.email,
            "Mobile": c.mobile,
            "Final Average": _blank(compute_final_average(c, courses)),
            "LastNoteBy": _latest_note(c, "by"),
            "LastNoteAt": _latest_note(c, "ts"),
            "LastNote": _latest_note(c, "text"),
        }
        for c in candidates
    ]


def audit_log_rows(events: Sequence[AuditEvent]) -> List[Dict[str, Any]]:
    return [
        {"ID": e.id, "Type": e.type, "Timestamp": e.ts, "Payload": json.dumps(e.payload, ensure_ascii=False)}
        for e in events
    ]


def course_catalog_rows(courses: Sequence[Course]) -> List[Dict[str, Any]]:
    return [
        {
            "Code": c.code,
            "Title": c.title,
            "Brief": c.brief,
            "Tracks": _tracks_label(c),
            "Weight": _blank(c.weight),
            "Pass ≥": _blank(c.pass_threshold),
            "Required": _yes_no(c.is_required),
            "Modality": c.extra.get("modality") or "",
            "Hours": _blank(c.extra.get("hours")),
            "Active": _yes_no(c.active),
        }
        for c in courses
    ]


def course_stats_rows(candidates: Sequence[Candidate], courses: Sequence[Course]) -> List[Dict[str, Any]]:
    stats: Dict[str, Dict[str, Any]] = {}
    unique: Dict[str, Set[str]] = {}
    for c in courses:
        stats[c.code] = {
            "Code": c.code,
            "Title": c.title,
            "Tracks": _tracks_label(c),
            "Required": _yes_no(c.is_required),
            "Pass ≥": _blank(c.pass_threshold),
            "Weight": _blank(c.weight),
            "Active": _yes_no(c.active),
            "Enrolled": 0,
            "With Results": 0,
            "Passes": 0,
            "Fails": 0,
        }
        unique[c.code] = set()

    for cand in candidates:
        for e in cand.enrollments:
            if e.code not in stats:
                continue
            stats[e.code]["Enrolled"] += 1
            unique[e.code].add(cand.id)
        for r in cand.course_results:
            if r.code not in stats:
                continue
            row = stats[r.code]
            row["With Results"] += 1
            course = course_by_code(courses, r.code)
            if r.score is not None and r.score >= course.threshold:
                row["Passes"] += 1
            else:
                row["Fails"] += 1
            unique[r.code].add(cand.id)

    rows = []
    for code, row in stats.items():
        with_results = row["With Results"]
        row["Pass Rate %"] = _percent(row["Passes"], with_results) if with_results else ""
        row["Unique Candidates"] = len(unique[code])
        rows.append(row)
    return rows
