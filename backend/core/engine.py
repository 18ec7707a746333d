from typing import Iterable, List, Optional, Sequence, Tuple

from backend.core.models import (
    Candidate,
    Course,
    EligibilityResult,
    EnrollmentStatus,
    track_by_id,
)
from backend.core.rule_factory import RuleFactory, required_courses_for_track
from backend.core.rules import course_passed, round_half_up, weighted_average

__all__ = [
    "EligibilityEngine",
    "compute_current_average",
    "compute_final_average",
    "course_by_code",
    "course_passed",
    "find_course",
    "is_required_for_candidate",
    "required_courses_for_track",
    "training_progress",
]


def course_by_code(courses: Sequence[Course], code: str) -> Optional[Course]:
    for c in courses:
        if c.code == code:
            return c
    return None


def find_course(courses: Sequence[Course], code: str) -> Optional[Course]:
    """Case-insensitive lookup over the whole catalog, inactive courses included."""
    wanted = str(code or "").strip().upper()
    for c in courses:
        if c.code.upper() == wanted:
            return c
    return None


def compute_final_average(candidate: Optional[Candidate], courses: Sequence[Course]) -> Optional[float]:
    if candidate is None:
        return None
    required = required_courses_for_track(courses, candidate.track_id)
    if not required:
        return None
    return weighted_average(candidate, required)


def compute_current_average(candidate: Optional[Candidate], courses: Sequence[Course]) -> Optional[float]:
    """Progress average over every scored course, required or not."""
    if candidate is None:
        return None
    total = 0.0
    weight_sum = 0.0
    for result in candidate.course_results:
        if result.score is None:
            continue
        course = course_by_code(courses, result.code)
        w = course.weight if course is not None and course.weight is not None and course.weight > 0 else 1
        total += result.score * w
        weight_sum += w
    return round_half_up(total / weight_sum) if weight_sum > 0 else None


def is_required_for_candidate(code: str, candidate: Candidate, courses: Sequence[Course]) -> str:
    if str(code).upper() == "INTERN":
        return "Required"
    course = course_by_code(courses, code)
    if course is None:
        return "Optional"
    return "Required" if course.is_required and candidate.track_id in course.tracks else "Optional"


def training_progress(candidate: Candidate) -> Tuple[int, int]:
    """(completed, assigned) over enrollments that were not withdrawn."""
    assigned = [e for e in candidate.enrollments if e.status != EnrollmentStatus.WITHDRAWN]
    completed = [e for e in assigned if e.status == EnrollmentStatus.COMPLETED]
    return len(completed), len(assigned)


class EligibilityEngine:
    def __init__(self, courses: Sequence[Course]):
        self.courses = list(courses)
        self.factory = RuleFactory(self.courses)

    def evaluate(self, candidate: Candidate) -> EligibilityResult:
        track = track_by_id(candidate.track_id)
        final_avg = compute_final_average(candidate, self.courses)
        required = required_courses_for_track(self.courses, candidate.track_id)
        missing = [f"{c.code}(≥{c.threshold:g})" for c in required if not course_passed(candidate, c)]

        if track is None:
            # an unresolvable track is never eligible by default
            return EligibilityResult(
                candidate=candidate,
                track=None,
                eligible=False,
                final_average=final_avg,
                missing_courses=missing,
                explanations=[f"track '{candidate.track_id}' not found"],
            )

        rr = self.factory.for_track(track).evaluate(candidate)
        return EligibilityResult(
            candidate=candidate,
            track=track,
            eligible=rr.passed,
            final_average=final_avg,
            missing_courses=missing,
            explanations=rr.explanation.split(" | "),
        )

    def is_eligible(self, candidate: Candidate) -> bool:
        return self.evaluate(candidate).eligible

    def evaluate_all(self, candidates: Iterable[Candidate]) -> List[EligibilityResult]:
        return [self.evaluate(c) for c in candidates]

    def exceptions(self, candidates: Iterable[Candidate]) -> List[EligibilityResult]:
        return [r for r in self.evaluate_all(candidates) if not r.eligible]
