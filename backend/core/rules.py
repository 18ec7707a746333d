from typing import List, Optional, Protocol, Sequence

from backend.core.models import Candidate, Course, RuleResult


class GraduationRule(Protocol):
    def evaluate(self, candidate: Candidate) -> RuleResult: ...


def round_half_up(value: float, places: int = 1) -> float:
    factor = 10 ** places
    return int(value * factor + 0.5) / factor


def weighted_average(candidate: Candidate, courses: Sequence[Course]) -> Optional[float]:
    """
    Weighted mean of the candidate's numeric scores over ``courses``.
    A course with no score is left out of both sums (it is not a zero).
    """
    total = 0.0
    weight_sum = 0.0
    for course in courses:
        result = candidate.find_result(course.code)
        if result is None or result.score is None:
            continue
        w = course.weight if course.weight is not None and course.weight > 0 else 1
        total += result.score * w
        weight_sum += w
    if weight_sum == 0:
        return None
    return round_half_up(total / weight_sum)


def course_passed(candidate: Candidate, course: Course) -> bool:
    """A course without a recorded result is not passed."""
    result = candidate.find_result(course.code)
    if result is None or result.score is None:
        return False
    return result.score >= course.threshold


class CoursePassRule:
    def __init__(self, course: Course):
        self.course = course

    def evaluate(self, candidate: Candidate) -> RuleResult:
        code = self.course.code
        result = candidate.find_result(code)
        if result is None:
            return RuleResult(False, f"{code}: no result")
        if not course_passed(candidate, self.course):
            return RuleResult(False, f"{code}: score {result.score} < required {self.course.threshold:g}")
        return RuleResult(True, f"{code} OK (score={result.score})")


class AverageThresholdRule:
    """Final average over the track's required courses must reach the track minimum."""

    def __init__(self, min_average: float, required: Sequence[Course]):
        self.min_average = float(min_average)
        self.required = list(required)

    def evaluate(self, candidate: Candidate) -> RuleResult:
        avg = weighted_average(candidate, self.required) if self.required else None
        if avg is None:
            return RuleResult(False, f"average=n/a < threshold={self.min_average:g}")
        passed = avg >= self.min_average
        return RuleResult(passed, f"average={avg} {'≥' if passed else '<'} threshold={self.min_average:g}")


class AndRule:
    """Passes only when every inner rule passes; explains every inner rule."""

    def __init__(self, *rules):
        self.rules = list(rules)

    def evaluate(self, candidate: Candidate) -> RuleResult:
        exps: List[str] = []
        passed = True
        for r in self.rules:
            rr = r.evaluate(candidate)
            exps.append(rr.explanation)
            if not rr.passed:
                passed = False
        return RuleResult(passed, " | ".join(exps))
