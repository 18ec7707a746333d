from typing import Any, List, Optional, Sequence

from backend.core.models import Course, Track
from backend.core.rules import AndRule, AverageThresholdRule, CoursePassRule


def required_courses_for_track(courses: Sequence[Course], track_id: Optional[str]) -> List[Course]:
    return [c for c in courses if c.is_required_for(track_id)]


class RuleFactory:
    """
    Build the graduation requirements of a track from the course catalog:
    the track's average threshold plus one pass rule per required course.
    """

    def __init__(self, courses: Sequence[Course]) -> None:
        self.courses = list(courses)

    def for_track(self, track: Track) -> AndRule:
        required = required_courses_for_track(self.courses, track.id)
        rules: List[Any] = [AverageThresholdRule(track.min_average, required)]
        rules.extend(CoursePassRule(c) for c in required)
        return AndRule(*rules)
