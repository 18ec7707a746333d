import pytest

from backend.core.engine import (
    EligibilityEngine,
    compute_current_average,
    compute_final_average,
    course_passed,
    find_course,
    is_required_for_candidate,
    required_courses_for_track,
    training_progress,
)
from backend.core.models import Course, Enrollment, EnrollmentStatus


def test_single_required_course_average_and_pass(courses, make_candidate):
    math_only = [courses[0]]
    cand = make_candidate(scores={"MATH101": 80})
    assert compute_final_average(cand, math_only) == 80.0
    assert course_passed(cand, courses[0]) is True


def test_unscored_required_course_is_left_out_but_blocks_graduation(courses, make_candidate):
    cand = make_candidate(scores={"MATH101": 80})
    assert compute_final_average(cand, courses) == 80.0

    result = EligibilityEngine(courses).evaluate(cand)
    assert result.eligible is False
    assert result.final_average == 80.0
    assert result.missing_courses == ["SCI201(≥70)"]
    assert "SCI201: no result" in result.explanations


def test_track_without_required_courses_has_no_average(courses, make_candidate):
    cand = make_candidate(track="t3", scores={"ICT050": 95})
    assert required_courses_for_track(courses, "t3") == []
    assert compute_final_average(cand, courses) is None
    assert compute_final_average(None, courses) is None


def test_average_is_weight_normalised_and_rounded_half_up(make_candidate):
    catalog = [
        Course(code="A", weight=0.2, pass_threshold=50, is_required=True, tracks=["t1"]),
        Course(code="B", weight=0.8, pass_threshold=50, is_required=True, tracks=["t1"]),
    ]
    assert compute_final_average(make_candidate(scores={"A": 60, "B": 85}), catalog) == 80.0

    equal = [
        Course(code="A", weight=1, is_required=True, tracks=["t1"]),
        Course(code="B", weight=1, is_required=True, tracks=["t1"]),
    ]
    assert compute_final_average(make_candidate(scores={"A": 70, "B": 71}), equal) == 70.5


def test_non_positive_weight_counts_as_one(make_candidate):
    catalog = [
        Course(code="A", weight=0, is_required=True, tracks=["t1"]),
        Course(code="B", weight=None, is_required=True, tracks=["t1"]),
    ]
    assert compute_final_average(make_candidate(scores={"A": 60, "B": 80}), catalog) == 70.0


def test_inactive_course_is_not_required(courses, make_candidate):
    courses[0].active = False
    assert [c.code for c in required_courses_for_track(courses, "t1")] == ["SCI201"]
    cand = make_candidate(scores={"SCI201": 90})
    assert EligibilityEngine(courses).is_eligible(cand) is True


def test_missing_result_is_not_a_pass_even_with_high_average(courses, make_candidate):
    cand = make_candidate(scores={"MATH101": 100})
    assert course_passed(cand, courses[1]) is False


def test_result_without_score_is_not_a_pass(courses, make_candidate):
    cand = make_candidate(scores={"MATH101": None})
    assert course_passed(cand, courses[0]) is False


def test_adding_a_passing_result_never_breaks_eligibility(courses, make_candidate):
    engine = EligibilityEngine(courses)
    before = make_candidate(scores={"MATH101": 80})
    after = make_candidate(scores={"MATH101": 80, "SCI201": 75})
    assert engine.is_eligible(before) is False
    assert engine.is_eligible(after) is True
    assert engine.evaluate(after).final_average == 77.5


def test_low_average_fails_even_when_every_course_passes(make_candidate):
    catalog = [Course(code="ENG110", weight=1, pass_threshold=60, is_required=True, tracks=["t2"])]
    cand = make_candidate(track="t2", scores={"ENG110": 70})
    result = EligibilityEngine(catalog).evaluate(cand)
    assert result.eligible is False
    assert result.explanations[0] == "average=70.0 < threshold=75"
    assert result.missing_courses == []


def test_unknown_track_is_never_eligible(courses, make_candidate):
    cand = make_candidate(track="t9", scores={"MATH101": 99})
    result = EligibilityEngine(courses).evaluate(cand)
    assert result.eligible is False
    assert result.track is None
    assert result.explanations == ["track 't9' not found"]
    assert result.to_dict()["trackName"] == "—"


def test_exceptions_lists_only_ineligible(courses, make_candidate):
    good = make_candidate(cid="C-1", email="a@x.ae", scores={"MATH101": 90, "SCI201": 90})
    bad = make_candidate(cid="C-2", email="b@x.ae", scores={"MATH101": 90})
    assert [r.candidate.id for r in EligibilityEngine(courses).exceptions([good, bad])] == ["C-2"]


def test_current_average_covers_every_scored_course(courses, make_candidate):
    cand = make_candidate(scores={"MATH101": 80, "ICT050": 60, "XYZ999": 90})
    assert compute_current_average(cand, courses) == 83.5
    assert compute_current_average(make_candidate(), courses) is None


@pytest.mark.parametrize("code, track, expected", [
    ("INTERN", "t1", "Required"),
    ("MATH101", "t1", "Required"),
    ("ENG110", "t1", "Optional"),
    ("ICT050", "t1", "Optional"),
    ("NOPE1", "t1", "Optional"),
])
def test_is_required_for_candidate(courses, make_candidate, code, track, expected):
    assert is_required_for_candidate(code, make_candidate(track=track), courses) == expected


def test_find_course_is_case_insensitive(courses):
    assert find_course(courses, " math101 ").code == "MATH101"
    assert find_course(courses, "MATH999") is None


def test_training_progress_ignores_withdrawn(make_candidate):
    cand = make_candidate(enrollments=[
        Enrollment(code="A", status=EnrollmentStatus.COMPLETED),
        Enrollment(code="B", status=EnrollmentStatus.ENROLLED),
        Enrollment(code="C", status=EnrollmentStatus.WITHDRAWN),
    ])
    assert training_progress(cand) == (1, 2)
