import pytest

from backend.core.errors import ValidationError
from backend.core.models import (
    Candidate,
    CandidateStatus,
    Course,
    CourseResult,
    Enrollment,
    EnrollmentStatus,
    Notification,
    User,
    subject_to_track_id,
    to_number,
)


def test_status_parse_accepts_labels_and_legacy_aliases():
    assert CandidateStatus.parse("In Training") is CandidateStatus.IN_TRAINING
    assert CandidateStatus.parse("Deployed") is CandidateStatus.HIRED_CLOSED
    assert CandidateStatus.parse("Ready") is CandidateStatus.ELIGIBLE
    with pytest.raises(ValidationError):
        CandidateStatus.parse("Graduate")


def test_main_stage():
    assert CandidateStatus.ELIGIBLE.main_stage == 0
    assert CandidateStatus.ON_HOLD.main_stage == 1
    assert CandidateStatus.ASSESSED.main_stage == 2
    assert CandidateStatus.HIRED_CLOSED.main_stage == 4


@pytest.mark.parametrize("subject, track", [
    ("Arabic", "t2"), ("English", "t2"), ("Computer Science", "t3"), ("Physics", "t1"), (None, "t1"),
])
def test_subject_to_track(subject, track):
    assert subject_to_track_id(subject) == track


def test_to_number():
    assert to_number("3,5") == 3.5
    assert to_number(" 84 ") == 84.0
    assert to_number("") is None
    assert to_number(True) is None
    assert to_number("abc") is None
    assert to_number("nan") is None
    assert to_number("inf") is None
    assert to_number("1e400") is None
    assert to_number(float("nan")) is None
    assert to_number(float("-inf")) is None


def test_candidate_round_trip_keeps_unknown_fields():
    raw = {
        "id": "C-1",
        "name": "Sara",
        "email": "sara@example.ae",
        "status": "Deployed",
        "gpa": "3.4",
        "sourceBatch": "Batch A",
        "courseResults": [{"code": "MATH101", "score": 80, "pass": True, "grader": "T1"}],
    }
    cand = Candidate.from_dict(raw)
    assert cand.status is CandidateStatus.HIRED_CLOSED
    assert cand.gpa == 3.4
    assert cand.course_results[0].passed is True

    out = cand.to_dict()
    assert out["status"] == "Hired/Closed"
    assert out["sourceBatch"] == "Batch A"
    assert out["courseResults"][0]["pass"] is True
    assert out["courseResults"][0]["grader"] == "T1"
    assert out["hiring"] is None


def test_course_defaults():
    course = Course.from_dict({"code": "MATH101", "isRequired": "yes", "tracks": ["t1"]})
    assert course.threshold == 70
    assert course.active is True
    assert course.is_required_for("t1") is True
    assert course.is_required_for("t2") is False


def test_put_result_overwrites_by_code():
    cand = Candidate(id="C-1")
    cand.put_result(CourseResult(code="MATH101", score=50, extra={"note": "first"}))
    cand.put_result(CourseResult(code="math101", score=85, passed=True))
    assert len(cand.course_results) == 1
    assert cand.course_results[0].score == 85
    assert cand.course_results[0].extra == {"note": "first"}


def test_add_enrollment_moves_fresh_candidate_to_assigned():
    cand = Candidate(id="C-1", status=CandidateStatus.ELIGIBLE)
    cand.add_enrollment(Enrollment(code="MATH101"))
    cand.add_enrollment(Enrollment(code="SCI201"))
    assert cand.status is CandidateStatus.ASSIGNED
    assert [e.code for e in cand.enrollments] == ["SCI201", "MATH101"]

    held = Candidate(id="C-2", status=CandidateStatus.ON_HOLD)
    held.add_enrollment(Enrollment(code="MATH101"))
    assert held.status is CandidateStatus.ON_HOLD


def test_enrollment_merge_keeps_status_and_blank_values():
    enr = Enrollment(code="MATH101", cohort="C1", start_date="2025-01-01", status=EnrollmentStatus.COMPLETED)
    enr.merge(cohort="", start_date="2025-02-01", end_date="2025-03-01")
    assert enr.cohort == "C1"
    assert enr.start_date == "2025-02-01"
    assert enr.end_date == "2025-03-01"
    assert enr.status is EnrollmentStatus.COMPLETED


def test_internship_detection():
    assert Enrollment(code="INTERN").is_internship
    assert Enrollment(code="X1", title="School Internship").is_internship
    assert not Enrollment(code="MATH101", title="Methods").is_internship


def test_user_public_dict_hides_password():
    user = User.from_dict({"email": " Admin@Test.Local ", "password": "hash", "role": "Admin"})
    assert user.email == "admin@test.local"
    assert "password" not in user.public_dict()


def test_notification_addressing():
    by_role = Notification(to={"role": "Admin"})
    by_email = Notification(to={"email": "T@x.ae"})
    assert by_role.is_for(role="Admin")
    assert not by_role.is_for(email="t@x.ae", role="Teacher")
    assert by_email.is_for(email="t@x.ae")


def test_stored_flag_strings_load_as_booleans():
    result = CourseResult.from_dict({"code": "MATH101", "score": 40, "pass": "false"})
    assert result.passed is False
    assert CourseResult.from_dict({"code": "MATH101", "pass": "true"}).passed is True
    assert Enrollment.from_dict({"code": "MATH101", "required": "false"}).required is False
    assert Enrollment.from_dict({"code": "MATH101", "required": "yes"}).required is True


def test_find_result_ignores_code_case():
    cand = Candidate(id="C-1", course_results=[CourseResult(code="MATH101", score=80)])
    assert cand.find_result("math101").score == 80
    assert cand.find_result("SCI201") is None
