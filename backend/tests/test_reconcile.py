from datetime import datetime, timezone

import pytest

from backend.core.errors import ValidationError
from backend.core.models import CandidateStatus, CourseResult, Enrollment, EnrollmentStatus
from backend.core.reconcile import (
    analyze_enrollment_rows,
    analyze_result_rows,
    analyze_results_upload,
    apply_enrollment_actions,
    apply_result_actions,
    apply_results_upload,
    canonicalize,
    parse_results_upload,
    truthy,
)

NOW = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def people(make_candidate):
    return [
        make_candidate(cid="C-1", email="sara@example.ae"),
        make_candidate(cid="C-2", email="omar@example.ae", name="Omar Ali"),
    ]


def _run_enroll(rows, people, courses):
    preview = analyze_enrollment_rows(rows, people, courses)
    return preview, apply_enrollment_actions(preview.applicable, people, now=NOW)


def test_canonicalize_accepts_aliases():
    row = {"Email": "A@x.ae", " CODE ": "math101", "StartDate": "2025-01-01", "Colour": "red"}
    assert canonicalize(row) == {"candidate_email": "A@x.ae", "course_code": "math101", "start_date": "2025-01-01"}


@pytest.mark.parametrize("value, expected", [
    ("Yes", True), ("PASSED", True), ("1", True), ("y", True), ("no", False), ("", False), (None, False),
])
def test_truthy(value, expected):
    assert truthy(value) is expected


def test_enroll_preview_classifies_rows(people, courses):
    people[0].add_enrollment(Enrollment(code="MATH101", title="Mathematics Methods"))
    rows = [
        {"candidate_email": "SARA@example.ae", "course_code": "math101", "cohort": "C2"},
        {"candidate_id": "C-2", "course_code": "SCI201"},
        {"candidate_email": "ghost@example.ae", "course_code": "MATH101"},
        {"candidate_email": "omar@example.ae", "course_code": "BIO999"},
        {"candidate_email": "", "course_code": "MATH101"},
    ]
    preview = analyze_enrollment_rows(rows, people, courses)
    assert [a.action for a in preview.actions] == ["update", "add", "error", "error", "skip"]
    assert preview.actions[2].reason == "unknown candidate"
    assert preview.actions[3].reason == "unknown course"
    assert preview.stats == {
        "rows": 5, "willAdd": 1, "willUpdate": 1, "unknownCandidates": 1, "unknownCourses": 1, "skipped": 1,
    }
    assert [a.row for a in preview.actions] == [2, 3, 4, 5, 6]
    assert any(line.startswith("NOT FOUND") for line in preview.log_lines)


def test_unknown_candidate_row_changes_nothing(people, courses):
    before = [c.to_dict() for c in people]
    preview, summary = _run_enroll([{"candidate_email": "ghost@example.ae", "course_code": "MATH101"}],
                                   people, courses)
    assert preview.actions[0].action == "error"
    assert summary.changed == []
    assert [c.to_dict() for c in people] == before


def test_enroll_commit_is_idempotent(people, courses):
    rows = [
        {"email": "sara@example.ae", "code": "MATH101", "cohort": "C1", "start_date": "2025-01-15"},
        {"email": "omar@example.ae", "code": "SCI201"},
    ]
    _, first = _run_enroll(rows, people, courses)
    assert (first.added, first.updated) == (2, 0)
    snapshot = [[(e.code, e.cohort, e.start_date, e.status) for e in c.enrollments] for c in people]

    _, second = _run_enroll(rows, people, courses)
    assert (second.added, second.updated) == (0, 2)
    assert [[(e.code, e.cohort, e.start_date, e.status) for e in c.enrollments] for c in people] == snapshot

    sara = people[0]
    assert sara.status is CandidateStatus.ASSIGNED
    enr = sara.find_enrollment("MATH101")
    assert enr.required is True
    assert enr.type == "Required"
    assert enr.assigned_by == "Bulk Enroll"
    assert enr.assigned_ts == "2025-03-01T09:30:00.000Z"


def test_update_never_regresses_completed(people, courses):
    people[0].add_enrollment(Enrollment(code="MATH101", status=EnrollmentStatus.COMPLETED, cohort="C1"))
    _run_enroll([{"email": "sara@example.ae", "code": "MATH101", "cohort": "C9"}], people, courses)
    enr = people[0].find_enrollment("MATH101")
    assert enr.status is EnrollmentStatus.COMPLETED
    assert enr.cohort == "C9"


def test_results_import_completes_passed_rows(people, courses):
    rows = [
        {"candidate_email": "sara@example.ae", "course_code": "MATH101", "passed": "Yes", "score": "84"},
        {"candidate_email": "omar@example.ae", "course_code": "SCI201", "passed": "no", "score": "40"},
    ]
    preview = analyze_result_rows(rows, people, courses, now=NOW)
    assert preview.stats["willComplete"] == 1
    assert preview.actions[0].start_date == "2025-03-01"

    summary = apply_result_actions(preview.applicable, people, now=NOW)
    assert (summary.added, summary.completed) == (2, 1)

    sara, omar = people
    enr = sara.find_enrollment("MATH101")
    assert enr.status is EnrollmentStatus.COMPLETED
    assert enr.end_date == "2025-03-01"
    assert enr.assigned_by == "Bulk Import"
    result = sara.find_result("MATH101")
    assert (result.score, result.passed, result.date) == (84.0, True, "2025-03-01")

    assert omar.find_enrollment("SCI201").status is EnrollmentStatus.ENROLLED
    assert omar.find_result("SCI201") is None


def test_results_import_uses_end_date_for_completion(people, courses):
    rows = [{"candidate_id": "C-1", "course_code": "SCI201", "end_date": "2025-02-20", "passed": "true"}]
    preview = analyze_result_rows(rows, people, courses, now=NOW)
    apply_result_actions(preview.applicable, people, now=NOW)
    result = people[0].find_result("SCI201")
    assert result.date == "2025-02-20"
    assert result.score is None


def test_results_upload_requires_template_columns():
    with pytest.raises(ValidationError):
        parse_results_upload([{"CandidateID": "C-1", "CourseCode": "MATH101", "Score": "80"}])


def test_results_upload_parses_pass_column():
    parsed = parse_results_upload([
        {"candidateid": "C-1", "COURSECODE": "MATH101", "Score": "", "Pass": "Pass", "Date": "2025-02-01"},
        {"candidateid": "C-1", "COURSECODE": "SCI201", "Score": "55", "Pass": "FALSE", "Date": ""},
    ])
    assert parsed[0]["pass"] is True
    assert parsed[0]["score"] == 0
    assert parsed[1]["pass"] is False
    assert parsed[1]["score"] == 55.0


def test_results_upload_overwrites_by_code(people):
    people[0].put_result(CourseResult(code="MATH101", score=50))
    rows = [
        {"CandidateID": "C-1", "CourseCode": "MATH101", "Score": "88", "Pass": "pass", "Date": "2025-02-01"},
        {"CandidateID": "C-1", "CourseCode": "SCI201", "Score": "71", "Pass": "pass", "Date": "2025-02-01"},
        {"CandidateID": "C-404", "CourseCode": "SCI201", "Score": "71", "Pass": "pass", "Date": "2025-02-01"},
    ]
    preview = analyze_results_upload(rows, people)
    assert [a.action for a in preview.actions] == ["update", "add", "error"]
    assert preview.stats["unknownCandidates"] == 1
    assert preview.log_lines == ["Row 4: Unknown CandidateID C-404"]

    summary = apply_results_upload(preview.applicable, people)
    assert (summary.added, summary.updated) == (1, 1)
    assert len(people[0].course_results) == 2
    assert people[0].find_result("MATH101").score == 88.0


def test_results_import_drops_non_finite_scores(people, courses):
    rows = [
        {"candidate_email": "sara@example.ae", "course_code": "MATH101", "passed": "yes", "score": "nan"},
        {"candidate_email": "omar@example.ae", "course_code": "MATH101", "passed": "yes", "score": "1e400"},
    ]
    preview = analyze_result_rows(rows, people, courses, now=NOW)
    apply_result_actions(preview.applicable, people, now=NOW)
    assert people[0].find_result("MATH101").score is None
    assert people[1].find_result("MATH101").score is None


def test_results_upload_previews_overwrite_for_any_code_case(people):
    people[0].put_result(CourseResult(code="MATH101", score=50))
    rows = [{"CandidateID": "C-1", "CourseCode": "math101", "Score": "88", "Pass": "pass", "Date": "2025-02-01"}]
    preview = analyze_results_upload(rows, people)
    assert [a.action for a in preview.actions] == ["update"]

    summary = apply_results_upload(preview.applicable, people)
    assert (summary.added, summary.updated) == (0, 1)
    assert len(people[0].course_results) == 1
