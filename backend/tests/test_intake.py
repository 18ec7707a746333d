import pytest

from backend.core.errors import ValidationError
from backend.core.intake import auto_map_headers, build_candidates, normalize_mobile, validate_intake
from backend.core.models import CandidateStatus


def _row(**overrides):
    row = {
        "Full Name": "Sara Ahmed",
        "Subject": "Mathematics",
        "GPA": "3.75",
        "Emirate": "Dubai",
        "Email": "sara.ahmed@example.ae",
        "Mobile": "+971 50 123 4567",
        "National ID": "784-1",
        "Source Batch": "Batch A",
    }
    row.update(overrides)
    return row


def test_auto_map_headers():
    mapping = auto_map_headers(["Full  Name", "Teaching Subject", "CGPA", "City", "E-mail", "Phone", "Batch"])
    assert mapping == {
        "name": "Full  Name",
        "subject": "Teaching Subject",
        "gpa": "CGPA",
        "emirate": "City",
        "email": "E-mail",
        "mobile": "Phone",
        "sourceBatch": "Batch",
    }


@pytest.mark.parametrize("raw, expected", [
    ("+971501234567", "0501234567"),
    ("+971 50 123-4567", "0501234567"),
    ("0501234567", "0501234567"),
    ("12345", "12345"),
])
def test_normalize_mobile(raw, expected):
    assert normalize_mobile(raw) == expected


def test_clean_file_builds_imported_candidates():
    report = validate_intake([_row(), _row(Email="omar@example.ae", **{"National ID": "784-2", "Subject": "Arabic"})], [])
    assert report.ok
    created = build_candidates(report)
    assert [c.status for c in created] == [CandidateStatus.IMPORTED] * 2
    assert created[0].id.startswith("IMP-")
    assert created[0].mobile == "0501234567"
    assert created[0].gpa == 3.75
    assert created[0].extra["sourceBatch"] == "Batch A"
    assert created[1].track_id == "t2"


def test_any_error_blocks_the_whole_file():
    rows = [_row(), _row(Email="not-an-email", **{"National ID": "784-2"})]
    report = validate_intake(rows, [])
    assert not report.ok
    assert report.errors[0].to_dict() == {"row": 3, "field": "email", "msg": "Invalid email"}
    with pytest.raises(ValidationError) as exc:
        build_candidates(report)
    assert exc.value.issues == [{"row": 3, "field": "email", "msg": "Invalid email"}]


def test_row_level_checks():
    rows = [
        _row(GPA="", Mobile="0401234567"),
        _row(GPA="abc", Email="b@example.ae", **{"National ID": "784-1"}),
    ]
    fields = [(e.row, e.field, e.msg) for e in validate_intake(rows, []).errors]
    assert (2, "gpa", "gpa is required") in fields
    assert (2, "mobile", "Invalid UAE mobile") in fields
    assert (3, "gpa", "GPA must be numeric") in fields
    assert (3, "nationalId", "Duplicate National ID in file") in fields


def test_duplicate_email_in_file_is_an_error():
    report = validate_intake([_row(), _row(Email="SARA.AHMED@example.ae", **{"National ID": "784-2"})], [])
    assert [(e.row, e.msg) for e in report.errors] == [(3, "Duplicate email in file")]


def test_warnings_never_block(make_candidate):
    existing = [make_candidate(email="Sara.Ahmed@example.ae")]
    report = validate_intake([_row(GPA="4,5")], existing)
    assert report.ok
    assert {w.msg for w in report.warnings} == {"GPA outside 0.0–4.0", "Email already exists in system"}
    assert build_candidates(report)[0].gpa == 4.5


def test_explicit_mapping_overrides_auto_mapping():
    row = _row()
    row["Contact"] = row.pop("Mobile")
    report = validate_intake([row], [], mapping={"mobile": "Contact"})
    assert report.ok
    assert report.mapping["mobile"] == "Contact"
