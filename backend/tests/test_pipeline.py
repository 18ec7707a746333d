import pytest

from backend.core.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from backend.core.models import (
    ApplicantStatus,
    CandidateStatus,
    EnrollmentStatus,
    HiringStage,
    User,
    UserRole,
)
from backend.core.security import is_hashed


def _add(service, cid, email, **data):
    return service.create_candidate({"id": cid, "name": cid, "email": email, "subject": "Mathematics", **data})


def test_assign_enrollment_upserts_and_moves_status(service):
    _add(service, "C-1", "a@x.ae", status="Eligible")
    enr = service.assign_enrollment("C-1", "math101", cohort="C1", start_date="2025-01-10")
    assert enr.code == "MATH101"
    assert enr.title == "Mathematics Methods"
    assert enr.assigned_by == "Manual"
    assert enr.required is True

    service.assign_enrollment("C-1", "MATH101", cohort="C2")
    cand = service.get_candidate("C-1")
    assert cand.status is CandidateStatus.ASSIGNED
    assert len(cand.enrollments) == 1
    assert cand.enrollments[0].cohort == "C2"
    assert cand.enrollments[0].start_date == "2025-01-10"

    with pytest.raises(NotFoundError):
        service.assign_enrollment("C-1", "NOPE")


def test_enrollment_status_and_removal(service):
    _add(service, "C-1", "a@x.ae")
    service.assign_enrollment("C-1", "MATH101")
    enr = service.set_enrollment_status("C-1", "MATH101", "Completed")
    assert enr.status is EnrollmentStatus.COMPLETED
    assert enr.end_date

    service.remove_enrollment("C-1", "MATH101")
    assert service.get_candidate("C-1").enrollments == []
    with pytest.raises(NotFoundError):
        service.remove_enrollment("C-1", "MATH101")


def test_record_result_computes_pass_from_threshold(service):
    _add(service, "C-1", "a@x.ae")
    assert service.record_result("C-1", "MATH101", score="69").passed is False
    assert service.record_result("C-1", "MATH101", score=70).passed is True
    assert service.record_result("C-1", "OTHER1", score=72).passed is True
    cand = service.get_candidate("C-1")
    assert [r.code for r in cand.course_results] == ["OTHER1", "MATH101"]


def test_notes_are_newest_first(service):
    _add(service, "C-1", "a@x.ae")
    service.add_note("C-1", "first", by="Admin")
    service.add_note("C-1", "second")
    notes = service.get_candidate("C-1").notes_thread
    assert [n.text for n in notes] == ["second", "first"]
    assert notes[1].by == "Admin"
    with pytest.raises(ValidationError):
        service.add_note("C-1", "   ")


def test_approve_all_valid_and_mark_ready(service):
    _add(service, "C-1", "a@x.ae", courseResults=[{"code": "MATH101", "score": 90}, {"code": "SCI201", "score": 80}])
    _add(service, "C-2", "b@x.ae", courseResults=[{"code": "MATH101", "score": 90}])
    _add(service, "C-3", "c@x.ae", status="Graduated",
         courseResults=[{"code": "MATH101", "score": 90}, {"code": "SCI201", "score": 80}])

    assert [r.candidate.id for r in service.graduation_exceptions()] == ["C-2"]
    assert service.approve_all_valid() == 1
    assert service.get_candidate("C-1").status is CandidateStatus.GRADUATED
    assert service.get_candidate("C-2").status is CandidateStatus.IMPORTED
    assert service.audit_log()[0].type == "graduation_approve_all_valid"
    assert service.audit_log()[0].payload["count"] == 1

    assert service.mark_ready_for_hiring() == 2
    assert [c.id for c in service.list_candidates("Ready for Hiring")] == ["C-1", "C-3"]


def test_force_approve_and_clarification(service):
    _add(service, "C-2", "b@x.ae")
    assert service.force_approve("C-2", by="admin@x.ae").status is CandidateStatus.GRADUATED

    correction = service.request_clarification("C-2")
    assert correction.for_role == UserRole.ECAE_TRAINER.value
    assert correction.status == "Pending"
    assert [e.type for e in service.audit_log()] == [
        "graduation_clarification_requested", "graduation_force_approved",
    ]
    trainer_inbox = service.repos.notifications.for_user(role="ECAE Trainer")
    assert trainer_inbox[0].target == {"page": "candidates", "candidateId": "C-2"}

    resolved = service.resolve_correction(correction.id, response="Confirmed", by="trainer@x.ae")
    assert resolved.status == "Resolved"
    assert resolved.extra["response"] == "Confirmed"
    assert service.list_corrections(status="Pending") == []


def test_hiring_board(service):
    _add(service, "C-1", "a@x.ae", status="Graduated", emirate="Ajman")
    _add(service, "C-2", "b@x.ae", status="In Training")
    rows = service.hiring_board()
    assert [c.id for c in rows] == ["C-1"]
    assert rows[0].hiring.stage is HiringStage.GRADUATED

    service.set_hiring_stage("C-1", "Interview")
    service.set_hiring_notes("C-1", "Strong demo lesson")
    assert [c.id for c in service.hiring_board(q="ajman", stage="Interview")] == ["C-1"]
    assert service.hiring_board(stage="Screening") == []
    kpis = service.hiring_kpis()
    assert kpis["total"] == 1
    assert kpis["byStage"]["Interview"] == 1
    assert service.get_candidate("C-1").hiring.notes == "Strong demo lesson"


def test_register_and_login_with_hashed_password(service):
    user = service.register({"email": "New@x.ae", "password": "pw1", "name": "New Teacher"})
    assert user.role is UserRole.TEACHER
    assert is_hashed(service.get_user("new@x.ae").password)
    assert service.login("new@x.ae", "pw1").email == "new@x.ae"
    with pytest.raises(AuthenticationError):
        service.login("new@x.ae", "wrong")
    with pytest.raises(AuthenticationError):
        service.login("ghost@x.ae", "pw1")
    with pytest.raises(ConflictError):
        service.register({"email": "new@x.ae", "password": "pw1"})
    with pytest.raises(ValidationError):
        service.register({"email": "other@x.ae"})


def test_login_rehashes_legacy_plaintext(service):
    service.repos.users.create(User(email="old@x.ae", password="legacy", role=UserRole.AUDITOR))
    service.login("old@x.ae", "legacy")
    stored = service.get_user("old@x.ae").password
    assert is_hashed(stored)
    assert service.login("old@x.ae", "legacy").role is UserRole.AUDITOR


def test_change_password(service):
    service.create_user({"email": "m@x.ae", "password": "a", "role": "ECAE Manager"})
    service.change_password("m@x.ae", "b")
    assert service.login("m@x.ae", "b").email == "m@x.ae"
    with pytest.raises(ValidationError):
        service.change_password("m@x.ae", "")


def test_accept_applicant_creates_candidate(service):
    service.register({
        "email": "t@x.ae", "password": "pw", "name": "Huda", "interested": True,
        "preferredSubject": "English", "contactNumber": "0501112222",
        "emiratesIdNumber": "784-9", "emirate": "Fujairah",
    })
    assert [u.email for u in service.list_applicants(interested=True)] == ["t@x.ae"]

    cand = service.accept_applicant("t@x.ae")
    assert cand.status is CandidateStatus.ELIGIBLE
    assert cand.track_id == "t2"
    assert (cand.mobile, cand.national_id, cand.emirate) == ("0501112222", "784-9", "Fujairah")
    assert cand.notes_thread[0].text == "Accepted from applicants."

    user = service.get_user("t@x.ae")
    assert user.applicant_status is ApplicantStatus.ACCEPTED
    assert user.candidate_id == cand.id
    assert service.repos.notifications.for_user(role="Admin")[0].type == "applicant_accepted"


def test_applicant_lookup_is_teacher_only(service):
    service.create_user({"email": "admin2@x.ae", "password": "pw", "role": "Admin"})
    with pytest.raises(NotFoundError):
        service.get_applicant("admin2@x.ae")


def test_reject_applicant_and_docs(service):
    service.register({"email": "t@x.ae", "password": "pw", "docs": {"cv": "cv.pdf"}})
    service.update_applicant_docs("t@x.ae", {"transcript": "t.pdf"})
    user = service.reject_applicant("t@x.ae")
    assert user.applicant_status is ApplicantStatus.REJECTED
    assert user.docs == {"cv": "cv.pdf", "transcript": "t.pdf"}
    assert service.list_applicants(status="Rejected")[0].email == "t@x.ae"


def test_commit_enrollments_writes_and_audits(service):
    _add(service, "C-1", "a@x.ae")
    rows = [{"candidate_email": "A@x.ae", "course_code": "SCI201"}, {"candidate_email": "z@x.ae", "course_code": "SCI201"}]
    assert service.preview_enrollments(rows).stats["willAdd"] == 1
    assert service.get_candidate("C-1").enrollments == []

    outcome = service.commit_enrollments(rows)
    assert outcome["added"] == 1
    assert outcome["candidatesChanged"] == 1
    assert service.get_candidate("C-1").find_enrollment("SCI201") is not None
    assert service.audit_log()[0].type == "bulk_enroll_committed"

    assert service.commit_enrollments(rows)["updated"] == 1
    assert len(service.get_candidate("C-1").enrollments) == 1


def test_commit_intake_is_all_or_nothing(service):
    good = {"Name": "Sara", "Subject": "Physics", "GPA": "3.1", "Emirate": "Dubai",
            "Email": "s@x.ae", "Mobile": "0501234567"}
    bad = {**good, "Email": "broken", "Mobile": "0507654321"}
    with pytest.raises(ValidationError):
        service.commit_intake([good, bad])
    assert service.list_candidates() == []

    created = service.commit_intake([good])
    assert [c.email for c in service.list_candidates()] == ["s@x.ae"]
    assert created[0].status is CandidateStatus.IMPORTED


def test_dashboard_counts(service):
    _add(service, "C-1", "a@x.ae", status="Assigned")
    summary = service.dashboard()
    assert summary["kpis"]["totalCandidates"] == 1
    assert summary["kpis"]["waitingNoEnrollment"] == 1
    assert summary["kpis"]["stale"] == 1


def test_non_numeric_scores_never_break_the_dashboard(service):
    _add(service, "C-1", "a@x.ae")
    service.commit_results([{"candidate_email": "a@x.ae", "course_code": "MATH101", "passed": "yes", "score": "nan"}])
    service.record_result("C-1", "SCI201", score="inf")
    cand = service.get_candidate("C-1")
    assert cand.find_result("MATH101").score is None
    assert cand.find_result("SCI201").passed is False
    assert service.dashboard()["kpis"]["totalCandidates"] == 1
    assert [r.candidate.id for r in service.graduation_exceptions()] == ["C-1"]
