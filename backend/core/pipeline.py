"""
Candidate lifecycle service.

``TrackerService`` is the one place that changes tracker state: the API
routers call it, it loads records through the repositories, applies the
domain rules from ``engine``/``reconcile``/``intake`` and writes the
result back. Graduation and import actions are recorded in the audit log.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from backend.core import reports
from backend.core.engine import EligibilityEngine, find_course
from backend.core.errors import AuthenticationError, NotFoundError, ValidationError
from backend.core.intake import IntakeReport, build_candidates, validate_intake
from backend.core.models import (
    ApplicantStatus,
    Candidate,
    CandidateStatus,
    Correction,
    CourseResult,
    Enrollment,
    EnrollmentStatus,
    HiringRecord,
    HiringStage,
    Note,
    User,
    UserRole,
    subject_to_track_id,
    to_number,
)
from backend.core.reconcile import (
    ImportPreview,
    RowAction,
    analyze_enrollment_rows,
    analyze_result_rows,
    analyze_results_upload,
    apply_enrollment_actions,
    apply_result_actions,
    apply_results_upload,
)
from backend.core.security import hash_password, needs_rehash, verify_password
from backend.core.stamps import iso, new_id, today, utcnow
from backend.storage.repositories import Repositories

logger = logging.getLogger(__name__)

CLARIFICATION_TEXT = "Graduation Review: Please clarify/confirm required details for this candidate."


class TrackerService:
    def __init__(self, repos: Repositories, stale_days: int = reports.STALE_DAYS):
        self.repos = repos
        self.stale_days = stale_days

    def engine(self) -> EligibilityEngine:
        return EligibilityEngine(self.repos.courses.list_all())

    # ---------- audit ----------
    def log_event(self, event_type: str, **payload: Any):
        payload.setdefault("ts", iso())
        return self.repos.audit.record(event_type, payload)

    def audit_log(self):
        return self.repos.audit.list()

    # ---------- candidates ----------
    def list_candidates(self, status: Optional[str] = None) -> List[Candidate]:
        if status is None:
            return self.repos.candidates.list()
        return self.repos.candidates.by_status(CandidateStatus.parse(status))

    def get_candidate(self, candidate_id: str) -> Candidate:
        return self.repos.candidates.get(candidate_id)

    def create_candidate(self, data: Dict[str, Any]) -> Candidate:
        return self.repos.candidates.create(Candidate.from_dict(data))

    def bulk_create_candidates(self, items: Sequence[Dict[str, Any]]) -> Dict[str, List[Any]]:
        outcome = self.repos.candidates.bulk_create([Candidate.from_dict(d) for d in items])
        logger.info("Bulk create: %d created, %d rejected", len(outcome["success"]), len(outcome["errors"]))
        return outcome

    def update_candidate(self, candidate_id: str, changes: Dict[str, Any]) -> Candidate:
        return self.repos.candidates.update_fields(candidate_id, changes)

    def delete_candidate(self, candidate_id: str) -> None:
        self.repos.candidates.delete(candidate_id)

    def eligibility(self, candidate_id: str):
        return self.engine().evaluate(self.get_candidate(candidate_id))

    # ---------- enrollments, results, notes ----------
    def assign_enrollment(
        self,
        candidate_id: str,
        code: str,
        cohort: str = "",
        start_date: str = "",
        end_date: str = "",
        assigned_by: str = "Manual",
    ) -> Enrollment:
        cand = self.get_candidate(candidate_id)
        course = find_course(self.repos.courses.list_all(), code)
        if course is None:
            raise NotFoundError(f"Course {code} not found")
        existing = cand.find_enrollment(course.code)
        action = RowAction(
            row=0,
            raw={},
            action="update" if existing is not None else "add",
            candidate_id=cand.id,
            code=existing.code if existing is not None else course.code,
            cohort=cohort,
            start_date=start_date,
            end_date=end_date,
            title=course.title,
            required=course.is_required,
        )
        apply_enrollment_actions([action], [cand], assigned_by=assigned_by or "Manual")
        self.repos.candidates.replace(cand)
        return cand.find_enrollment(course.code)

    def _enrollment(self, cand: Candidate, code: str) -> Enrollment:
        enr = cand.find_enrollment(code)
        if enr is None:
            raise NotFoundError(f"Enrollment {code} not found for candidate {cand.id}")
        return enr

    def set_enrollment_status(self, candidate_id: str, code: str, status: str) -> Enrollment:
        cand = self.get_candidate(candidate_id)
        enr = self._enrollment(cand, code)
        enr.status = EnrollmentStatus.parse(status)
        if enr.status == EnrollmentStatus.COMPLETED and not enr.end_date:
            enr.end_date = today()
        cand.updated_at = iso()
        self.repos.candidates.replace(cand)
        return enr

    def remove_enrollment(self, candidate_id: str, code: str) -> None:
        cand = self.get_candidate(candidate_id)
        enr = self._enrollment(cand, code)
        cand.enrollments = [e for e in cand.enrollments if e is not enr]
        cand.updated_at = iso()
        self.repos.candidates.replace(cand)

    def record_result(
        self,
        candidate_id: str,
        code: str,
        score: Any = None,
        passed: Optional[bool] = None,
        date: str = "",
    ) -> CourseResult:
        """Write the single result for ``code``; ``passed`` defaults to the course threshold check."""
        cand = self.get_candidate(candidate_id)
        course = find_course(self.repos.courses.list_all(), code)
        value = to_number(score)
        if passed is None:
            threshold = course.threshold if course is not None else 70
            passed = value is not None and value >= threshold
        result = CourseResult(
            code=course.code if course is not None else str(code).strip(),
            title=course.title if course is not None else str(code).strip(),
            score=value,
            passed=bool(passed),
            date=date or today(),
        )
        cand.put_result(result)
        cand.updated_at = iso()
        self.repos.candidates.replace(cand)
        return result

    def add_note(self, candidate_id: str, text: str, by: str = "System") -> Note:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Note text is required")
        cand = self.get_candidate(candidate_id)
        note = Note(id=new_id("N"), by=by or "System", text=text, ts=iso())
        cand.notes_thread.insert(0, note)
        cand.updated_at = note.ts
        self.repos.candidates.replace(cand)
        return note

    # ---------- graduation review ----------
    def graduation_exceptions(self):
        return self.engine().exceptions(self.repos.candidates.list())

    def force_approve(self, candidate_id: str, by: str = "") -> Candidate:
        cand = self.get_candidate(candidate_id)
        cand.status = CandidateStatus.GRADUATED
        cand.updated_at = iso()
        self.repos.candidates.replace(cand)
        self.log_event("graduation_force_approved", id=cand.id, by=by)
        return cand

    def approve_all_valid(self) -> int:
        engine = self.engine()
        changed: List[Candidate] = []
        stamp = iso()
        for cand in self.repos.candidates.list():
            if cand.status != CandidateStatus.GRADUATED and engine.is_eligible(cand):
                cand.status = CandidateStatus.GRADUATED
                cand.updated_at = stamp
                changed.append(cand)
        self.repos.candidates.save_all(changed)
        self.log_event("graduation_approve_all_valid", count=len(changed))
        logger.info("Approved %d eligible candidates", len(changed))
        return len(changed)

    def mark_ready_for_hiring(self) -> int:
        changed: List[Candidate] = []
        stamp = iso()
        for cand in self.repos.candidates.by_status(CandidateStatus.GRADUATED):
            cand.status = CandidateStatus.READY_FOR_HIRING
            cand.updated_at = stamp
            changed.append(cand)
        self.repos.candidates.save_all(changed)
        self.log_event("graduation_mark_ready_for_hiring", count=len(changed))
        return len(changed)

    def request_clarification(self, candidate_id: str, by: str = "Graduation Review",
                              text: str = CLARIFICATION_TEXT) -> Correction:
        cand = self.get_candidate(candidate_id)
        correction = Correction(
            id=new_id("CR"),
            candidate_id=cand.id,
            by=by,
            role=UserRole.ADMIN.value,
            for_role=UserRole.ECAE_TRAINER.value,
            text=text,
            status="Pending",
            ts=iso(),
        )
        self.repos.corrections.add(correction)
        self.log_event("graduation_clarification_requested", id=cand.id, to=UserRole.ECAE_TRAINER.value)
        self.repos.notifications.push(
            {"role": UserRole.ECAE_TRAINER.value},
            "clarification_requested",
            f"Graduation clarification for {cand.id}",
            "Please clarify/confirm required details for this candidate.",
            {"page": "candidates", "candidateId": cand.id},
        )
        return correction

    # ---------- corrections ----------
    def list_corrections(self, for_role: Optional[str] = None, status: Optional[str] = None) -> List[Correction]:
        items = self.repos.corrections.list()
        if for_role:
            items = [c for c in items if c.for_role == for_role]
        if status:
            items = [c for c in items if c.status == status]
        return items

    def submit_correction(self, candidate_id: str, text: str, by: str, role: str,
                          for_role: str = UserRole.ADMIN.value) -> Correction:
        if not (text or "").strip():
            raise ValidationError("Correction text is required")
        self.get_candidate(candidate_id)
        correction = Correction(
            id=new_id("CR"), candidate_id=candidate_id, by=by, role=role,
            for_role=for_role, text=text.strip(), status="Pending", ts=iso(),
        )
        return self.repos.corrections.add(correction)

    def resolve_correction(self, correction_id: str, response: str = "", by: str = "") -> Correction:
        correction = self.repos.corrections.get(correction_id)
        correction.status = "Resolved"
        correction.extra.update({"response": response, "resolvedBy": by, "resolvedTs": iso()})
        return self.repos.corrections.replace(correction)

    # ---------- hiring tracker ----------
    def ensure_hiring_records(self) -> int:
        stamp = iso()
        changed: List[Candidate] = []
        hiring_statuses = (CandidateStatus.GRADUATED, CandidateStatus.READY_FOR_HIRING)
        for cand in self.repos.candidates.list():
            if cand.status in hiring_statuses and cand.hiring is None:
                cand.hiring = HiringRecord(stage=HiringStage.GRADUATED, updated_at=stamp, notes="")
                changed.append(cand)
        self.repos.candidates.save_all(changed)
        return len(changed)

    def hiring_board(self, q: str = "", stage: Optional[str] = None) -> List[Candidate]:
        self.ensure_hiring_records()
        wanted = HiringStage.parse(stage) if stage else None
        needle = (q or "").strip().lower()
        rows = []
        for cand in self.repos.candidates.list():
            if cand.hiring is None:
                continue
            haystack = (cand.name, cand.email, cand.emirate, cand.subject, cand.id)
            if needle and not any(needle in (h or "").lower() for h in haystack):
                continue
            if wanted is not None and cand.hiring.stage != wanted:
                continue
            rows.append(cand)
        return rows

    def _update_hiring(self, candidate_id: str, stage: Optional[str] = None,
                       notes: Optional[str] = None) -> HiringRecord:
        cand = self.get_candidate(candidate_id)
        record = cand.hiring or HiringRecord()
        if stage is not None:
            record.stage = HiringStage.parse(stage)
        if notes is not None:
            record.notes = notes
        record.updated_at = iso()
        cand.hiring = record
        self.repos.candidates.replace(cand)
        return record

    def set_hiring_stage(self, candidate_id: str, stage: str) -> HiringRecord:
        return self._update_hiring(candidate_id, stage=stage)

    def set_hiring_notes(self, candidate_id: str, notes: str) -> HiringRecord:
        return self._update_hiring(candidate_id, notes=notes)

    def hiring_kpis(self) -> Dict[str, Any]:
        board = [c for c in self.repos.candidates.list() if c.hiring is not None]
        by_stage = {s.value: 0 for s in HiringStage}
        for cand in board:
            by_stage[cand.hiring.stage.value] += 1
        return {
            "total": len(board),
            "byStage": by_stage,
            "assigned": by_stage[HiringStage.ASSIGNED_SCHOOL.value],
            "onHold": by_stage[HiringStage.ON_HOLD.value],
            "rejected": by_stage[HiringStage.REJECTED_CLOSED.value],
        }

    # ---------- users ----------
    def list_users(self, role: Optional[str] = None) -> List[User]:
        if role is None:
            return self.repos.users.list()
        return self.repos.users.by_role(UserRole.parse(role))

    def get_user(self, email: str) -> User:
        return self.repos.users.get(email)

    def create_user(self, data: Dict[str, Any]) -> User:
        data = dict(data)
        email = str(data.get("email") or "").strip().lower()
        if not email:
            raise ValidationError("Email is required")
        password = data.pop("password", None)
        user = User.from_dict({**data, "email": email})
        user.password = hash_password(password) if password else None
        created = self.repos.users.create(user)
        logger.info("Created user %s (%s)", created.email, created.role.value)
        return created

    def register(self, data: Dict[str, Any]) -> User:
        data = dict(data)
        data.setdefault("role", UserRole.TEACHER.value)
        if not data.get("password"):
            raise ValidationError("Password is required")
        return self.create_user(data)

    def login(self, email: str, password: str) -> User:
        if not email or not password:
            raise ValidationError("Email and password are required")
        user = self.repos.users.find(email)
        if user is None or not verify_password(password, user.password):
            logger.warning("Failed login for %s", str(email).strip().lower())
            raise AuthenticationError("Invalid credentials")
        if needs_rehash(user.password):
            user.password = hash_password(password)
            self.repos.users.replace(user)
            logger.info("Re-hashed stored password for %s", user.email)
        logger.info("Login %s", user.email)
        return user

    def update_user(self, email: str, changes: Dict[str, Any]) -> User:
        return self.repos.users.update_fields(email, changes)

    def change_password(self, email: str, new_password: str) -> User:
        if not new_password:
            raise ValidationError("New password is required")
        user = self.get_user(email)
        return self.repos.users.update(user.email, {"password": hash_password(new_password)}, keep=("email",))

    def delete_user(self, email: str) -> None:
        self.repos.users.delete(email)

    # ---------- applicants ----------
    def list_applicants(self, interested: Optional[bool] = None, status: Optional[str] = None) -> List[User]:
        items = self.repos.users.by_role(UserRole.TEACHER)
        if interested is not None:
            items = [u for u in items if u.interested == interested]
        if status:
            wanted = ApplicantStatus.parse(status)
            items = [u for u in items if u.applicant_status == wanted]
        return items

    def get_applicant(self, email: str) -> User:
        user = self.repos.users.find(email)
        if user is None or user.role != UserRole.TEACHER:
            raise NotFoundError(f"Applicant {email} not found")
        return user

    def set_applicant_status(self, email: str, status: str) -> User:
        user = self.get_applicant(email)
        return self.repos.users.update(
            user.email, {"applicantStatus": ApplicantStatus.parse(status).value}, keep=("email",),
        )

    def update_applicant_docs(self, email: str, docs: Dict[str, Any]) -> User:
        user = self.get_applicant(email)
        return self.repos.users.update(user.email, {"docs": {**user.docs, **(docs or {})}}, keep=("email",))

    def accept_applicant(self, email: str) -> Candidate:
        """Promote an applicant's profile to a candidate record."""
        user = self.get_applicant(email)
        profile = {**user.extra}
        subject = str(profile.get("preferredSubject") or "")
        stamp = iso()
        cand = Candidate(
            name=user.name,
            national_id=str(profile.get("emiratesIdNumber") or ""),
            email=user.email,
            mobile=str(profile.get("contactNumber") or ""),
            emirate=str(profile.get("emirate") or ""),
            subject=subject,
            track_id=subject_to_track_id(subject),
            status=CandidateStatus.ELIGIBLE,
            notes_thread=[Note(id=new_id("N"), by="Admin", text="Accepted from applicants.", ts=stamp)],
        )
        self.repos.candidates.create(cand)
        self.repos.users.update(
            user.email,
            {"applicantStatus": ApplicantStatus.ACCEPTED.value, "candidateId": cand.id},
            keep=("email",),
        )
        self.repos.notifications.push(
            {"role": UserRole.ADMIN.value}, "applicant_accepted", "Applicant accepted",
            f"{user.name} moved to Candidates", {"page": "candidates", "candidateId": cand.id},
        )
        logger.info("Applicant %s accepted as candidate %s", user.email, cand.id)
        return cand

    def reject_applicant(self, email: str) -> User:
        user = self.set_applicant_status(email, ApplicantStatus.REJECTED.value)
        self.repos.notifications.push(
            {"role": UserRole.ADMIN.value}, "applicant_rejected", "Applicant rejected", f"{user.name} rejected.",
        )
        return user

    # ---------- imports (dry run, then commit) ----------
    def preview_enrollments(self, rows: Sequence[Dict[str, Any]]) -> ImportPreview:
        return analyze_enrollment_rows(rows, self.repos.candidates.list(), self.repos.courses.list_all())

    def commit_enrollments(self, rows: Sequence[Dict[str, Any]], by: str = "Bulk Enroll") -> Dict[str, Any]:
        candidates = self.repos.candidates.list()
        preview = analyze_enrollment_rows(rows, candidates, self.repos.courses.list_all())
        summary = apply_enrollment_actions(preview.applicable, candidates, assigned_by=by or "Bulk Enroll")
        self._save_changed(summary.changed)
        self.log_event("bulk_enroll_committed", added=summary.added, updated=summary.updated)
        logger.info("Bulk enroll: %d added, %d updated", summary.added, summary.updated)
        return {**summary.to_dict(), "preview": preview.to_dict()}

    def preview_results(self, rows: Sequence[Dict[str, Any]], now: Optional[datetime] = None) -> ImportPreview:
        return analyze_result_rows(rows, self.repos.candidates.list(), self.repos.courses.list_all(), now)

    def commit_results(self, rows: Sequence[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        candidates = self.repos.candidates.list()
        preview = analyze_result_rows(rows, candidates, self.repos.courses.list_all(), now)
        summary = apply_result_actions(preview.applicable, candidates, now)
        self._save_changed(summary.changed)
        self.log_event(
            "bulk_results_committed", added=summary.added, updated=summary.updated, completed=summary.completed,
        )
        logger.info("Results import: %d added, %d updated, %d completed",
                    summary.added, summary.updated, summary.completed)
        return {**summary.to_dict(), "preview": preview.to_dict()}

    def preview_results_upload(self, rows: Sequence[Dict[str, Any]]) -> ImportPreview:
        return analyze_results_upload(rows, self.repos.candidates.list())

    def commit_results_upload(self, rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        candidates = self.repos.candidates.list()
        preview = analyze_results_upload(rows, candidates)
        summary = apply_results_upload(preview.applicable, candidates)
        self._save_changed(summary.changed)
        self.log_event("results_upload_committed", added=summary.added, updated=summary.updated)
        return {**summary.to_dict(), "preview": preview.to_dict()}

    def preview_intake(self, rows: Sequence[Dict[str, Any]],
                       mapping: Optional[Dict[str, str]] = None) -> IntakeReport:
        return validate_intake(rows, self.repos.candidates.list(), mapping)

    def commit_intake(self, rows: Sequence[Dict[str, Any]],
                      mapping: Optional[Dict[str, str]] = None) -> List[Candidate]:
        report = validate_intake(rows, self.repos.candidates.list(), mapping)
        created = build_candidates(report)
        self.repos.candidates.add_many(created)
        self.log_event("intake_committed", count=len(created))
        logger.info("Intake import created %d candidates", len(created))
        return created

    def _save_changed(self, changed: Sequence[Candidate]) -> None:
        stamp = iso()
        for cand in changed:
            cand.updated_at = stamp
        self.repos.candidates.save_all(changed)

    # ---------- reports ----------
    def dashboard(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return reports.dashboard_summary(
            self.repos.candidates.list(),
            self.repos.courses.list_all(),
            self.repos.corrections.list(),
            now=now,
            stale_days=self.stale_days,
        )
