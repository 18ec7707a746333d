"""
Intake import: onboarding new candidates from a spreadsheet.

Rows are mapped onto candidate fields, validated, and committed all at
once. Any error blocks the whole file; warnings never do.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from backend.core.errors import ValidationError
from backend.core.models import Candidate, CandidateStatus, subject_to_track_id, to_number
from backend.core.stamps import iso, new_id

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$", re.IGNORECASE)
MOBILE_RE = re.compile(r"^(?:\+9715\d{8}|05\d{8})$")

REQUIRED_FIELDS = ["name", "subject", "gpa", "emirate", "email", "mobile"]

HEADER_ALIASES: Dict[str, List[str]] = {
    "name": ["name", "full name", "candidate name"],
    "subject": ["subject", "teaching subject"],
    "gpa": ["gpa", "cgpa"],
    "emirate": ["emirate", "city"],
    "email": ["email", "e-mail"],
    "mobile": ["mobile", "phone", "mobile number"],
    "nationalId": ["national id", "id", "emirates id"],
    "sourceBatch": ["source batch", "batch", "cohort"],
}

INTAKE_TEMPLATE_HEADER = ["Full Name", "Subject", "GPA", "Emirate", "Email", "Mobile", "National ID", "Source Batch"]


@dataclass
class Issue:
    row: int
    field: str
    msg: str

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "field": self.field, "msg": self.msg}


@dataclass
class IntakeReport:
    mapping: Dict[str, str]
    rows: List[Dict[str, Any]]
    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self, preview: int = 10) -> Dict[str, Any]:
        return {
            "mapping": self.mapping,
            "rowCount": len(self.rows),
            "preview": self.rows[:preview],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _norm_header(h: Any) -> str:
    return re.sub(r"\s+", " ", str(h or "").strip().lower())


def auto_map_headers(headers: Sequence[Any]) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    normalized = [(h, _norm_header(h)) for h in headers]
    for target, keys in HEADER_ALIASES.items():
        for raw, norm in normalized:
            if norm in keys:
                mapping[target] = raw
                break
    return mapping


def normalize_mobile(value: Any) -> str:
    s = re.sub(r"[\s-]", "", str(value or ""))
    if re.match(r"^\+9715\d{8}$", s):
        return "05" + s[5:]
    return s


def _row_values(raw: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    def pick(key: str) -> str:
        col = mapping.get(key)
        value = raw.get(col) if col else None
        return "" if value is None else str(value).strip()

    gpa_text = pick("gpa")
    return {
        "name": pick("name"),
        "subject": pick("subject"),
        "gpaText": gpa_text,
        "gpa": to_number(gpa_text),
        "emirate": pick("emirate"),
        "email": pick("email"),
        "mobile": normalize_mobile(pick("mobile")),
        "nationalId": pick("nationalId"),
        "sourceBatch": pick("sourceBatch"),
    }


def validate_intake(
    rows: Sequence[Dict[str, Any]],
    existing: Sequence[Candidate],
    mapping: Optional[Dict[str, str]] = None,
) -> IntakeReport:
    headers: List[str] = list(rows[0].keys()) if rows else []
    mapping = {**auto_map_headers(headers), **(mapping or {})}
    report = IntakeReport(mapping=mapping, rows=[])

    for idx, raw in enumerate(rows):
        row_no = idx + 2
        obj = _row_values(raw, mapping)
        for req in REQUIRED_FIELDS:
            value = obj["gpaText"] if req == "gpa" else obj[req]
            if not value:
                report.errors.append(Issue(row_no, req, f"{req} is required"))
        if obj["email"] and not EMAIL_RE.match(obj["email"]):
            report.errors.append(Issue(row_no, "email", "Invalid email"))
        if obj["mobile"] and not MOBILE_RE.match(obj["mobile"]):
            report.errors.append(Issue(row_no, "mobile", "Invalid UAE mobile"))
        if obj["gpaText"]:
            if obj["gpa"] is None:
                report.errors.append(Issue(row_no, "gpa", "GPA must be numeric"))
            elif obj["gpa"] < 0 or obj["gpa"] > 4.0:
                report.warnings.append(Issue(row_no, "gpa", "GPA outside 0.0–4.0"))
        del obj["gpaText"]
        report.rows.append(obj)

    seen_email = set()
    seen_nid = set()
    for idx, obj in enumerate(report.rows):
        row_no = idx + 2
        email = obj["email"].lower()
        if email:
            if email in seen_email:
                report.errors.append(Issue(row_no, "email", "Duplicate email in file"))
            seen_email.add(email)
        if obj["nationalId"]:
            if obj["nationalId"] in seen_nid:
                report.errors.append(Issue(row_no, "nationalId", "Duplicate National ID in file"))
            seen_nid.add(obj["nationalId"])

    existing_emails = {c.email.lower() for c in existing if c.email}
    for idx, obj in enumerate(report.rows):
        if obj["email"] and obj["email"].lower() in existing_emails:
            report.warnings.append(Issue(idx + 2, "email", "Email already exists in system"))

    return report


def build_candidates(report: IntakeReport, now: Optional[datetime] = None) -> List[Candidate]:
    """Candidates for a clean report. Raises when the report carries errors."""
    if not report.ok:
        raise ValidationError(
            "Resolve errors before committing import.",
            issues=[e.to_dict() for e in report.errors],
        )
    stamp = iso(now)
    out: List[Candidate] = []
    for obj in report.rows:
        cand = Candidate(
            id=new_id("IMP"),
            name=obj["name"],
            national_id=obj["nationalId"],
            email=obj["email"],
            mobile=obj["mobile"],
            emirate=obj["emirate"],
            subject=obj["subject"],
            gpa=obj["gpa"],
            track_id=subject_to_track_id(obj["subject"]),
            status=CandidateStatus.IMPORTED,
            created_at=stamp,
            updated_at=stamp,
        )
        if obj["sourceBatch"]:
            cand.extra["sourceBatch"] = obj["sourceBatch"]
        out.append(cand)
    return out


def intake_template_csv() -> str:
    sample = [
        ["Sara Ahmed", "Mathematics", "3.75", "Dubai", "sara.ahmed@example.ae", "0501234567", "784-XXXX-XXXXXXX-0", "Batch A"],
        ["Omar Ali", "Arabic", "3.20", "Sharjah", "omar.ali@example.ae", "0507654321", "784-YYYY-YYYYYYY-1", "Batch A"],
    ]

    def esc(s: str) -> str:
        return '"' + str(s).replace('"', '""') + '"'

    return "\n".join(",".join(esc(c) for c in r) for r in [INTAKE_TEMPLATE_HEADER, *sample])
