"""Single-candidate PDF report (reportlab platypus)."""
from io import BytesIO
from typing import List, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.graphics.shapes import Circle, Drawing, Line, String
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from backend.core.engine import (
    compute_final_average,
    course_by_code,
    is_required_for_candidate,
    training_progress,
)
from backend.core.models import (
    MAIN_STAGES,
    TRAINING_STATUSES,
    Candidate,
    Course,
    EnrollmentStatus,
    track_name,
)
from backend.core.stamps import utcnow

INK = colors.HexColor("#0F172A")
MUTED = colors.HexColor("#64748B")
DONE = colors.HexColor("#10B981")


def _grid(head: List[str], body: List[List[str]], widths: Optional[List[float]] = None) -> Table:
    table = Table([head] + body, colWidths=widths, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), INK),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#CBD5E1")),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return table


def timeline(width: float, steps: Sequence[str], current: int) -> Drawing:
    """Dots joined by a line; steps up to ``current`` are filled."""
    drawing = Drawing(width, 40)
    gap = width / max(len(steps) - 1, 1)
    y = 26
    drawing.add(Line(0, y, width, y, strokeColor=colors.HexColor("#CBD5E1"), strokeWidth=2))
    for i, label in enumerate(steps):
        x = min(i * gap, width)
        reached = i <= current
        drawing.add(Circle(x, y, 5, fillColor=DONE if reached else colors.white,
                           strokeColor=DONE if reached else MUTED))
        anchor = "start" if i == 0 else "end" if i == len(steps) - 1 else "middle"
        drawing.add(String(x, 8, label, fontSize=7, fillColor=INK if reached else MUTED, textAnchor=anchor))
    return drawing


def _dash(value) -> str:
    return "—" if value in (None, "") else str(value)


def _overview(candidate: Candidate, courses: Sequence[Course]) -> List[List[str]]:
    final_avg = compute_final_average(candidate, courses)
    pairs = [
        ("Candidate Name", candidate.name),
        ("Candidate ID", candidate.id),
        ("Status", candidate.status.value),
        ("Track", track_name(candidate.track_id)),
        ("Subject", candidate.subject),
        ("Emirate", candidate.emirate),
        ("GPA", f"{candidate.gpa:.2f}" if candidate.gpa is not None else "—"),
        ("Final Average", _dash(final_avg)),
        ("Email", candidate.email),
        ("Mobile", candidate.mobile),
        ("National ID", _dash(candidate.national_id)),
    ]
    completed, total = training_progress(candidate)
    if candidate.status in TRAINING_STATUSES and total:
        pct = int(completed / total * 100 + 0.5)
        pairs.append(("Training Progress", f"{pct}% ({completed} of {total})"))

    # two key/value pairs per row
    rows: List[List[str]] = []
    for i in range(0, len(pairs), 2):
        row: List[str] = []
        for k, v in pairs[i:i + 2]:
            row.extend([k, _dash(v)])
        rows.append(row + [""] * (4 - len(row)))
    return rows


def _in_progress_rows(candidate: Candidate, courses: Sequence[Course]) -> List[List[str]]:
    rows = []
    for e in candidate.enrollments:
        if e.status in (EnrollmentStatus.COMPLETED, EnrollmentStatus.WITHDRAWN):
            continue
        course = course_by_code(courses, e.code)
        kind = "Required" if (e.is_internship or e.required or e.type == "Required") \
            else is_required_for_candidate(e.code, candidate, courses)
        rows.append([
            e.code,
            e.title or (course.title if course else ""),
            _dash(e.cohort),
            _dash(e.start_date),
            _dash(e.end_date),
            e.status.value,
            kind,
        ])
    return rows


def _completed_rows(candidate: Candidate, courses: Sequence[Course]) -> List[List[str]]:
    rows = []
    for r in candidate.course_results:
        enr = next((e for e in candidate.enrollments if e.code == r.code), None)
        course = course_by_code(courses, r.code)
        rows.append([
            r.code,
            r.title or (course.title if course else ""),
            _dash(enr.cohort if enr else ""),
            _dash(f"{r.score:g}" if r.score is not None else ""),
            "Yes" if r.passed else "No",
            _dash(r.date),
            is_required_for_candidate(r.code, candidate, courses),
        ])
    return rows


def _mentor_rows(candidate: Candidate) -> Optional[List[List[str]]]:
    intern = next((e for e in candidate.enrollments if e.is_internship), None)
    if intern is None:
        return None
    fields = [
        ("Mentor name", "mentorName"),
        ("Mentor email", "mentorEmail"),
        ("Mentor contact", "mentorContact"),
        ("Assigned school", "schoolName"),
        ("School emirate", "schoolEmirate"),
    ]
    return [[label, str(intern.extra.get(key) or "")] for label, key in fields]


def candidate_report(candidate: Candidate, courses: Sequence[Course], generated_by: str = "User") -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=A4, leftMargin=1.3 * cm, rightMargin=1.3 * cm, topMargin=1.3 * cm, bottomMargin=1.3 * cm,
        title=f"Candidate Report {candidate.id}",
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("Banner", parent=styles["Title"], textColor=colors.white, fontSize=15, alignment=0)
    sub_style = ParagraphStyle("BannerSub", parent=styles["Normal"], textColor=colors.white, fontSize=9)
    heading = ParagraphStyle("Section", parent=styles["Heading3"], textColor=INK, spaceBefore=10)
    muted = ParagraphStyle("Muted", parent=styles["Normal"], textColor=MUTED, fontSize=9)
    width = doc.width

    banner = Table(
        [[Paragraph("FreshGrad Training Tracker — Candidate Report", title_style)],
         [Paragraph(f"Generated {utcnow():%Y-%m-%d %H:%M} UTC by {escape(generated_by or 'User')}", sub_style)]],
        colWidths=[width],
    )
    banner.setStyle(TableStyle([("BACKGROUND", (0, 0), (-1, -1), INK), ("LEFTPADDING", (0, 0), (-1, -1), 10)]))

    overview = Table(_overview(candidate, courses), colWidths=[width * 0.18, width * 0.32] * 2)
    overview.setStyle(TableStyle([
        ("TEXTCOLOR", (0, 0), (0, -1), MUTED),
        ("TEXTCOLOR", (2, 0), (2, -1), MUTED),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
    ]))

    story = [
        banner,
        Spacer(1, 12),
        Paragraph("Candidate Overview", heading),
        overview,
        Spacer(1, 10),
        timeline(width, MAIN_STAGES, candidate.status.main_stage),
        Paragraph("Courses in Progress", heading),
    ]

    in_progress = _in_progress_rows(candidate, courses)
    if in_progress:
        story.append(_grid(["Course ID", "Title", "Cohort", "Start", "End", "Status", "Type"], in_progress))
    else:
        story.append(Paragraph("No courses currently in progress.", muted))

    story.append(Paragraph("Courses Completed", heading))
    completed = _completed_rows(candidate, courses)
    if completed:
        story.append(_grid(["Course ID", "Title", "Cohort", "Score", "Pass", "Completion Date", "Type"], completed))
    else:
        story.append(Paragraph("No completed courses recorded.", muted))

    story.append(Paragraph("Mentor details", heading))
    mentor = _mentor_rows(candidate)
    if mentor is None:
        story.append(Paragraph("No internship assigned.", muted))
    else:
        story.append(_grid(["Field", "Value"], mentor, widths=[width * 0.3, width * 0.7]))

    doc.build(story)
    return buffer.getvalue()


def report_filename(candidate: Candidate) -> str:
    safe_name = "_".join(candidate.name.split())
    return f"{candidate.id}-{safe_name}.pdf"
