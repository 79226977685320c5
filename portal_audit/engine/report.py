from __future__ import annotations

from datetime import datetime
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from portal_audit.engine.models import AuditJob

SCORE_LABELS = [
    ("overall", "Overall"),
    ("performance", "Performance"),
    ("seo", "SEO"),
    ("accessibility", "Accessibility"),
    ("bestPractices", "Best Practices"),
    ("security", "Security"),
    ("pwa", "PWA"),
]


def _fmt(value: object, fallback: str = "-") -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text if text else fallback


def _pdf_safe(text: str) -> str:
    return escape(text.encode("latin-1", "ignore").decode("latin-1"))


def _issue_lines(issues: list[dict]) -> list[str]:
    lines = []
    for issue in issues:
        severity = _fmt(issue.get("severity")).upper()
        lines.append(f"[{severity}] {_fmt(issue.get('title'))}: {_fmt(issue.get('recommendation'), '')}")
    return lines


def build_pdf_report(job: AuditJob, output_path: str) -> str:
    """Render a completed audit's stored summary as a one-file PDF."""
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    summary = job.summary or {}
    metrics = summary.get("metrics") or {}

    styles = getSampleStyleSheet()
    body_style = styles["BodyText"]
    body_style.leading = 14

    elements = [Paragraph("Website Audit", styles["Title"]), Spacer(1, 10)]
    elements.append(Paragraph(f"Site: {_pdf_safe(_fmt(job.target_url))}", body_style))
    elements.append(Paragraph(f"Grade: {_fmt(summary.get('grade'))}", body_style))
    elements.append(Paragraph(f"Completed: {_fmt(job.completed_at)}", body_style))
    elements.append(Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}", body_style))
    elements.append(Spacer(1, 12))

    elements.append(Paragraph("Scores", styles["Heading2"]))
    for key, label in SCORE_LABELS:
        elements.append(Paragraph(f"{label}: {_fmt(metrics.get(key))}/100", body_style))
    elements.append(Spacer(1, 12))

    insights = _fmt(summary.get("insightsSummary"), fallback="")
    if insights:
        elements.append(Paragraph("Summary", styles["Heading2"]))
        elements.append(Paragraph(_pdf_safe(insights), body_style))
        elements.append(Spacer(1, 12))

    sections = [
        ("Priority Actions", [str(a) for a in summary.get("priorityActions") or []]),
        ("SEO Issues", _issue_lines(summary.get("seoIssues") or [])),
        ("Performance Issues", _issue_lines(summary.get("performanceIssues") or [])),
        ("PWA Issues", _issue_lines(summary.get("pwaIssues") or [])),
    ]
    for heading, lines in sections:
        if not lines:
            continue
        elements.append(Paragraph(heading, styles["Heading2"]))
        for line in lines:
            elements.append(Paragraph(f"- {_pdf_safe(line)}", body_style))
        elements.append(Spacer(1, 12))

    doc = SimpleDocTemplate(str(output), pagesize=A4, rightMargin=36, leftMargin=36, topMargin=36, bottomMargin=36)
    doc.build(elements)
    return str(output)
