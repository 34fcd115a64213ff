"""PDF report of a contract review."""
import io
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from contract_review import models

RISK_COLORS = {"high": "#dc2626", "medium": "#eab308", "low": "#22c55e"}
RISK_LABELS = {"high": "High Risk", "medium": "Medium Risk", "low": "Low Risk"}
RISK_ORDER = {"high": 0, "medium": 1, "low": 2}


def _text(value) -> str:
    return escape(str(value)) if value else "-"


def build_review_report(contract: models.Contract, review: models.ContractReview) -> bytes:
    """Render contract details, score, risks and checklist as a PDF."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        title="Contract Analysis Report",
        leftMargin=20 * mm,
        rightMargin=20 * mm,
    )
    styles = getSampleStyleSheet()
    story = [Paragraph("Contract Analysis Report", styles["Title"]), Spacer(1, 6 * mm)]

    # Contract information
    story.append(Paragraph("Contract Information", styles["Heading2"]))
    info_rows = [
        ["Title", contract.contract_title or "Untitled"],
        ["Type", contract.contract_type or "-"],
        ["File", contract.file_name],
        ["Counterparty", contract.counterparty or "-"],
        ["Analyzed with", review.ai_model or "-"],
    ]
    info_table = Table(info_rows, colWidths=[40 * mm, 120 * mm])
    info_table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    story.extend([info_table, Spacer(1, 6 * mm)])

    # Overall assessment
    story.append(Paragraph("Overall Assessment", styles["Heading2"]))
    level_color = RISK_COLORS.get(review.risk_level, "#000000")
    story.append(Paragraph(
        f'<font color="{level_color}"><b>{RISK_LABELS.get(review.risk_level, review.risk_level)}</b></font>'
        f" &nbsp; Score: {review.overall_score}/100",
        styles["Normal"],
    ))
    if review.summary:
        story.append(Spacer(1, 2 * mm))
        story.append(Paragraph(_text(review.summary), styles["Normal"]))
    story.append(Spacer(1, 6 * mm))

    # Risk items, most severe first
    risk_items = sorted(
        review.risk_items,
        key=lambda item: (RISK_ORDER.get(item.risk_level, 3), item.position),
    )
    story.append(Paragraph(f"Risks ({len(risk_items)})", styles["Heading2"]))
    for item in risk_items:
        label = RISK_LABELS.get(item.risk_level, item.risk_level)
        story.append(Paragraph(
            f"<b>[{label}] {_text(item.risk_type)}</b> - {_text(item.section_title)}",
            styles["Heading4"],
        ))
        for caption, value in (
            ("Original", item.original_text),
            ("Suggested", item.suggested_text),
            ("Reason", item.reason),
            ("Legal basis", item.legal_basis),
        ):
            story.append(Paragraph(f"<b>{caption}:</b> {_text(value)}", styles["Normal"]))
        story.append(Spacer(1, 3 * mm))

    # Checklist
    checklist = review.checklist or []
    if checklist:
        story.append(Paragraph("Checklist", styles["Heading2"]))
        rows = [["", "Item", "Note"]]
        for entry in checklist:
            rows.append([
                "OK" if entry.get("checked") else "NG",
                Paragraph(_text(entry.get("item")), styles["Normal"]),
                Paragraph(_text(entry.get("note")), styles["Normal"]),
            ])
        checklist_table = Table(rows, colWidths=[12 * mm, 80 * mm, 68 * mm])
        checklist_table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))
        story.append(checklist_table)

    doc.build(story)
    return buffer.getvalue()
