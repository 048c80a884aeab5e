"""
unexplained_archive/services/case_export_service.py
Case report export (PDF and plain text).

The PDF is built with ReportLab platypus flowables, so long descriptions and
comment threads paginate on their own.
"""
import logging
from io import BytesIO
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from unexplained_archive.schemas.case import Case
from unexplained_archive.schemas.community import Comment
from unexplained_archive.schemas.team import TeamMember
from unexplained_archive.services.fees import format_eur

logger = logging.getLogger(__name__)


class CaseExportService:
    """Renders a case, its team, evidence and comments as a report."""

    ACCENT = colors.Color(0.118, 0.161, 0.231)  # #1E293B
    MUTED = colors.Color(0.392, 0.455, 0.545)   # #64748B

    def __init__(self):
        styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle(
            "CaseTitle", parent=styles["Title"], fontSize=20, textColor=self.ACCENT, spaceAfter=6 * mm
        )
        self.heading_style = ParagraphStyle(
            "CaseHeading", parent=styles["Heading2"], textColor=self.ACCENT, spaceBefore=6 * mm
        )
        self.body_style = styles["BodyText"]
        self.meta_style = ParagraphStyle("CaseMeta", parent=styles["BodyText"], textColor=self.MUTED, fontSize=9)

    @staticmethod
    def _p(text: Optional[str]) -> str:
        return escape(text or "").replace("\n", "<br/>")

    def export_pdf(
        self,
        case: Case,
        team: Optional[List[TeamMember]] = None,
        comments: Optional[List[Comment]] = None,
    ) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=20 * mm,
            rightMargin=20 * mm,
            topMargin=20 * mm,
            bottomMargin=20 * mm,
            title=case.title,
        )

        story = [Paragraph(self._p(case.title), self.title_style)]

        details = [
            ["Case ID", case.id],
            ["Category", case.category.value],
            ["Status", case.status.value],
            ["Reward", format_eur(case.reward)],
        ]
        if case.location:
            details.append(["Location", case.location])
        if case.incident_date:
            details.append(["Incident date", case.incident_date])
        if case.created_at:
            details.append(["Submitted", case.created_at.strftime("%Y-%m-%d %H:%M")])

        table = Table(details, colWidths=[35 * mm, 125 * mm])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("TEXTCOLOR", (0, 0), (0, -1), self.ACCENT),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ("LINEBELOW", (0, 0), (-1, -2), 0.25, colors.lightgrey),
        ]))
        story.append(table)

        story.append(Paragraph("Description", self.heading_style))
        story.append(Paragraph(self._p(case.description), self.body_style))

        if case.detailed_description:
            story.append(Paragraph("Detailed Description", self.heading_style))
            story.append(Paragraph(self._p(case.detailed_description), self.body_style))

        if case.resolution_proposal:
            story.append(Paragraph("Proposed Resolution", self.heading_style))
            story.append(Paragraph(self._p(case.resolution_proposal), self.body_style))

        if team:
            story.append(Paragraph("Investigation Team", self.heading_style))
            rows = [["Investigator", "Role", "Share"]]
            for member in team:
                rows.append([
                    member.username or member.investigator_id,
                    member.role.value,
                    f"{member.contribution_percentage}%",
                ])
            team_table = Table(rows, colWidths=[80 * mm, 40 * mm, 40 * mm])
            team_table.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), self.ACCENT),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
            ]))
            story.append(team_table)

        if case.evidence_files:
            story.append(Paragraph("Evidence", self.heading_style))
            for index, evidence in enumerate(case.evidence_files, start=1):
                story.append(Paragraph(f"{index}. {self._p(evidence.name)} ({evidence.type})", self.body_style))
                story.append(Paragraph(self._p(evidence.url), self.meta_style))

        if comments:
            story.append(Paragraph(f"Comments ({len(comments)})", self.heading_style))
            for comment in comments:
                when = comment.created_at.strftime("%Y-%m-%d %H:%M") if comment.created_at else ""
                author = comment.username or "Unknown"
                story.append(Paragraph(f"{self._p(author)} {when}", self.meta_style))
                story.append(Paragraph(self._p(comment.content), self.body_style))
                story.append(Spacer(1, 2 * mm))

        doc.build(story)
        pdf = buffer.getvalue()
        logger.info(f"Exported case {case.id} as PDF ({len(pdf)} bytes)")
        return pdf

    @staticmethod
    def export_text(
        case: Case,
        team: Optional[List[TeamMember]] = None,
        comments: Optional[List[Comment]] = None,
    ) -> str:
        lines = [
            "=== CASE REPORT ===",
            "",
            f"Title: {case.title}",
            f"Case ID: {case.id}",
            f"Category: {case.category.value}",
            f"Status: {case.status.value}",
        ]
        if case.location:
            lines.append(f"Location: {case.location}")
        lines.append(f"Reward: {format_eur(case.reward)}")
        lines += ["", "=== DESCRIPTION ===", case.description, ""]

        if case.detailed_description:
            lines += ["=== DETAILED DESCRIPTION ===", case.detailed_description, ""]

        if team:
            lines.append("=== INVESTIGATION TEAM ===")
            lines += [f"- {m.username or m.investigator_id} ({m.role.value})" for m in team]
            lines.append("")

        if case.evidence_files:
            lines.append("=== EVIDENCE ===")
            for index, evidence in enumerate(case.evidence_files, start=1):
                lines.append(f"{index}. {evidence.name}: {evidence.url}")
            lines.append("")

        if comments:
            lines.append(f"=== COMMENTS ({len(comments)}) ===")
            for comment in comments:
                lines.append(f"[{comment.username or 'Unknown'}] {comment.content}")

        return "\n".join(lines) + "\n"


case_export_service = CaseExportService()
