from __future__ import annotations

import io
from html import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.config import Settings, settings as default_settings
from app.recurrence import YearMonth
from app.services.report_service import SpendingBreakdown

PRIMARY = colors.HexColor("#7C3AED")
SECONDARY = colors.HexColor("#DB2777")
STRIPE = colors.HexColor("#F5F3FF")


class PdfReportService:
    """Monthly statement: summary, category utilization and the transaction ledger."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    def _money(self, value) -> str:
        return f"{self.config.CURRENCY_SYMBOL} {float(value):,.2f}"

    @staticmethod
    def filename(month: YearMonth) -> str:
        return f"SpendWise-Report-{month}.pdf"

    def render_monthly(self, *, user_name: str, month: YearMonth, breakdown: SpendingBreakdown) -> bytes:
        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=A4,
            leftMargin=20 * mm,
            rightMargin=20 * mm,
            topMargin=20 * mm,
            bottomMargin=20 * mm,
            title=f"SpendWise Analysis Report {month}",
            author="SpendWise",
        )
        styles = getSampleStyleSheet()
        styles.add(ParagraphStyle(name="ReportTitle", parent=styles["Title"], textColor=PRIMARY))
        styles.add(ParagraphStyle(name="Section", parent=styles["Heading3"], spaceBefore=12))
        story = []

        month_name = month.first_day.strftime("%B %Y")
        story.append(Paragraph("SPENDWISE ANALYSIS REPORT", styles["ReportTitle"]))
        story.append(Paragraph(f"{month_name} Financial Statement for {escape(user_name)}", styles["Normal"]))
        story.append(Spacer(1, 12))

        story.append(Paragraph("FINANCIAL SUMMARY", styles["Section"]))
        summary = Table(
            [
                ["Total Monthly Expenditure:", self._money(breakdown.total)],
                ["Total Transactions Count:", str(breakdown.count)],
            ],
            colWidths=[80 * mm, 80 * mm],
        )
        summary.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
            ("FONTNAME", (1, 0), (1, -1), "Helvetica-Bold"),
            ("TEXTCOLOR", (1, 0), (1, 0), PRIMARY),
            ("LINEABOVE", (0, 0), (-1, 0), 0.5, colors.lightgrey),
        ]))
        story.append(summary)

        story.append(Paragraph("CATEGORY UTILIZATION", styles["Section"]))
        cdata = [["Category", "Amount", "Allocation"]]
        for item in breakdown.items:
            cdata.append([item.name, self._money(item.amount), f"{item.percentage:.1f}%"])
        ctable = Table(cdata, colWidths=[80 * mm, 50 * mm, 40 * mm], repeatRows=1)
        ctable.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), PRIMARY),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, STRIPE]),
            ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ]))
        story.append(ctable)

        story.append(Paragraph("TRANSACTION LEDGER", styles["Section"]))
        ldata = [["Date", "Description", "Category", "Amount"]]
        for e in breakdown.expenses:
            category_name = e.category.name if e.category else "N/A"
            ldata.append([
                e.date.strftime("%d %b %Y"),
                e.description or category_name or "Transaction",
                category_name,
                self._money(e.amount),
            ])
        ltable = Table(ldata, colWidths=[30 * mm, 65 * mm, 40 * mm, 35 * mm], repeatRows=1)
        ltable.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), SECONDARY),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
            ("ALIGN", (-1, 0), (-1, -1), "RIGHT"),
        ]))
        story.append(ltable)

        def _footer(canvas, document):
            canvas.saveState()
            canvas.setFont("Helvetica", 9)
            canvas.setFillColor(colors.grey)
            canvas.drawCentredString(A4[0] / 2, 10 * mm, f"Generated by SpendWise - Page {document.page}")
            canvas.restoreState()

        doc.build(story, onFirstPage=_footer, onLaterPages=_footer)
        return buf.getvalue()
