"""Financial Planning Report Generator.

Uses reportlab to turn a dashboard summary (plus optional chart images
captured by the front end) into a multi-page A4 PDF:
- Branded header and executive summary metrics
- Income, expense, position, cash flow and retirement sections
- Tax optimization and investment property tables
- Numbered recommendations
- "Page X of Y" footer on every page
"""
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle,
    Image, HRFlowable, KeepTogether
)
from reportlab.graphics.shapes import Drawing, String
from reportlab.graphics.charts.piecharts import Pie
from reportlab.graphics.charts.barcharts import VerticalBarChart
from datetime import datetime
from typing import Dict, Any, List, Optional
import base64
import binascii
import io
import logging
import math
from xml.sax.saxutils import escape

from models import ChartType
from utils.formatting import format_locale_number, format_long_date

logger = logging.getLogger(__name__)

COMPANY_NAME = "Perpetual Wealth Partners"

CHART_TYPES = tuple(chart_type.value for chart_type in ChartType)

NUMERIC_FIELDS = (
    "totalAssets", "totalLiabilities", "netWorth",
    "monthlyIncome", "monthlyExpenses", "monthlyCashFlow",
    "projectedRetirementLumpSum", "retirementDeficitSurplus", "yearsToRetirement",
    "currentTax", "optimizedTax", "taxSavings",
    "investmentProperties", "totalPropertyValue", "totalPropertyDebt", "propertyEquity",
)

REPORT_COLORS = {
    "primary": "#2c3e50",
    "accent": "#3498db",
    "success": "#27ae60",
    "danger": "#e74c3c",
    "text": "#333333",
    "muted": "#777777",
    "highlight_bg": "#e8f5e9",
    "warning_bg": "#ffebee",
    "explanation_bg": "#f8f9fa",
}


class ReportDataError(ValueError):
    """Raised when the summary cannot be rendered."""


def hex_to_rgb(hex_color: str) -> tuple:
    """Convert hex color to RGB tuple for reportlab."""
    hex_color = hex_color.lstrip('#')
    return tuple(int(hex_color[i:i+2], 16) / 255 for i in (0, 2, 4))


def _color(name: str) -> colors.Color:
    return colors.Color(*hex_to_rgb(REPORT_COLORS[name]))


def _money(value: float) -> str:
    return f"${format_locale_number(value)}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def coerce_summary(summary: Any) -> Dict[str, Any]:
    """Fill in defaults so every section can render.

    Numeric fields that are missing or not numbers become 0; only string
    recommendations survive.
    """
    if summary is None or not isinstance(summary, dict):
        raise ReportDataError("Summary is required and must be an object")

    validated: Dict[str, Any] = {
        "clientName": str(summary.get("clientName") or "Client"),
    }
    for field in NUMERIC_FIELDS:
        value = summary.get(field)
        validated[field] = value if _is_number(value) else 0

    is_deficit = summary.get("isRetirementDeficit")
    validated["isRetirementDeficit"] = is_deficit if isinstance(is_deficit, bool) else False

    recommendations = summary.get("recommendations")
    if isinstance(recommendations, list):
        validated["recommendations"] = [r for r in recommendations if isinstance(r, str) and r]
    else:
        validated["recommendations"] = []

    return validated


def filter_charts(charts: Any) -> List[Dict[str, str]]:
    """Keep chart entries with a known type and an image data URL."""
    if not isinstance(charts, list):
        return []

    valid = []
    for chart in charts:
        if not isinstance(chart, dict):
            continue
        data_url = chart.get("dataUrl")
        if not isinstance(data_url, str) or not data_url.startswith("data:image/"):
            logger.warning(f"Skipping chart with invalid data URL: {chart.get('type')}")
            continue
        if chart.get("type") not in CHART_TYPES:
            logger.warning(f"Skipping chart with unknown type: {chart.get('type')}")
            continue
        valid.append({"type": chart["type"], "dataUrl": data_url})
    return valid


class NumberedCanvas(canvas.Canvas):
    """Canvas that defers page output so the footer can show the page total."""

    def __init__(self, *args, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []
        self.report_date = ""

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_footer(total_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def draw_footer(self, total_pages: int):
        width, _ = self._pagesize
        self.saveState()
        self.setFont("Helvetica", 8)
        self.setFillColor(_color("muted"))
        self.drawCentredString(
            width / 2, 25,
            f"Page {self._pageNumber} of {total_pages} | Generated on {self.report_date} | {COMPANY_NAME}"
        )
        self.restoreState()


class FinancialReportGenerator:
    """Render the Financial Planning Report PDF."""

    page_size = A4
    margin = 50
    # SimpleDocTemplate frames pad 6pt on every side
    frame_padding = 6

    def create_styles(self) -> Dict[str, ParagraphStyle]:
        base_styles = getSampleStyleSheet()
        primary = _color("primary")
        text = _color("text")

        return {
            "company": ParagraphStyle(
                'CompanyName',
                parent=base_styles['Title'],
                textColor=primary,
                fontSize=22,
                spaceAfter=6,
                alignment=TA_LEFT
            ),
            "client_info": ParagraphStyle(
                'ClientInfo',
                parent=base_styles['Normal'],
                textColor=_color("muted"),
                fontSize=10,
                leading=14,
            ),
            "title": ParagraphStyle(
                'ReportTitle',
                parent=base_styles['Title'],
                textColor=_color("accent"),
                fontSize=18,
                spaceBefore=12,
                spaceAfter=12,
                alignment=TA_LEFT
            ),
            "heading": ParagraphStyle(
                'SectionTitle',
                parent=base_styles['Heading2'],
                textColor=primary,
                fontSize=14,
                spaceBefore=14,
                spaceAfter=8,
            ),
            "explanation_title": ParagraphStyle(
                'ExplanationTitle',
                parent=base_styles['Normal'],
                textColor=primary,
                fontName='Helvetica-Bold',
                fontSize=11,
                spaceAfter=4,
            ),
            "body": ParagraphStyle(
                'ExplanationText',
                parent=base_styles['Normal'],
                textColor=text,
                fontSize=10,
                leading=14,
            ),
            "metric_value": ParagraphStyle(
                'MetricValue',
                parent=base_styles['Normal'],
                fontName='Helvetica-Bold',
                fontSize=16,
                leading=20,
                alignment=TA_CENTER,
            ),
            "metric_label": ParagraphStyle(
                'MetricLabel',
                parent=base_styles['Normal'],
                textColor=_color("muted"),
                fontSize=9,
                alignment=TA_CENTER,
            ),
        }

    def create_table_style(self) -> TableStyle:
        return TableStyle([
            # Header row
            ('BACKGROUND', (0, 0), (-1, 0), _color("primary")),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 10),
            ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
            ('TOPPADDING', (0, 0), (-1, 0), 8),

            # Data rows
            ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 1), (-1, -1), 9),
            ('BOTTOMPADDING', (0, 1), (-1, -1), 6),
            ('TOPPADDING', (0, 1), (-1, -1), 6),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.Color(0.97, 0.97, 0.97)]),

            ('GRID', (0, 0), (-1, -1), 0.5, colors.Color(0.8, 0.8, 0.8)),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ])

    def _box(self, title: str, text: str, styles: Dict[str, ParagraphStyle], background: str) -> Table:
        box = Table(
            [[Paragraph(title, styles["explanation_title"])], [Paragraph(text, styles["body"])]],
            colWidths=[self.page_size[0] - 2 * self.margin]
        )
        box.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), _color(background)),
            ('LEFTPADDING', (0, 0), (-1, -1), 12),
            ('RIGHTPADDING', (0, 0), (-1, -1), 12),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        return box

    # ------------------------------------------------------------------
    # Charts
    # ------------------------------------------------------------------

    def frame_size(self) -> tuple:
        """Width and height a single flowable can occupy on a page."""
        inset = 2 * (self.margin + self.frame_padding)
        return self.page_size[0] - inset, self.page_size[1] - inset

    def _raster_image(self, data_url: str) -> Optional[Image]:
        try:
            _, encoded = data_url.split(",", 1)
            raw = base64.b64decode(encoded)
            width, height = ImageReader(io.BytesIO(raw)).getSize()
        except (ValueError, binascii.Error, OSError) as e:
            logger.warning(f"Could not decode chart image: {e}")
            return None

        frame_width, frame_height = self.frame_size()
        if not width or not height:
            return None
        scale = min(frame_width / width, frame_height / height, 1.0)
        return Image(io.BytesIO(raw), width=width * scale, height=height * scale)

    def _pie_drawing(self, title: str, labels: List[str], values: List[float], palette: List[str]) -> Drawing:
        drawing = Drawing(400, 200)
        drawing.add(String(200, 185, title, fontName='Helvetica-Bold', fontSize=11,
                           fillColor=_color("primary"), textAnchor='middle'))

        pie = Pie()
        pie.x = 130
        pie.y = 15
        pie.width = 150
        pie.height = 150
        pie.data = values
        pie.labels = [f"{label}: {_money(value)}" for label, value in zip(labels, values)]
        pie.sideLabels = True
        pie.slices.strokeColor = colors.white
        for i, hex_color in enumerate(palette):
            pie.slices[i].fillColor = colors.Color(*hex_to_rgb(hex_color))
        drawing.add(pie)
        return drawing

    def _bar_drawing(self, title: str, labels: List[str], values: List[float], palette: List[str]) -> Drawing:
        drawing = Drawing(400, 200)
        drawing.add(String(200, 185, title, fontName='Helvetica-Bold', fontSize=11,
                           fillColor=_color("primary"), textAnchor='middle'))

        chart = VerticalBarChart()
        chart.x = 70
        chart.y = 30
        chart.width = 280
        chart.height = 140
        chart.data = [values]
        chart.categoryAxis.categoryNames = labels
        chart.valueAxis.valueMin = 0
        chart.valueAxis.valueMax = max(values + [1]) * 1.2
        chart.valueAxis.labelTextFormat = lambda v: _money(v)
        chart.barSpacing = 10
        for i, hex_color in enumerate(palette):
            chart.bars[(0, i)].fillColor = colors.Color(*hex_to_rgb(hex_color))
        drawing.add(chart)
        return drawing

    def _vector_chart(self, chart_type: str, summary: Dict[str, Any]) -> Optional[Drawing]:
        """Native redraw of an SVG chart from the summary figures."""
        if chart_type in ("assets", "liabilities"):
            values = [max(summary["totalAssets"], 0), max(summary["totalLiabilities"], 0)]
            if sum(values) <= 0:
                return None
            return self._pie_drawing("Assets vs Liabilities", ["Assets", "Liabilities"], values,
                                     [REPORT_COLORS["accent"], REPORT_COLORS["danger"]])
        if chart_type == "cashflow":
            return self._bar_drawing(
                "Monthly Cash Flow Analysis", ["Income", "Expenses"],
                [max(summary["monthlyIncome"], 0), max(summary["monthlyExpenses"], 0)],
                [REPORT_COLORS["success"], REPORT_COLORS["danger"]],
            )
        if chart_type == "retirement":
            return self._bar_drawing(
                "Retirement Projection", ["Projected Lump Sum", "Annual Surplus/Deficit"],
                [max(summary["projectedRetirementLumpSum"], 0), abs(summary["retirementDeficitSurplus"])],
                [REPORT_COLORS["accent"],
                 REPORT_COLORS["danger"] if summary["isRetirementDeficit"] else REPORT_COLORS["success"]],
            )
        return None

    def chart_flowable(self, charts: List[Dict[str, str]], chart_type: str, summary: Dict[str, Any]):
        chart = next((c for c in charts if c["type"] == chart_type), None)
        if not chart:
            return None

        data_url = chart["dataUrl"]
        if data_url.startswith("data:image/svg+xml"):
            drawing = self._vector_chart(chart_type, summary)
            if drawing is None:
                logger.info(f"No native drawing for SVG chart '{chart_type}', skipping")
            return drawing

        return self._raster_image(data_url)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _header(self, summary: Dict[str, Any], report_date: str, styles) -> list:
        return [
            Paragraph(COMPANY_NAME, styles["company"]),
            Paragraph(
                f"Report Date: {report_date}<br/>Prepared for: {escape(summary['clientName'])}",
                styles["client_info"]
            ),
            Paragraph("Financial Planning Report", styles["title"]),
            HRFlowable(width="100%", thickness=2, color=_color("accent"), spaceAfter=12),
        ]

    def _executive_summary(self, summary: Dict[str, Any], styles) -> list:
        cash_flow_color = REPORT_COLORS["success"] if summary["monthlyCashFlow"] >= 0 else REPORT_COLORS["danger"]
        metrics = [
            (summary["netWorth"], REPORT_COLORS["success"], "Net Worth"),
            (summary["monthlyCashFlow"], cash_flow_color, "Monthly Cash Flow"),
            (summary["taxSavings"], REPORT_COLORS["accent"], "Tax Savings Potential"),
        ]
        cells = [
            [Paragraph(f'<font color="{color}">{_money(value)}</font>', styles["metric_value"]),
             Paragraph(label, styles["metric_label"])]
            for value, color, label in metrics
        ]
        width = (self.page_size[0] - 2 * self.margin) / 3
        table = Table([cells], colWidths=[width] * 3)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), _color("explanation_bg")),
            ('BOX', (0, 0), (-1, -1), 0.5, colors.Color(0.85, 0.85, 0.85)),
            ('INNERGRID', (0, 0), (-1, -1), 0.5, colors.white),
            ('TOPPADDING', (0, 0), (-1, -1), 10),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 10),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]))
        return [Paragraph("Executive Summary", styles["heading"]), table]

    def _income_section(self, summary, charts, styles) -> list:
        monthly = summary["monthlyIncome"]
        text = (
            f"Your total annual income is {_money(monthly * 12)}, which breaks down to "
            f"{_money(monthly)} per month.<br/><br/>"
            "• Primary income source: Employment income<br/>"
            "• Additional income streams: Rental and investment income provide diversification<br/>"
            "• Recommendation: Consider increasing passive income sources to build financial resilience"
        )
        elements = [Paragraph("Income Analysis", styles["heading"])]
        chart = self.chart_flowable(charts, "income", summary)
        if chart is not None:
            elements.append(chart)
        elements.append(self._box("Understanding Your Income", text, styles, "explanation_bg"))
        return elements

    def _expense_section(self, summary, charts, styles) -> list:
        income = summary["monthlyIncome"]
        expenses = summary["monthlyExpenses"]
        share = f"{expenses / income * 100:.1f}" if income > 0 else "0"
        text = (
            f"Your monthly expenses total {_money(expenses)}, representing {share}% of your monthly income."
            "<br/><br/>"
            "• Work-related expenses: Tax-deductible expenses that reduce your taxable income<br/>"
            "• Investment expenses: Costs associated with managing your investment portfolio<br/>"
            "• Recommendation: Review expense categories regularly to identify optimization opportunities"
        )
        elements = [Paragraph("Expense Breakdown", styles["heading"])]
        chart = self.chart_flowable(charts, "expenses", summary)
        if chart is not None:
            elements.append(chart)
        elements.append(self._box("Understanding Your Expenses", text, styles, "explanation_bg"))
        return elements

    def _position_section(self, summary, charts, styles, table_style) -> list:
        assets = summary["totalAssets"]
        liabilities = summary["totalLiabilities"]
        ratio = f"{liabilities / assets * 100:.1f}" if assets > 0 else "0"
        text = (
            f"Your total assets of {_money(assets)} are offset by liabilities of {_money(liabilities)}, "
            f"resulting in a net worth of {_money(summary['netWorth'])}.<br/><br/>"
            "• Asset allocation: Diversification across property, superannuation, and investments<br/>"
            f"• Debt-to-asset ratio: {ratio}% (lower is generally better)<br/>"
            "• Recommendation: Focus on building assets while strategically managing debt"
        )
        elements = [Paragraph("Assets &amp; Liabilities Overview", styles["heading"])]
        chart = self.chart_flowable(charts, "assets", summary)
        if chart is None:
            chart = self.chart_flowable(charts, "liabilities", summary)
        if chart is not None:
            elements.append(chart)
        elements.append(self._box("Understanding Your Financial Position", text, styles, "explanation_bg"))

        table = Table(
            [["Position", "Amount"],
             ["Total Assets", _money(assets)],
             ["Total Liabilities", _money(liabilities)],
             ["Net Worth", _money(summary["netWorth"])]],
            colWidths=[250, 150]
        )
        table.setStyle(table_style)
        elements.extend([Spacer(1, 10), table])
        return elements

    def _cash_flow_section(self, summary, charts, styles) -> list:
        cash_flow = summary["monthlyCashFlow"]
        income = summary["monthlyIncome"]
        savings_rate = f"{cash_flow / income * 100:.1f}" if income > 0 else "0"
        if cash_flow >= 0:
            title = "Positive Cash Flow"
            text = (
                f"You have a positive monthly cash flow of {_money(cash_flow)}, representing a savings rate "
                f"of {savings_rate}%. This surplus can be used for investments, debt reduction, or building "
                "emergency funds."
            )
            background = "highlight_bg"
        else:
            title = "Negative Cash Flow"
            text = (
                f"Your monthly expenses exceed income by {_money(abs(cash_flow))}. Consider reviewing expenses, "
                "increasing income, or adjusting your financial strategy."
            )
            background = "warning_bg"

        elements = [Paragraph("Cash Flow Analysis", styles["heading"])]
        chart = self.chart_flowable(charts, "cashflow", summary)
        if chart is not None:
            elements.append(chart)
        elements.append(self._box(title, text, styles, background))
        return elements

    def _retirement_section(self, summary, charts, styles) -> list:
        if summary["isRetirementDeficit"]:
            title = "Retirement Planning Alert"
            text = (
                "Based on current projections, you may face a retirement shortfall. With "
                f"{format_locale_number(summary['yearsToRetirement'])} years until retirement, consider "
                "increasing superannuation contributions or adjusting your retirement timeline."
            )
            background = "warning_bg"
        else:
            title = "Retirement On Track"
            text = (
                "Your retirement planning is on track. Your projected retirement lump sum of "
                f"{_money(summary['projectedRetirementLumpSum'])} provides a solid foundation for your "
                "retirement years."
            )
            background = "highlight_bg"

        elements = [Paragraph("Retirement Planning", styles["heading"])]
        chart = self.chart_flowable(charts, "retirement", summary)
        if chart is not None:
            elements.append(chart)
        elements.append(self._box(title, text, styles, background))
        return elements

    def _tax_section(self, summary, styles, table_style) -> list:
        if not (summary["currentTax"] or summary["optimizedTax"] or summary["taxSavings"]):
            return []
        table = Table(
            [["Tax Position", "Amount"],
             ["Current Tax", _money(summary["currentTax"])],
             ["Optimized Tax", _money(summary["optimizedTax"])],
             ["Potential Savings", _money(summary["taxSavings"])]],
            colWidths=[250, 150]
        )
        table.setStyle(table_style)
        return [Paragraph("Tax Optimization", styles["heading"]), table]

    def _property_section(self, summary, styles, table_style) -> list:
        if summary["investmentProperties"] <= 0:
            return []
        table = Table(
            [["Investment Properties", "Value"],
             ["Number of Properties", format_locale_number(summary["investmentProperties"])],
             ["Total Property Value", _money(summary["totalPropertyValue"])],
             ["Total Property Debt", _money(summary["totalPropertyDebt"])],
             ["Property Equity", _money(summary["propertyEquity"])]],
            colWidths=[250, 150]
        )
        table.setStyle(table_style)
        return [Paragraph("Investment Properties", styles["heading"]), table]

    def _recommendations(self, summary, styles) -> list:
        elements = [Paragraph("Recommendations &amp; Action Items", styles["heading"])]
        for index, recommendation in enumerate(summary["recommendations"], start=1):
            elements.append(Paragraph(f"{index}. {escape(recommendation)}", styles["body"]))
            elements.append(Spacer(1, 6))
        return elements

    def generate(self, summary: Any, charts: Any = None, now: Optional[datetime] = None) -> io.BytesIO:
        """Build the report PDF.

        Raises ReportDataError when summary is missing or not a mapping.
        """
        validated = coerce_summary(summary)
        valid_charts = filter_charts(charts)
        report_date = format_long_date(now)

        logger.info(
            f"Generating report for {validated['clientName']} "
            f"({len(valid_charts)} charts, {len(validated['recommendations'])} recommendations)"
        )

        styles = self.create_styles()
        table_style = self.create_table_style()

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self.page_size,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title="Financial Planning Report",
            author=COMPANY_NAME,
        )

        elements = []
        elements.extend(self._header(validated, report_date, styles))
        elements.extend(self._executive_summary(validated, styles))
        elements.append(Spacer(1, 10))
        elements.append(KeepTogether(self._income_section(validated, valid_charts, styles)))
        elements.append(KeepTogether(self._expense_section(validated, valid_charts, styles)))
        elements.append(KeepTogether(self._position_section(validated, valid_charts, styles, table_style)))
        elements.append(KeepTogether(self._cash_flow_section(validated, valid_charts, styles)))
        elements.append(KeepTogether(self._retirement_section(validated, valid_charts, styles)))
        elements.extend(self._tax_section(validated, styles, table_style))
        elements.extend(self._property_section(validated, styles, table_style))
        elements.extend(self._recommendations(validated, styles))

        def make_canvas(*args, **kwargs):
            report_canvas = NumberedCanvas(*args, **kwargs)
            report_canvas.report_date = report_date
            return report_canvas

        doc.build(elements, canvasmaker=make_canvas)
        buffer.seek(0)
        return buffer


# Singleton instance
report_generator = FinancialReportGenerator()
