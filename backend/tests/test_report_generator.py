"""
PDF report generation from a dashboard summary.
"""
import base64
import struct
import zlib
import pytest
from datetime import datetime

from models import ChartType
from services.report_generator import report_generator, coerce_summary, filter_charts, ReportDataError, hex_to_rgb
from services.svg_charts import build_chart, svg_to_data_url


def png_data_url(width, height):
    """Solid white RGB PNG of the given size as a data URL."""
    def chunk(tag, data):
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", zlib.crc32(tag + data) & 0xffffffff)

    rows = b"".join(b"\x00" + b"\xff\xff\xff" * width for _ in range(height))
    png = (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0))
        + chunk(b"IDAT", zlib.compress(rows))
        + chunk(b"IEND", b"")
    )
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


SUMMARY = {
    "clientName": "Sarah Mitchell",
    "totalAssets": 1650000,
    "totalLiabilities": 890000,
    "netWorth": 760000,
    "monthlyIncome": 14250,
    "monthlyExpenses": 9800,
    "monthlyCashFlow": 4450,
    "projectedRetirementLumpSum": 2100000,
    "retirementDeficitSurplus": -850,
    "isRetirementDeficit": True,
    "yearsToRetirement": 21,
    "currentTax": 38000,
    "optimizedTax": 34500,
    "taxSavings": 3500,
    "recommendations": ["Increase concessional super contributions", "Review home loan rate"],
}


def test_coerce_summary_requires_an_object():
    with pytest.raises(ReportDataError):
        coerce_summary(None)
    with pytest.raises(ReportDataError):
        coerce_summary(["not", "a", "dict"])


def test_coerce_summary_fills_defaults():
    validated = coerce_summary({
        "totalAssets": "abc",
        "netWorth": float("nan"),
        "isRetirementDeficit": "yes",
        "recommendations": ["Keep", 3, ""],
    })
    assert validated["clientName"] == "Client"
    assert validated["totalAssets"] == 0
    assert validated["netWorth"] == 0
    assert validated["isRetirementDeficit"] is False
    assert validated["recommendations"] == ["Keep"]


def test_filter_charts_drops_bad_entries():
    charts = [
        {"type": "income", "dataUrl": "data:image/png;base64,AAAA"},
        {"type": "radar", "dataUrl": "data:image/png;base64,AAAA"},
        {"type": "assets", "dataUrl": "http://example.com/chart.png"},
        "junk",
    ]
    assert filter_charts(charts) == [{"type": "income", "dataUrl": "data:image/png;base64,AAAA"}]
    assert filter_charts(None) == []


def test_filter_charts_keeps_every_chart_type():
    charts = [{"type": chart_type.value, "dataUrl": "data:image/png;base64,AAAA"} for chart_type in ChartType]
    assert [c["type"] for c in filter_charts(charts)] == ["income", "expenses", "assets", "liabilities", "cashflow", "retirement"]


def test_hex_to_rgb():
    assert hex_to_rgb("#ff0000") == (1.0, 0.0, 0.0)


def test_generate_produces_pdf():
    pdf = report_generator.generate(SUMMARY, [], now=datetime(2026, 10, 19))
    data = pdf.getvalue()
    assert data.startswith(b"%PDF")
    assert len(data) > 1000


def test_generate_with_svg_charts():
    charts = [
        {"type": chart_type, "dataUrl": svg_to_data_url(build_chart(chart_type, {"income": 1, "expenses": 1}))}
        for chart_type in ("cashflow", "assets", "retirement", "income")
    ]
    pdf = report_generator.generate(SUMMARY, charts)
    assert pdf.getvalue().startswith(b"%PDF")


def test_generate_with_minimal_summary():
    pdf = report_generator.generate({})
    assert pdf.getvalue().startswith(b"%PDF")


def test_generate_rejects_missing_summary():
    with pytest.raises(ReportDataError):
        report_generator.generate(None)


def test_tall_chart_image_is_scaled_into_the_frame():
    frame_width, frame_height = report_generator.frame_size()
    image = report_generator._raster_image(png_data_url(400, 1200))
    assert image.drawHeight == pytest.approx(frame_height)
    assert image.drawWidth == pytest.approx(400 * frame_height / 1200)

    pdf = report_generator.generate({"clientName": "X"}, [{"type": "income", "dataUrl": png_data_url(400, 1200)}])
    assert pdf.getvalue().startswith(b"%PDF")


def test_wide_chart_image_is_scaled_to_frame_width():
    frame_width, _ = report_generator.frame_size()
    image = report_generator._raster_image(png_data_url(900, 300))
    assert image.drawWidth == pytest.approx(frame_width)
    assert image.drawHeight == pytest.approx(300 * frame_width / 900)


def test_small_chart_image_keeps_its_size():
    image = report_generator._raster_image(png_data_url(200, 100))
    assert (image.drawWidth, image.drawHeight) == (200, 100)


def test_markup_in_client_text_is_escaped():
    pdf = report_generator.generate({"clientName": "Lee & <Sons>", "recommendations": ["Pay <b> & save"]})
    assert pdf.getvalue().startswith(b"%PDF")
