"""SVG chart builders for dashboards and PDF reports.

Every builder is a pure function returning a standalone SVG document
string. Text is XML-escaped. svg_to_data_url() turns the markup into a
data URL the front end can drop into an <img> or send back to the PDF
generator.
"""
from typing import Dict, Any, List, Optional, Sequence
from urllib.parse import quote
import html
import math
import re

from services import premium_charts
from utils.formatting import format_locale_number, round_half_up

COLORS = {
    "primary": "#2c3e50",
    "success": "#27ae60",
    "warning": "#f39c12",
    "danger": "#e74c3c",
    "info": "#3498db",
    "purple": "#9b59b6",
    "teal": "#1abc9c",
    "orange": "#e67e22",
    "gray": "#95a5a6",
    "lightGray": "#ecf0f1",
    "white": "#ffffff",
    "text": "#333333",
    "textLight": "#777777",
    "grid": "#e0e0e0",
}

PADDING = {"top": 40, "right": 30, "bottom": 50, "left": 70}

LINE_WIDTH = 2.5
POINT_RADIUS = 4
GRID_WIDTH = 1
GRID_LINES = 5

DEFAULT_PIE_COLORS = [
    COLORS["info"], COLORS["success"], COLORS["warning"],
    COLORS["danger"], COLORS["purple"], COLORS["teal"],
]

SVG_HEADER = '<?xml version="1.0" encoding="UTF-8"?>'


def _esc(value: Any) -> str:
    return html.escape(str(value), quote=True)


def _num(value: float) -> str:
    """Compact coordinate formatting (no trailing .0)."""
    value = round(value, 2)
    if value == int(value):
        return str(int(value))
    return f"{value:g}"


def _open_svg(width: int, height: int, title: str, title_size: int = 14) -> List[str]:
    return [
        SVG_HEADER,
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" xmlns="http://www.w3.org/2000/svg">',
        f'  <rect width="{width}" height="{height}" fill="{COLORS["white"]}"/>',
        f'  <text x="{_num(width / 2)}" y="25" font-size="{title_size}" font-weight="bold" '
        f'text-anchor="middle" fill="{COLORS["primary"]}">{_esc(title)}</text>',
    ]


def _axes(width: int, height: int, padding: Dict[str, int]) -> str:
    return (
        f'  <line x1="{padding["left"]}" y1="{padding["top"]}" x2="{padding["left"]}" y2="{height - padding["bottom"]}" '
        f'stroke="{COLORS["text"]}" stroke-width="1.5"/>\n'
        f'  <line x1="{padding["left"]}" y1="{height - padding["bottom"]}" x2="{width - padding["right"]}" '
        f'y2="{height - padding["bottom"]}" stroke="{COLORS["text"]}" stroke-width="1.5"/>'
    )


def _finite(values: Sequence[Any]) -> List[Optional[float]]:
    cleaned = []
    for value in values:
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            cleaned.append(float(value))
        else:
            cleaned.append(None)
    return cleaned


# ============================================================================
# LINE
# ============================================================================

def create_line_chart(
    title: str,
    labels: List[str],
    values: List[float],
    color: str = COLORS["info"],
    width: int = 600,
    height: int = 300,
    y_axis_label: str = "Value",
    x_axis_label: str = "Time"
) -> str:
    """Line chart with a five-step dollar grid and a marker on every point."""
    plot_width = width - PADDING["left"] - PADDING["right"]
    plot_height = height - PADDING["top"] - PADDING["bottom"]

    points = _finite(values)
    max_value = max([v for v in points if v is not None] + [0])
    value_range = max_value or 1
    x_scale = plot_width / ((len(points) - 1) or 1)

    parts = _open_svg(width, height, title)

    for i in range(GRID_LINES + 1):
        y = PADDING["top"] + plot_height * i / GRID_LINES
        grid_value = max_value - max_value * i / GRID_LINES
        parts.append(
            f'  <line x1="{PADDING["left"]}" y1="{_num(y)}" x2="{width - PADDING["right"]}" y2="{_num(y)}" '
            f'stroke="{COLORS["grid"]}" stroke-width="{GRID_WIDTH}"/>'
        )
        parts.append(
            f'  <text x="{PADDING["left"] - 10}" y="{_num(y + 5)}" font-size="10" text-anchor="end" '
            f'fill="{COLORS["textLight"]}">${format_locale_number(round_half_up(grid_value, 0))}</text>'
        )

    parts.append(
        f'  <text x="15" y="{_num(height / 2)}" font-size="11" text-anchor="middle" fill="{COLORS["textLight"]}" '
        f'transform="rotate(-90, 15, {_num(height / 2)})">{_esc(y_axis_label)}</text>'
    )
    parts.append(_axes(width, height, PADDING))

    valid = [(index, value) for index, value in enumerate(points) if value is not None]
    if valid:
        coords = [
            (PADDING["left"] + index * x_scale, height - PADDING["bottom"] - value / value_range * plot_height)
            for index, value in valid
        ]
        polyline = " ".join(f"{_num(x)},{_num(y)}" for x, y in coords)
        parts.append(
            f'  <polyline points="{polyline}" fill="none" stroke="{color}" stroke-width="{LINE_WIDTH}" '
            f'stroke-linecap="round" stroke-linejoin="round"/>'
        )

        label_step = math.ceil(len(labels) / 5) if labels else 1
        for position, ((index, _), (x, y)) in enumerate(zip(valid, coords)):
            parts.append(f'  <circle cx="{_num(x)}" cy="{_num(y)}" r="{POINT_RADIUS}" fill="{color}"/>')
            if index < len(labels) and (position % label_step == 0 or position == len(labels) - 1):
                parts.append(
                    f'  <text x="{_num(x)}" y="{height - PADDING["bottom"] + 20}" font-size="10" text-anchor="middle" '
                    f'fill="{COLORS["text"]}">{_esc(labels[index])}</text>'
                )

    parts.append(
        f'  <text x="{_num(width / 2)}" y="{height - 10}" font-size="11" text-anchor="middle" '
        f'fill="{COLORS["textLight"]}">{_esc(x_axis_label)}</text>'
    )
    parts.append("</svg>")
    return "\n".join(parts)


# ============================================================================
# BARS
# ============================================================================

def create_horizontal_bar_chart(
    title: str,
    data: List[Dict[str, Any]],
    width: int = 500,
    height: int = 250,
    show_values: bool = True
) -> str:
    """data: [{label, value, color}]. Bars are scaled to the largest value."""
    padding = {"top": 40, "right": 30, "bottom": 30, "left": 150}
    plot_height = height - padding["top"] - padding["bottom"]
    plot_width = width - padding["left"] - padding["right"]
    bar_height = plot_height / (len(data) or 1)
    max_value = max([item.get("value") or 0 for item in data] + [1])

    parts = _open_svg(width, height, title)

    for index, item in enumerate(data):
        value = item.get("value") or 0
        y = padding["top"] + index * bar_height
        bar_width = value / max_value * plot_width
        parts.append(
            f'  <rect x="{padding["left"]}" y="{_num(y)}" width="{_num(bar_width)}" height="{_num(bar_height * 0.7)}" '
            f'fill="{item.get("color") or COLORS["info"]}" rx="4"/>'
        )
        parts.append(
            f'  <text x="{padding["left"] - 10}" y="{_num(y + bar_height * 0.45)}" font-size="11" text-anchor="end" '
            f'fill="{COLORS["text"]}">{_esc(item.get("label", ""))}</text>'
        )
        if show_values:
            parts.append(
                f'  <text x="{_num(padding["left"] + bar_width + 8)}" y="{_num(y + bar_height * 0.45)}" font-size="11" '
                f'fill="{COLORS["text"]}" font-weight="bold">${round_half_up(value, 0):,.0f}</text>'
            )

    parts.append("</svg>")
    return "\n".join(parts)


def create_stacked_bar_chart(
    title: str,
    categories: List[str],
    series: List[Dict[str, Any]],
    width: int = 500,
    height: int = 300
) -> str:
    """series: [{name, values, color}] with one value per category."""
    plot_width = width - PADDING["left"] - PADDING["right"]
    plot_height = height - PADDING["top"] - PADDING["bottom"]
    slot = plot_width / (len(categories) or 1)
    bar_width = min(slot * 0.6, 60)

    def value_at(s: Dict[str, Any], index: int) -> float:
        values = s.get("values") or []
        return values[index] if index < len(values) and values[index] else 0

    totals = [sum(value_at(s, i) for s in series) for i in range(len(categories))]
    max_value = max(totals + [1])
    y_scale = plot_height / max_value

    parts = _open_svg(width, height, title)

    for i in range(GRID_LINES + 1):
        y = PADDING["top"] + plot_height * i / GRID_LINES
        grid_value = max_value - max_value * i / GRID_LINES
        parts.append(
            f'  <line x1="{PADDING["left"]}" y1="{_num(y)}" x2="{width - PADDING["right"]}" y2="{_num(y)}" '
            f'stroke="{COLORS["grid"]}" stroke-width="{GRID_WIDTH}"/>'
        )
        parts.append(
            f'  <text x="{PADDING["left"] - 10}" y="{_num(y + 5)}" font-size="9" text-anchor="end" '
            f'fill="{COLORS["textLight"]}">${round_half_up(grid_value / 1000, 0):.0f}k</text>'
        )

    parts.append(_axes(width, height, PADDING))

    for index, category in enumerate(categories):
        x = PADDING["left"] + index * slot + (slot - bar_width) / 2
        current_y = height - PADDING["bottom"]
        for s in series:
            segment = value_at(s, index) * y_scale
            current_y -= segment
            parts.append(
                f'  <rect x="{_num(x)}" y="{_num(current_y)}" width="{_num(bar_width)}" height="{_num(segment)}" '
                f'fill="{s.get("color") or COLORS["info"]}" stroke="{COLORS["white"]}" stroke-width="1"/>'
            )
        parts.append(
            f'  <text x="{_num(x + bar_width / 2)}" y="{height - PADDING["bottom"] + 20}" font-size="10" '
            f'text-anchor="middle" fill="{COLORS["text"]}">{_esc(category)}</text>'
        )

    legend_x = width - PADDING["right"] - 120
    legend_y = PADDING["top"] + 10
    for index, s in enumerate(series):
        y = legend_y + index * 20
        parts.append(f'  <rect x="{legend_x}" y="{y}" width="12" height="12" fill="{s.get("color") or COLORS["info"]}"/>')
        parts.append(
            f'  <text x="{legend_x + 18}" y="{y + 10}" font-size="9" fill="{COLORS["text"]}">{_esc(s.get("name", ""))}</text>'
        )

    parts.append("</svg>")
    return "\n".join(parts)


# ============================================================================
# PIE AND GAUGE
# ============================================================================

def create_pie_chart(
    title: str,
    labels: List[str],
    values: List[float],
    colors: Optional[List[str]] = None,
    width: int = 500,
    height: int = 300,
    donut: bool = False
) -> str:
    """Pie (or donut) starting at 12 o'clock, with a percentage legend."""
    colors = colors or DEFAULT_PIE_COLORS
    values = [v if v and v > 0 else 0 for v in _finite(values)]
    total = sum(values)

    if total == 0:
        return (
            f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" xmlns="http://www.w3.org/2000/svg">\n'
            f'  <text x="{_num(width / 2)}" y="{_num(height / 2)}" text-anchor="middle" '
            f'fill="{COLORS["textLight"]}">No data</text>\n'
            f'</svg>'
        )

    center_x = width / 2.5
    center_y = height / 2
    radius = min(width, height) * 0.25
    inner_radius = radius * 0.5 if donut else 0

    parts = _open_svg(width, height, title)
    current_angle = -math.pi / 2

    for index, value in enumerate(values):
        slice_angle = value / total * 2 * math.pi
        start_angle = current_angle
        end_angle = current_angle + slice_angle
        large_arc = 1 if slice_angle > math.pi else 0
        color = colors[index % len(colors)]

        x1 = center_x + radius * math.cos(start_angle)
        y1 = center_y + radius * math.sin(start_angle)
        x2 = center_x + radius * math.cos(end_angle)
        y2 = center_y + radius * math.sin(end_angle)

        path = f"M {_num(x1)} {_num(y1)} A {_num(radius)} {_num(radius)} 0 {large_arc} 1 {_num(x2)} {_num(y2)}"
        if value >= total:
            # An arc back to its own start point is not drawn
            if donut:
                parts.append(
                    f'  <circle cx="{_num(center_x)}" cy="{_num(center_y)}" r="{_num((radius + inner_radius) / 2)}" '
                    f'fill="none" stroke="{color}" stroke-width="{_num(radius - inner_radius)}"/>'
                )
            else:
                parts.append(
                    f'  <circle cx="{_num(center_x)}" cy="{_num(center_y)}" r="{_num(radius)}" '
                    f'fill="{color}" stroke="{COLORS["white"]}" stroke-width="2"/>'
                )
        elif donut:
            inner_x1 = center_x + inner_radius * math.cos(start_angle)
            inner_y1 = center_y + inner_radius * math.sin(start_angle)
            inner_x2 = center_x + inner_radius * math.cos(end_angle)
            inner_y2 = center_y + inner_radius * math.sin(end_angle)
            path += (
                f" L {_num(inner_x2)} {_num(inner_y2)} A {_num(inner_radius)} {_num(inner_radius)} "
                f"0 {large_arc} 0 {_num(inner_x1)} {_num(inner_y1)} Z"
            )
        else:
            path += f" L {_num(center_x)} {_num(center_y)} Z"

        parts.append(f'  <path d="{path}" fill="{color}" stroke="{COLORS["white"]}" stroke-width="2"/>')

        label_angle = start_angle + slice_angle / 2
        label_radius = radius * (0.7 if donut else 0.65)
        parts.append(
            f'  <text x="{_num(center_x + label_radius * math.cos(label_angle))}" '
            f'y="{_num(center_y + label_radius * math.sin(label_angle))}" font-size="11" font-weight="bold" '
            f'text-anchor="middle" fill="{COLORS["white"]}">{round_half_up(value / total * 100, 0):.0f}%</text>'
        )
        current_angle = end_angle

    legend_x = center_x * 1.8
    legend_y = center_y - len(labels) * 20 / 2
    for index, label in enumerate(labels):
        value = values[index] if index < len(values) else 0
        y = legend_y + index * 25
        parts.append(f'  <rect x="{_num(legend_x)}" y="{_num(y)}" width="12" height="12" fill="{colors[index % len(colors)]}"/>')
        parts.append(
            f'  <text x="{_num(legend_x + 20)}" y="{_num(y + 10)}" font-size="10" fill="{COLORS["text"]}">'
            f'{_esc(label)}: {value / total * 100:.1f}%</text>'
        )

    parts.append("</svg>")
    return "\n".join(parts)


def create_gauge_chart(
    title: str,
    value: float,
    max_value: float,
    unit: str = "%",
    width: int = 300,
    height: int = 200,
    color: str = COLORS["success"]
) -> str:
    """Half-circle progress gauge filled to value / max_value."""
    percentage = (min(value / max_value, 1) * 100) if max_value else 0
    percentage = max(0, percentage)
    center_x = width / 2
    center_y = height * 0.65
    radius = width * 0.35

    start_angle = math.pi
    current_angle = start_angle + percentage / 100 * math.pi

    x1 = center_x + radius * math.cos(start_angle)
    y1 = center_y + radius * math.sin(start_angle)
    x2 = center_x + radius * math.cos(current_angle)
    y2 = center_y + radius * math.sin(current_angle)
    xe = center_x + radius
    ye = center_y

    parts = _open_svg(width, height, title, title_size=12)
    parts.append(
        f'  <path d="M {_num(x1)} {_num(y1)} A {_num(radius)} {_num(radius)} 0 0 1 {_num(xe)} {_num(ye)}" '
        f'stroke="{COLORS["lightGray"]}" stroke-width="20" fill="none" stroke-linecap="round"/>'
    )
    parts.append(
        f'  <path d="M {_num(x1)} {_num(y1)} A {_num(radius)} {_num(radius)} 0 {1 if percentage > 50 else 0} 1 '
        f'{_num(x2)} {_num(y2)}" stroke="{color}" stroke-width="20" fill="none" stroke-linecap="round"/>'
    )
    parts.append(
        f'  <circle cx="{_num(center_x)}" cy="{_num(center_y)}" r="15" fill="{COLORS["white"]}" '
        f'stroke="{color}" stroke-width="2"/>'
    )
    parts.append(
        f'  <text x="{_num(center_x)}" y="{_num(center_y + 50)}" font-size="24" font-weight="bold" '
        f'text-anchor="middle" fill="{COLORS["primary"]}">{format_locale_number(value)}{_esc(unit)}</text>'
    )
    parts.append("</svg>")
    return "\n".join(parts)


# ============================================================================
# EXPORT
# ============================================================================

def svg_to_data_url(svg: str) -> str:
    """Collapse whitespace and percent-encode the markup into a data URL."""
    sanitized = re.sub(r"\s+", " ", svg.replace("\n", " ")).strip()
    return "data:image/svg+xml;utf8," + quote(sanitized, safe="-_.!~*'()")


# ============================================================================
# DISPATCH
# ============================================================================

INCOME_COLORS = ["#3498db", "#2ecc71", "#f39c12", "#e74c3c"]
EXPENSE_COLORS = ["#3498db", "#2ecc71", "#f39c12", "#e74c3c", "#9b59b6"]
ASSET_COLORS = ["#3498db", "#2ecc71", "#f39c12", "#e74c3c", "#9b59b6", "#1abc9c", "#34495e"]
LIABILITY_COLORS = ["#e74c3c", "#c0392b", "#d35400", "#8e44ad", "#7f8c8d"]

CATEGORY_PIES = {
    "income": (
        "Annual Income Breakdown",
        [("employment", "Employment"), ("rental", "Rental"), ("investment", "Investment"), ("other", "Other")],
        INCOME_COLORS,
    ),
    "expenses": (
        "Annual Expenses Breakdown",
        [("workRelated", "Work Related"), ("investment", "Investment"), ("rental", "Rental"),
         ("vehicle", "Vehicle"), ("homeOffice", "Home Office")],
        EXPENSE_COLORS,
    ),
    "assets": (
        "Assets",
        [("home", "Home"), ("investments", "Investments"), ("super", "Super"), ("shares", "Shares"),
         ("savings", "Savings"), ("vehicle", "Vehicle"), ("other", "Other")],
        ASSET_COLORS,
    ),
    "liabilities": (
        "Liabilities",
        [("homeLoan", "Home Loan"), ("investmentLoans", "Investment Loans"), ("creditCard", "Credit Card"),
         ("personalLoan", "Personal Loan"), ("hecs", "HECS")],
        LIABILITY_COLORS,
    ),
}

RETIREMENT_GROWTH_RATE = 0.07


def _payload_number(payload: Dict[str, Any], key: str, default: float = 0) -> float:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return value


def _retirement_chart(payload: Dict[str, Any]) -> str:
    current_age = int(_payload_number(payload, "currentAge", 30))
    retirement_age = int(_payload_number(payload, "retirementAge", 65))
    current_super = _payload_number(payload, "currentSuper")
    years = max(retirement_age - current_age, 0)

    points = 10
    labels = []
    values = []
    for i in range(points + 1):
        year = years / points * i
        labels.append(str(round(current_age + year)))
        values.append(current_super * (1 + RETIREMENT_GROWTH_RATE) ** year)

    return create_line_chart(
        "Retirement Projection", labels, values,
        color=COLORS["info"], y_axis_label="Balance", x_axis_label="Age",
    )


def build_chart(chart_type: str, payload: Dict[str, Any]) -> str:
    """Build a chart from a planning-page request body.

    Raises ValueError for an unknown chart type.
    """
    if chart_type in CATEGORY_PIES:
        title, fields, colors = CATEGORY_PIES[chart_type]
        return create_pie_chart(
            payload.get("title") or title,
            [label for _, label in fields],
            [_payload_number(payload, key) for key, _ in fields],
            colors=colors,
            donut=chart_type in ("assets", "liabilities"),
        )

    if chart_type == "cashflow":
        return create_horizontal_bar_chart(
            "Monthly Cash Flow Analysis",
            [
                {"label": "Income", "value": _payload_number(payload, "income"), "color": COLORS["success"]},
                {"label": "Expenses", "value": _payload_number(payload, "expenses"), "color": COLORS["danger"]},
            ],
        )

    if chart_type == "retirement":
        return _retirement_chart(payload)

    if chart_type == "line":
        return create_line_chart(
            payload.get("title", ""),
            payload.get("labels") or [],
            payload.get("values") or [],
            color=payload.get("color") or COLORS["info"],
            width=int(_payload_number(payload, "width", 600)),
            height=int(_payload_number(payload, "height", 300)),
            y_axis_label=payload.get("yAxisLabel") or "Value",
            x_axis_label=payload.get("xAxisLabel") or "Time",
        )

    if chart_type == "bar":
        return create_horizontal_bar_chart(
            payload.get("title", ""),
            payload.get("data") or [],
            show_values=payload.get("showValues", True),
        )

    if chart_type in ("pie", "donut"):
        return create_pie_chart(
            payload.get("title", ""),
            payload.get("labels") or [],
            payload.get("values") or [],
            colors=payload.get("colors"),
            donut=chart_type == "donut" or bool(payload.get("donut")),
        )

    if chart_type == "stacked":
        return create_stacked_bar_chart(
            payload.get("title", ""),
            payload.get("categories") or [],
            payload.get("series") or [],
        )

    if chart_type == "gauge":
        return create_gauge_chart(
            payload.get("title", ""),
            _payload_number(payload, "value"),
            _payload_number(payload, "max", 100),
            unit=payload.get("unit", "%"),
            color=payload.get("color") or COLORS["success"],
        )

    if chart_type == "comparison":
        return premium_charts.create_comparison_bar_chart(
            _payload_number(payload, "current"),
            _payload_number(payload, "projected"),
            payload.get("label", ""),
        )

    if chart_type == "waterfall":
        return premium_charts.create_waterfall_chart(
            _payload_number(payload, "income"),
            _payload_number(payload, "expenses"),
            _payload_number(payload, "surplus"),
        )

    if chart_type == "premium-donut":
        return premium_charts.create_donut_chart(
            payload.get("items") or [],
            center_value=payload.get("centerValue"),
            center_label=payload.get("centerLabel"),
        )

    if chart_type == "premium-gauge":
        return premium_charts.create_premium_gauge(
            _payload_number(payload, "value"),
            _payload_number(payload, "max", 100),
            payload.get("label", ""),
        )

    if chart_type == "premium-stacked":
        return premium_charts.create_premium_stacked_bar_chart(
            payload.get("labels") or [],
            payload.get("series") or [],
        )

    raise ValueError(f"Unknown chart type: {chart_type}")
