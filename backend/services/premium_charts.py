"""Premium report charts: comparison bars, donut, gauge, waterfall and stacked bars.

Larger, presentation-style figures for the PDF report and the summary
page. Each returns SVG markup, or '' when there is nothing to draw.
"""
from typing import Dict, Any, List, Optional
import html
import math

from utils.formatting import format_currency_short, round_half_up

TITLE_COLOR = "#2c3e50"
ARROW_COLOR = "#7f8c8d"
TRACK_COLOR = "#ecf0f1"


def _svg_open(width: int, height: int) -> List[str]:
    return [
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" xmlns="http://www.w3.org/2000/svg">',
        f'  <rect width="{width}" height="{height}" fill="#ffffff"/>',
    ]


def _text(x: float, y: float, content: str, size: int = 12, bold: bool = False,
          anchor: str = "middle", fill: str = TITLE_COLOR) -> str:
    weight = ' font-weight="bold"' if bold else ""
    return (
        f'  <text x="{x:.2f}" y="{y:.2f}" font-size="{size}"{weight} text-anchor="{anchor}" '
        f'fill="{fill}">{html.escape(str(content))}</text>'
    )


def _polar(cx: float, cy: float, radius: float, angle: float):
    return cx + radius * math.cos(angle), cy + radius * math.sin(angle)


def create_comparison_bar_chart(current: float, projected: float, label: str = "") -> str:
    """Current vs projected side by side, with an arrow between them."""
    width, height = 600, 400
    max_value = max(abs(current), abs(projected)) * 1.15 or 1
    bar_width = 120
    bar_spacing = 40
    chart_height = 250
    chart_y = 80
    chart_x = 60
    base_y = chart_y + chart_height

    parts = _svg_open(width, height)

    bars = (
        (chart_x, current, "#3498db", "Current"),
        (chart_x + bar_width + bar_spacing, projected, "#27ae60", "Projected"),
    )
    for x, value, color, caption in bars:
        bar_height = abs(value) / max_value * chart_height
        y = base_y - bar_height if value >= 0 else base_y
        fill = color if value >= 0 else "#e74c3c"
        parts.append(f'  <rect x="{x}" y="{y:.2f}" width="{bar_width}" height="{bar_height:.2f}" fill="{fill}"/>')
        parts.append(_text(x + bar_width / 2, base_y + 30, caption, size=14, bold=True))
        parts.append(_text(x + bar_width / 2, chart_y - 10, format_currency_short(value), size=16, bold=True))

    mid_y = chart_y + chart_height / 2
    arrow_start = chart_x + bar_width + 10
    arrow_end = chart_x + bar_width + bar_spacing - 10
    parts.append(
        f'  <path d="M {arrow_start} {mid_y} L {arrow_end} {mid_y} L {arrow_end - 5} {mid_y - 5} '
        f'M {arrow_end} {mid_y} L {arrow_end - 5} {mid_y + 5}" stroke="{ARROW_COLOR}" stroke-width="2" fill="none"/>'
    )

    if label:
        parts.append(_text(width / 2, 40, label, size=18, bold=True))

    parts.append("</svg>")
    return "\n".join(parts)


def create_donut_chart(
    items: List[Dict[str, Any]],
    center_value: Optional[str] = None,
    center_label: Optional[str] = None
) -> str:
    """items: [{label, value, color}]. Returns '' when the values sum to zero."""
    size = 400
    center = size / 2
    outer_radius = 140
    inner_radius = 80

    total = sum(item.get("value") or 0 for item in items)
    if total <= 0:
        return ""

    parts = _svg_open(size, size)
    current_angle = -math.pi / 2

    for item in items:
        value = item.get("value") or 0
        if value <= 0:
            continue
        slice_angle = value / total * 2 * math.pi
        end_angle = current_angle + slice_angle
        large_arc = 1 if slice_angle > math.pi else 0

        # A full circle cannot be drawn as a single arc
        if slice_angle >= 2 * math.pi - 1e-9:
            end_angle -= 1e-4

        ox1, oy1 = _polar(center, center, outer_radius, current_angle)
        ox2, oy2 = _polar(center, center, outer_radius, end_angle)
        ix1, iy1 = _polar(center, center, inner_radius, current_angle)
        ix2, iy2 = _polar(center, center, inner_radius, end_angle)
        parts.append(
            f'  <path d="M {ox1:.2f} {oy1:.2f} A {outer_radius} {outer_radius} 0 {large_arc} 1 {ox2:.2f} {oy2:.2f} '
            f'L {ix2:.2f} {iy2:.2f} A {inner_radius} {inner_radius} 0 {large_arc} 0 {ix1:.2f} {iy1:.2f} Z" '
            f'fill="{item.get("color") or "#3498db"}" stroke="#ffffff" stroke-width="3"/>'
        )

        label_x, label_y = _polar(center, center, (outer_radius + inner_radius) / 2, current_angle + slice_angle / 2)
        parts.append(_text(label_x, label_y + 5, f"{round_half_up(value / total * 100, 0):.0f}%",
                           size=14, bold=True, fill="#ffffff"))
        current_angle += slice_angle

    if center_value:
        parts.append(_text(center, center - 10, center_value, size=20, bold=True))
    if center_label:
        parts.append(_text(center, center + 15, center_label, size=12))

    legend_y = center + outer_radius + 50
    for index, item in enumerate(items):
        x = 50 + (index % 2) * 150
        y = legend_y + (index // 2) * 25
        parts.append(f'  <rect x="{x}" y="{y - 8}" width="16" height="16" fill="{item.get("color") or "#3498db"}"/>')
        parts.append(_text(x + 22, y + 5, f'{item.get("label", "")}: {format_currency_short(item.get("value") or 0)}',
                           size=11, anchor="start"))

    parts.append("</svg>")
    return "\n".join(parts)


def gauge_color(percentage: float) -> str:
    if percentage < 33:
        return "#e74c3c"
    if percentage < 66:
        return "#f39c12"
    return "#27ae60"


def create_premium_gauge(value: float, max_value: float = 100, label: str = "") -> str:
    """Semi-circular gauge; red below a third, orange below two thirds, else green."""
    width, height = 500, 300
    center_x = width / 2
    center_y = height - 20
    radius = 200

    percentage = min(100, value / max_value * 100) if max_value else 0
    percentage = max(0, percentage)
    fill_angle = math.pi + percentage / 100 * math.pi

    start_x, start_y = _polar(center_x, center_y, radius, math.pi)
    end_x, end_y = _polar(center_x, center_y, radius, 0)
    fill_x, fill_y = _polar(center_x, center_y, radius, fill_angle)

    parts = _svg_open(width, height)
    parts.append(
        f'  <path d="M {start_x:.2f} {start_y:.2f} A {radius} {radius} 0 0 1 {end_x:.2f} {end_y:.2f}" '
        f'stroke="{TRACK_COLOR}" stroke-width="20" fill="none"/>'
    )
    if percentage > 0:
        parts.append(
            f'  <path d="M {start_x:.2f} {start_y:.2f} A {radius} {radius} 0 0 1 {fill_x:.2f} {fill_y:.2f}" '
            f'stroke="{gauge_color(percentage)}" stroke-width="20" fill="none"/>'
        )
    parts.append(_text(center_x, center_y - 40, f"{round_half_up(percentage, 0):.0f}%", size=32, bold=True))
    if label:
        parts.append(_text(center_x, center_y - 70, label, size=14))
    parts.append(_text(center_x - radius - 30, center_y, "0%", size=11, anchor="start"))
    parts.append(_text(center_x + radius + 30, center_y, "100%", size=11, anchor="end"))
    parts.append("</svg>")
    return "\n".join(parts)


def create_waterfall_chart(income: float, expenses: float, surplus: float) -> str:
    """Income, minus expenses, leaves surplus; bars joined by connector lines."""
    width, height = 600, 350
    max_value = max(income, expenses, surplus) * 1.2 or 1
    bar_width = 140
    bar_spacing = 80
    chart_height = 220
    chart_y = 60
    base_y = chart_y + chart_height

    income_x = 80
    expenses_x = income_x + bar_width + bar_spacing
    surplus_x = expenses_x + bar_width + bar_spacing

    income_height = max(income, 0) / max_value * chart_height
    expenses_height = max(expenses, 0) / max_value * chart_height
    surplus_height = max(surplus, 0) / max_value * chart_height

    income_y = base_y - income_height
    expenses_y = income_y + expenses_height
    surplus_y = base_y - surplus_height

    parts = _svg_open(width, height)
    bars = (
        (income_x, income_y, income_height, "#3498db", "#2980b9"),
        (expenses_x, expenses_y, expenses_height, "#e74c3c", "#c0392b"),
        (surplus_x, surplus_y, surplus_height, "#27ae60", "#229954"),
    )
    for x, y, bar_height, fill, stroke in bars:
        parts.append(
            f'  <rect x="{x}" y="{y:.2f}" width="{bar_width}" height="{bar_height:.2f}" '
            f'fill="{fill}" stroke="{stroke}" stroke-width="2"/>'
        )

    parts.append(
        f'  <line x1="{income_x + bar_width}" y1="{income_y:.2f}" x2="{expenses_x}" '
        f'y2="{income_y + expenses_height:.2f}" stroke="{ARROW_COLOR}" stroke-width="2"/>'
    )
    parts.append(
        f'  <line x1="{expenses_x + bar_width}" y1="{expenses_y:.2f}" x2="{surplus_x}" '
        f'y2="{surplus_y:.2f}" stroke="{ARROW_COLOR}" stroke-width="2"/>'
    )

    for x, y, caption, value in (
        (income_x, income_y, "Income", income),
        (expenses_x, expenses_y, "Expenses", expenses),
        (surplus_x, surplus_y, "Surplus", surplus),
    ):
        parts.append(_text(x + bar_width / 2, base_y + 25, caption, bold=True))
        parts.append(_text(x + bar_width / 2, y - 10, format_currency_short(value), bold=True))

    parts.append("</svg>")
    return "\n".join(parts)


def create_premium_stacked_bar_chart(labels: List[str], series: List[Dict[str, Any]]) -> str:
    """series: [{label, values, color}]. Segments taller than 20px show their share."""
    width, height = 700, 400
    bar_width = 80
    bar_spacing = 40
    chart_height = 250
    chart_y = 80
    chart_x = 80

    def value_at(s: Dict[str, Any], index: int) -> float:
        values = s.get("values") or []
        return values[index] if index < len(values) and values[index] else 0

    totals = [sum(value_at(s, i) for s in series) for i in range(len(labels))]
    max_total = max(totals + [0]) * 1.15 or 1

    parts = _svg_open(width, height)
    for index, label in enumerate(labels):
        x = chart_x + index * (bar_width + bar_spacing)
        current_y = chart_y + chart_height
        for s in series:
            value = value_at(s, index)
            segment_height = value / max_total * chart_height
            current_y -= segment_height
            parts.append(
                f'  <rect x="{x}" y="{current_y:.2f}" width="{bar_width}" height="{segment_height:.2f}" '
                f'fill="{s.get("color") or "#3498db"}"/>'
            )
            if segment_height > 20 and totals[index]:
                share = round_half_up(value / totals[index] * 100, 0)
                parts.append(_text(x + bar_width / 2, current_y + segment_height / 2 + 3, f"{share:.0f}%",
                                   size=10, bold=True, fill="#ffffff"))
        parts.append(_text(x + bar_width / 2, chart_y + chart_height + 20, label, size=11))

    legend_y = chart_y + chart_height + 50
    for index, s in enumerate(series):
        x = 100 + index * 150
        parts.append(f'  <rect x="{x}" y="{legend_y}" width="16" height="16" fill="{s.get("color") or "#3498db"}"/>')
        parts.append(_text(x + 22, legend_y + 12, s.get("label", ""), size=11, anchor="start"))

    parts.append("</svg>")
    return "\n".join(parts)
