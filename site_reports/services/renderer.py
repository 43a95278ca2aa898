"""
Report renderer — Jinja2 template → one self-contained HTML document.

``render(snapshot)`` is pure: it reads nothing but the snapshot, so the
same snapshot always renders byte-identical HTML. The generation
timestamp is not part of the document.
"""

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from site_reports.schemas.report import MetricWithDelta, ReportSnapshot

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"
REPORT_TEMPLATE = "report.html"

BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


# ─── Formatting filters ───────────────────────────────────────────────

def fmt_int(value: float | int | None) -> str:
    if value is None:
        return "—"
    return f"{int(round(value)):,}"


def fmt_bytes(value: float | int | None) -> str:
    if value is None:
        return "—"
    v = float(value)
    i = 0
    while v >= 1024 and i < len(BYTE_UNITS) - 1:
        v /= 1024
        i += 1
    return f"{v:.0f} {BYTE_UNITS[i]}" if v >= 10 else f"{v:.1f} {BYTE_UNITS[i]}"


def fmt_delta(metric: MetricWithDelta) -> str:
    if metric.delta_percent is None:
        return "—"
    sign = "+" if metric.delta_percent > 0 else ""
    return f"{sign}{metric.delta_percent:.1f}%"


def delta_class(metric: MetricWithDelta) -> str:
    if metric.delta_percent is None:
        return ""
    return "delta-up" if metric.delta_percent >= 0 else "delta-down"


def fmt_savings(ms: int) -> str:
    return f"{ms / 1000:.1f}s" if ms >= 1000 else f"{ms}ms"


def score_color(score: int | None) -> str:
    if score is None:
        return "#9ca3af"
    if score >= 90:
        return "#22c55e"
    if score >= 50:
        return "#f59e0b"
    return "#ef4444"


def _get_jinja_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters.update({
        "fmt_int": fmt_int,
        "fmt_bytes": fmt_bytes,
        "fmt_delta": fmt_delta,
        "delta_class": delta_class,
        "fmt_savings": fmt_savings,
        "score_color": score_color,
    })
    return env


_env = _get_jinja_env()


def render(snapshot: ReportSnapshot) -> str:
    """Render the monthly report HTML for ``snapshot``."""
    template = _env.get_template(REPORT_TEMPLATE)
    sec = snapshot.security
    return template.render(
        s=snapshot,
        t=snapshot.traffic,
        sec=sec,
        has_security_data=(
            sec.total_firewall_actions > 0 or sec.bot_rate_limit_actions > 0 or bool(sec.top_categories)
        ),
    )
