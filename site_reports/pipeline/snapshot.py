"""
Snapshot builder — pure assembly of the ReportSnapshot.
"""

from datetime import datetime, timezone

from site_reports.config import SiteConfig
from site_reports.schemas.report import AggregationResult, MonthPeriod, ReportSnapshot
from site_reports.services.period import format_month_label


def build_snapshot(
    site: SiteConfig,
    period: MonthPeriod,
    aggregation: AggregationResult,
    generated_at: datetime | None = None,
) -> ReportSnapshot:
    """Identical (site, period, aggregation) → identical snapshot, bar ``generated_at``."""
    return ReportSnapshot(
        client_id=site.client_id,
        zone_id=site.zone_id,
        domain=site.domain,
        month_key=period.month_key,
        month_label=format_month_label(period.month_key, site.timezone),
        timezone=site.timezone,
        generated_at=generated_at or datetime.now(timezone.utc),
        traffic=aggregation.traffic,
        security=aggregation.security,
        performance=list(aggregation.performance),
        warnings=list(aggregation.warnings),
    )
