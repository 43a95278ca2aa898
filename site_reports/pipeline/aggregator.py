"""
Aggregator — fans out to the sources and derives the report metrics.

Two-stage fan-out:
  1. current + previous month traffic (required; any failure aborts)
  2. top paths + security + performance (degrading; failures → warnings)

No state is shared between concurrent branches: each branch returns its
own data and warnings, merged in a fixed order once all have finished.
"""

import asyncio
import logging
from typing import Iterable

from site_reports.config import SiteConfig
from site_reports.errors import AuthError
from site_reports.schemas.report import (
    AggregationResult,
    DailyTrafficPoint,
    MetricWithDelta,
    MonthPeriod,
    PageSpeedResult,
    SecurityCategoryRow,
    SecurityEventGroup,
    SecuritySnapshot,
    TopPath,
    TrafficSnapshot,
)
from site_reports.services.cloudflare import SecuritySource, TrafficSource
from site_reports.services.pagespeed import PageSpeedSource
from site_reports.services.period import build_weekly_breakdown

logger = logging.getLogger("reports.aggregator")

# ── tunables ──
WARNING_MAX_LEN = 450
TOP_CATEGORY_COUNT = 3
FIREWALL_ACTIONS = frozenset({"block", "challenge", "js_challenge", "managed_challenge"})
BOT_RATE_MARKERS = ("bot", "rate")


# ─────────────────────────────────────────────────────────────────────
# derived metrics
# ─────────────────────────────────────────────────────────────────────

def with_delta(current: int, previous: int) -> MetricWithDelta:
    """Percent change vs the previous period; None when previous is 0 and current isn't."""
    if previous == 0:
        delta = 0.0 if current == 0 else None
    else:
        delta = (current - previous) / previous * 100
    return MetricWithDelta(current=current, previous=previous, delta_percent=delta)


def sum_traffic(daily: Iterable[DailyTrafficPoint]) -> tuple[int, int, int]:
    """(requests, uniques, bytes) totals."""
    requests = uniques = total_bytes = 0
    for point in daily:
        requests += point.requests
        uniques += point.uniques
        total_bytes += point.bytes
    return requests, uniques, total_bytes


def build_security_snapshot(groups: Iterable[SecurityEventGroup], top_n: int = TOP_CATEGORY_COUNT) -> SecuritySnapshot:
    """
    Roll firewall event groups up into totals and the top categories.

    Matching is case-insensitive; category labels keep the upstream casing.
    Ties keep first-seen order (``sorted`` is stable).
    """
    total_firewall = 0
    bot_rate = 0
    by_category: dict[str, int] = {}

    for group in groups:
        action = group.action.lower()
        source = group.source.lower()

        if action in FIREWALL_ACTIONS:
            total_firewall += group.count
        if any(m in action for m in BOT_RATE_MARKERS) or any(m in source for m in BOT_RATE_MARKERS):
            bot_rate += group.count

        label = f"{group.source}/{group.action}"
        by_category[label] = by_category.get(label, 0) + group.count

    ranked = sorted(by_category.items(), key=lambda item: item[1], reverse=True)
    return SecuritySnapshot(
        total_firewall_actions=total_firewall,
        bot_rate_limit_actions=bot_rate,
        top_categories=[SecurityCategoryRow(label=label, count=count) for label, count in ranked[:top_n]],
    )


def normalize_warnings(warnings: Iterable[str], max_len: int = WARNING_MAX_LEN) -> list[str]:
    return [w[:max_len] for w in warnings]


# ─────────────────────────────────────────────────────────────────────
# aggregator
# ─────────────────────────────────────────────────────────────────────

class Aggregator:
    def __init__(
        self,
        traffic: TrafficSource,
        security: SecuritySource,
        performance: PageSpeedSource,
    ):
        self.traffic = traffic
        self.security = security
        self.performance = performance

    async def aggregate(self, site: SiteConfig, period: MonthPeriod) -> AggregationResult:
        """Fetch everything for ``period`` and compute the report sections."""
        logger.info("📡 Fetching traffic for %s (%s vs %s)", site.domain, period.month_key, period.prev_month_key)

        # stage 1: traffic is required, AuthError/UpstreamError abort
        current_daily, previous_daily = await asyncio.gather(
            self.traffic.fetch(site.zone_id, period.start_date, period.end_date_exclusive),
            self.traffic.fetch(site.zone_id, period.prev_start_date, period.prev_end_date_exclusive),
        )

        # stage 2: degrading sources
        (top_paths, w_paths), (groups, w_security), (performance, w_perf) = await asyncio.gather(
            self._safe_top_paths(site, period),
            self._safe_security(site, period),
            self._safe_performance(site),
        )

        current = sum_traffic(current_daily)
        previous = sum_traffic(previous_daily)

        traffic = TrafficSnapshot(
            requests=with_delta(current[0], previous[0]),
            unique_visitors=with_delta(current[1], previous[1]),
            bandwidth=with_delta(current[2], previous[2]),
            weekly_breakdown=build_weekly_breakdown(current_daily, period.start_date, period.end_date_exclusive),
            top_paths=top_paths,
        )
        warnings = normalize_warnings([*w_paths, *w_security, *w_perf])

        logger.info(
            "✅ Aggregated %s — %d requests, %d security groups, %d PageSpeed URLs, %d warnings",
            period.month_key, current[0], len(groups), len(performance), len(warnings),
        )
        return AggregationResult(
            traffic=traffic,
            security=build_security_snapshot(groups),
            performance=performance,
            warnings=warnings,
        )

    async def _safe_top_paths(self, site: SiteConfig, period: MonthPeriod) -> tuple[list[TopPath], list[str]]:
        try:
            return await self.traffic.fetch_top_paths(site.zone_id, period), []
        except AuthError:
            raise
        except Exception as e:
            logger.warning("⚠️ Top paths unavailable: %s", e)
            return [], [f"Top paths unavailable: {e}"]

    async def _safe_security(self, site: SiteConfig, period: MonthPeriod) -> tuple[list[SecurityEventGroup], list[str]]:
        try:
            return await self.security.fetch(site.zone_id, period), []
        except AuthError:
            raise
        except Exception as e:
            logger.warning("⚠️ Security analytics unavailable: %s", e)
            return [], [f"Security analytics unavailable: {e}"]

    async def _safe_performance(self, site: SiteConfig) -> tuple[list[PageSpeedResult], list[str]]:
        try:
            return await self.performance.fetch(site.pagespeed_urls)
        except AuthError:
            raise
        except Exception as e:
            logger.warning("⚠️ PageSpeed unavailable: %s", e)
            return [], [f"PageSpeed unavailable: {e}"]
