"""
Google PageSpeed Insights — performance source.

Each distinct URL gets two independent probes (mobile, desktop). A failed
probe nulls that device's scores only and produces one warning naming the
URL and device. ``extended=True`` also collects web vitals and ranked
improvement opportunities from the same response.
"""

import asyncio
import json
import logging
import math

import aiohttp

from site_reports.errors import AuthError, UpstreamError
from site_reports.schemas.report import (
    CoreWebVital,
    LighthouseScores,
    Opportunity,
    PageSpeedResult,
    ProbeResult,
)

logger = logging.getLogger(__name__)

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

CATEGORIES = ("performance", "accessibility", "best-practices", "seo")
STRATEGIES = ("mobile", "desktop")

VITAL_AUDITS = (
    "first-contentful-paint",
    "largest-contentful-paint",
    "total-blocking-time",
    "cumulative-layout-shift",
    "speed-index",
)
MAX_OPPORTUNITIES = 5


def normalize_score(raw) -> int | None:
    """Accept a 0–1 or 0–100 score and return an integer 0–100 (or None)."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    if math.isnan(raw):
        return None
    if 0 <= raw <= 1:
        return math.floor(raw * 100 + 0.5)
    if 1 < raw <= 100:
        return math.floor(raw + 0.5)
    return None


def parse_probe(payload: dict, extended: bool = False) -> ProbeResult:
    """Turn a runPagespeed response body into a ProbeResult."""
    lighthouse = payload.get("lighthouseResult") or {}
    categories = lighthouse.get("categories") or {}

    def _score(name: str) -> int | None:
        return normalize_score((categories.get(name) or {}).get("score"))

    scores = LighthouseScores(
        performance=_score("performance"),
        accessibility=_score("accessibility"),
        best_practices=_score("best-practices"),
        seo=_score("seo"),
    )
    if not extended:
        return ProbeResult(scores=scores)

    audits = lighthouse.get("audits") or {}

    vitals = []
    for audit_id in VITAL_AUDITS:
        audit = audits.get(audit_id)
        if not audit or not audit.get("displayValue"):
            continue
        numeric = audit.get("numericValue")
        vitals.append(CoreWebVital(
            id=audit_id,
            title=audit.get("title") or audit_id,
            display_value=str(audit["displayValue"]),
            numeric_value=float(numeric) if isinstance(numeric, (int, float)) else None,
        ))

    candidates = []
    for audit in audits.values():
        details = audit.get("details") or {}
        if details.get("type") != "opportunity":
            continue
        savings = details.get("overallSavingsMs")
        if not isinstance(savings, (int, float)) or savings <= 0:
            continue
        candidates.append(Opportunity(title=audit.get("title") or "Untitled", savings_ms=round(savings)))
    candidates.sort(key=lambda op: op.savings_ms, reverse=True)

    return ProbeResult(scores=scores, vitals=vitals, opportunities=candidates[:MAX_OPPORTUNITIES])


def unique_urls(urls: list[str]) -> list[str]:
    """Order-preserving de-duplication; blanks dropped."""
    seen: dict[str, None] = {}
    for url in urls:
        url = (url or "").strip()
        if url:
            seen.setdefault(url, None)
    return list(seen)


class PageSpeedSource:
    """Performance probes. Only AuthError escapes ``fetch``."""

    def __init__(self, api_key: str, timeout_secs: int = 60, extended: bool = False):
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout_secs)
        self.extended = extended

    async def fetch(self, urls: list[str]) -> tuple[list[PageSpeedResult], list[str]]:
        """Probe each distinct URL once per device. Returns (results, warnings)."""
        warnings: list[str] = []
        results: list[PageSpeedResult] = []

        for url in unique_urls(urls):
            outcomes = await asyncio.gather(
                *(self._run_probe(url, strategy) for strategy in STRATEGIES),
                return_exceptions=True,
            )
            probes: dict[str, ProbeResult] = {}
            for strategy, outcome in zip(STRATEGIES, outcomes):
                if isinstance(outcome, AuthError) or (
                    isinstance(outcome, BaseException) and not isinstance(outcome, Exception)
                ):
                    raise outcome
                if isinstance(outcome, Exception):
                    logger.warning("⚠️ PageSpeed %s probe failed for %s: %s", strategy, url, outcome)
                    warnings.append(f"PageSpeed {strategy} failed for {url}: {outcome}")
                    probes[strategy] = ProbeResult()
                else:
                    probes[strategy] = outcome

            # web vitals are reported mobile-first
            detail = probes["mobile"] if probes["mobile"].vitals or probes["mobile"].opportunities else probes["desktop"]
            results.append(PageSpeedResult(
                url=url,
                mobile=probes["mobile"].scores,
                desktop=probes["desktop"].scores,
                vitals=detail.vitals,
                opportunities=detail.opportunities,
            ))

        return results, warnings

    async def _run_probe(self, url: str, strategy: str) -> ProbeResult:
        params = [("url", url), ("strategy", strategy)]
        if self.api_key:
            params.append(("key", self.api_key))
        params.extend(("category", c) for c in CATEGORIES)

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(PAGESPEED_ENDPOINT, params=params) as resp:
                    status = resp.status
                    text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"PageSpeed unreachable: {e!r}") from e

        if status in (401, 403) or (status == 400 and "API key not valid" in text):
            raise AuthError("PageSpeed API key rejected. Set a valid PSI_API_KEY.")
        if status >= 400:
            raise UpstreamError(f"PageSpeed request failed ({status}): {text[:300]}")
        try:
            payload = json.loads(text)
        except ValueError as e:
            raise UpstreamError(f"PageSpeed returned invalid JSON: {e}") from e
        return parse_probe(payload, extended=self.extended)
