"""
Tests for the PageSpeed source — score normalization, probe isolation.
"""

from unittest.mock import patch

import pytest

from site_reports.errors import AuthError, UpstreamError
from site_reports.schemas.report import LighthouseScores, ProbeResult
from site_reports.services.pagespeed import PageSpeedSource, normalize_score, parse_probe, unique_urls

GOOD = ProbeResult(scores=LighthouseScores(performance=90, accessibility=80, best_practices=70, seo=60))


def _payload(perf=0.87, extended=False) -> dict:
    body = {
        "lighthouseResult": {
            "categories": {
                "performance": {"score": perf},
                "accessibility": {"score": 1},
                "best-practices": {"score": 0.5},
                "seo": {"score": None},
            },
        },
    }
    if extended:
        body["lighthouseResult"]["audits"] = {
            "largest-contentful-paint": {
                "title": "Largest Contentful Paint", "displayValue": "2.1 s", "numericValue": 2100.4,
            },
            "cumulative-layout-shift": {"title": "Cumulative Layout Shift", "displayValue": "0.02"},
            "speed-index": {"title": "Speed Index"},
            "render-blocking-resources": {
                "title": "Eliminate render-blocking resources",
                "details": {"type": "opportunity", "overallSavingsMs": 420.6},
            },
            "unused-javascript": {
                "title": "Reduce unused JavaScript",
                "details": {"type": "opportunity", "overallSavingsMs": 1300},
            },
            "uses-text-compression": {
                "title": "Enable text compression",
                "details": {"type": "opportunity", "overallSavingsMs": 0},
            },
            "diagnostics": {"title": "Diagnostics", "details": {"type": "debugdata"}},
        }
    return body


class TestNormalizeScore:
    @pytest.mark.parametrize("raw, expected", [
        (0, 0), (1, 100), (0.874, 87), (0.875, 88), (0.5, 50),
        (55, 55), (99.5, 100), (100, 100),
    ])
    def test_scales(self, raw, expected):
        assert normalize_score(raw) == expected

    @pytest.mark.parametrize("raw", [None, "0.9", -0.1, 100.5, float("nan"), True])
    def test_invalid(self, raw):
        assert normalize_score(raw) is None


class TestParseProbe:
    def test_scores_only(self):
        probe = parse_probe(_payload())
        assert probe.scores == LighthouseScores(performance=87, accessibility=100, best_practices=50, seo=None)
        assert probe.vitals == []
        assert probe.opportunities == []

    def test_extended_detail(self):
        probe = parse_probe(_payload(extended=True), extended=True)
        assert [v.id for v in probe.vitals] == ["largest-contentful-paint", "cumulative-layout-shift"]
        assert probe.vitals[0].display_value == "2.1 s"
        assert probe.vitals[0].numeric_value == 2100.4
        assert probe.vitals[1].numeric_value is None
        assert [(o.title, o.savings_ms) for o in probe.opportunities] == [
            ("Reduce unused JavaScript", 1300),
            ("Eliminate render-blocking resources", 421),
        ]

    def test_empty_payload(self):
        assert parse_probe({}, extended=True) == ProbeResult()


class TestUniqueUrls:
    def test_dedupes_in_order(self):
        assert unique_urls(["https://a/", " https://b/", "https://a/", "", "https://b/"]) == ["https://a/", "https://b/"]


class TestPageSpeedFetch:
    async def test_both_devices(self):
        source = PageSpeedSource("key")
        with patch.object(PageSpeedSource, "_run_probe", return_value=GOOD) as mock_probe:
            results, warnings = await source.fetch(["https://example.ie/"])

        assert warnings == []
        assert results[0].mobile == GOOD.scores
        assert results[0].desktop == GOOD.scores
        assert sorted(c.args[1] for c in mock_probe.call_args_list) == ["desktop", "mobile"]

    async def test_desktop_failure_is_isolated(self):
        async def _probe(self, url, strategy):
            if strategy == "desktop":
                raise UpstreamError("PageSpeed request failed (500): oops")
            return GOOD

        with patch.object(PageSpeedSource, "_run_probe", _probe):
            results, warnings = await PageSpeedSource("key").fetch(["https://example.ie/"])

        assert len(results) == 1
        assert results[0].mobile == GOOD.scores
        assert results[0].desktop == LighthouseScores()
        assert len(warnings) == 1
        assert "https://example.ie/" in warnings[0]
        assert "desktop" in warnings[0]

    async def test_duplicate_urls_probed_once(self):
        with patch.object(PageSpeedSource, "_run_probe", return_value=GOOD) as mock_probe:
            results, _ = await PageSpeedSource("key").fetch(["https://a/", "https://a/", "https://b/"])

        assert [r.url for r in results] == ["https://a/", "https://b/"]
        assert mock_probe.await_count == 4

    async def test_auth_error_propagates(self):
        with patch.object(PageSpeedSource, "_run_probe", side_effect=AuthError("key rejected")):
            with pytest.raises(AuthError):
                await PageSpeedSource("bad").fetch(["https://example.ie/"])

    async def test_vitals_prefer_mobile_then_desktop(self):
        extended = parse_probe(_payload(extended=True), extended=True)

        async def _probe(self, url, strategy):
            if strategy == "mobile":
                raise UpstreamError("timeout")
            return extended

        with patch.object(PageSpeedSource, "_run_probe", _probe):
            results, warnings = await PageSpeedSource("key", extended=True).fetch(["https://example.ie/"])

        assert results[0].vitals == extended.vitals
        assert results[0].opportunities == extended.opportunities
        assert len(warnings) == 1

    async def test_no_urls(self):
        assert await PageSpeedSource("key").fetch([]) == ([], [])
