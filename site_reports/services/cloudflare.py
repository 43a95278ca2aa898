"""
Cloudflare GraphQL Analytics — traffic and security sources.

TrafficSource   day-granular requests / uniques / bytes (+ top paths)
SecuritySource  firewall events grouped by (source, action), with a
                single reduced-dimension fallback when the zone's plan
                rejects the ``source`` dimension.
"""

import asyncio
import json
import logging
from datetime import date, datetime

import aiohttp

from site_reports.errors import AuthError, UpstreamError
from site_reports.schemas.report import DailyTrafficPoint, MonthPeriod, SecurityEventGroup, TopPath

logger = logging.getLogger(__name__)

GRAPHQL_ENDPOINT = "https://api.cloudflare.com/client/v4/graphql"

TRAFFIC_QUERY_LIMIT = 62
SECURITY_QUERY_LIMIT = 500
TOP_PATHS_LIMIT = 5

PLAN_LIMITATION_MARKER = "does not have access"

TRAFFIC_DAILY_QUERY = """
query TrafficDaily($zoneTag: string!, $startDate: Date!, $endDateExclusive: Date!, $limit: Int!) {
  viewer {
    zones(filter: { zoneTag: $zoneTag }) {
      httpRequests1dGroups(
        limit: $limit
        orderBy: [date_ASC]
        filter: { date_geq: $startDate, date_lt: $endDateExclusive }
      ) {
        dimensions { date }
        sum { requests bytes }
        uniq { uniques }
      }
    }
  }
}
"""

TOP_PATHS_QUERY = """
query TopPaths($zoneTag: string!, $startDateTime: Time!, $endDateTimeExclusive: Time!, $limit: Int!) {
  viewer {
    zones(filter: { zoneTag: $zoneTag }) {
      httpRequestsAdaptiveGroups(
        limit: $limit
        orderBy: [count_DESC]
        filter: { datetime_geq: $startDateTime, datetime_lt: $endDateTimeExclusive }
      ) {
        dimensions { clientRequestPath }
        sum { requests }
      }
    }
  }
}
"""

SECURITY_QUERY = """
query SecurityGroups($zoneTag: string!, $startDateTime: Time!, $endDateTimeExclusive: Time!, $limit: Int!) {
  viewer {
    zones(filter: { zoneTag: $zoneTag }) {
      firewallEventsAdaptiveGroups(
        limit: $limit
        filter: { datetime_geq: $startDateTime, datetime_lt: $endDateTimeExclusive }
      ) {
        count
        dimensions { source action }
      }
    }
  }
}
"""

SECURITY_ACTION_ONLY_QUERY = """
query SecurityGroupsFallback($zoneTag: string!, $startDateTime: Time!, $endDateTimeExclusive: Time!, $limit: Int!) {
  viewer {
    zones(filter: { zoneTag: $zoneTag }) {
      firewallEventsAdaptiveGroups(
        limit: $limit
        filter: { datetime_geq: $startDateTime, datetime_lt: $endDateTimeExclusive }
      ) {
        count
        dimensions { action }
      }
    }
  }
}
"""


# ─────────────────────────────────────────────────────────────────────
# helpers
# ─────────────────────────────────────────────────────────────────────

def _to_int(value) -> int:
    """Cloudflare returns counts as numbers or numeric strings."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return 0
    return 0


def _iso_time(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _zone_groups(data: dict, field: str) -> list[dict]:
    """Rows of ``field`` for the first zone. Raises UpstreamError on an unexpected shape."""
    viewer = data.get("viewer")
    if viewer is None:
        return []
    if not isinstance(viewer, dict):
        raise UpstreamError(f"Cloudflare GraphQL returned an unexpected viewer: {type(viewer).__name__}")
    zones = viewer.get("zones") or []
    if not isinstance(zones, list):
        raise UpstreamError(f"Cloudflare GraphQL returned unexpected zones: {type(zones).__name__}")
    if not zones:
        return []
    zone = zones[0]
    if not isinstance(zone, dict):
        raise UpstreamError(f"Cloudflare GraphQL returned an unexpected zone: {type(zone).__name__}")
    groups = zone.get(field) or []
    if not isinstance(groups, list) or not all(isinstance(item, dict) for item in groups):
        raise UpstreamError(f"Cloudflare GraphQL returned malformed {field} rows")
    return groups


def classify_http_error(status: int, body: str) -> Exception:
    """Map a non-2xx Cloudflare response to AuthError or UpstreamError."""
    if status in (401, 403) or (
        status == 400 and ('"code":10001' in body or "Unable to authenticate request" in body)
    ):
        return AuthError(
            "Cloudflare GraphQL auth failed. Set a valid CF_API_TOKEN "
            "(needs Analytics:Read on the zone)."
        )
    return UpstreamError(f"Cloudflare GraphQL request failed ({status}): {body[:300]}")


class CloudflareClient:
    """Thin GraphQL client. One aiohttp session per request."""

    def __init__(self, api_token: str, timeout_secs: int = 30):
        self.api_token = api_token
        self.timeout = aiohttp.ClientTimeout(total=timeout_secs)

    async def query(self, query: str, variables: dict) -> dict:
        if not self.api_token:
            raise AuthError("CF_API_TOKEN not set — cannot query Cloudflare analytics")
        return await _graphql_request(query, variables, self.api_token, self.timeout)


async def _graphql_request(
    query: str,
    variables: dict,
    token: str,
    timeout: aiohttp.ClientTimeout,
) -> dict:
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                GRAPHQL_ENDPOINT,
                json={"query": query, "variables": variables},
                headers=headers,
            ) as resp:
                status = resp.status
                raw = await resp.read()
                charset = resp.charset or "utf-8"
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise UpstreamError(f"Cloudflare GraphQL unreachable: {e!r}") from e

    if status >= 400:
        raise classify_http_error(status, raw.decode("utf-8", errors="replace"))
    try:
        payload = json.loads(raw.decode(charset))
    except (ValueError, LookupError) as e:
        # ValueError covers UnicodeDecodeError and JSONDecodeError
        raise UpstreamError(f"Cloudflare GraphQL returned an unreadable body: {e}") from e

    if not isinstance(payload, dict):
        raise UpstreamError(f"Cloudflare GraphQL returned a {type(payload).__name__}, expected an object")
    errors = payload.get("errors") or []
    if errors:
        if not isinstance(errors, list):
            errors = [errors]
        joined = "; ".join(str(_as_dict(err).get("message", err)) for err in errors)
        raise UpstreamError(f"Cloudflare GraphQL returned errors: {joined}")
    data = payload.get("data")
    if not data:
        raise UpstreamError("Cloudflare GraphQL returned no data")
    if not isinstance(data, dict):
        raise UpstreamError(f"Cloudflare GraphQL returned {type(data).__name__} data, expected an object")
    return data


# ─────────────────────────────────────────────────────────────────────
# sources
# ─────────────────────────────────────────────────────────────────────

class TrafficSource:
    """Required signal. AuthError / UpstreamError propagate."""

    def __init__(self, client: CloudflareClient):
        self.client = client

    async def fetch(self, zone_id: str, start_date: date, end_date_exclusive: date) -> list[DailyTrafficPoint]:
        """Daily points sorted by date, one per date, missing days absent."""
        data = await self.client.query(TRAFFIC_DAILY_QUERY, {
            "zoneTag": zone_id,
            "startDate": start_date.isoformat(),
            "endDateExclusive": end_date_exclusive.isoformat(),
            "limit": TRAFFIC_QUERY_LIMIT,
        })

        by_date: dict[date, DailyTrafficPoint] = {}
        for item in _zone_groups(data, "httpRequests1dGroups"):
            raw_date = _as_dict(item.get("dimensions")).get("date")
            if not raw_date:
                continue
            try:
                day = date.fromisoformat(str(raw_date)[:10])
            except ValueError:
                logger.warning("Skipping traffic row with bad date %r", raw_date)
                continue
            if not start_date <= day < end_date_exclusive:
                continue
            sums = _as_dict(item.get("sum"))
            uniq = _as_dict(item.get("uniq"))
            point = DailyTrafficPoint(
                date=day,
                requests=_to_int(sums.get("requests")),
                uniques=_to_int(uniq.get("uniques")),
                bytes=_to_int(sums.get("bytes")),
            )
            previous = by_date.get(day)
            if previous:
                point = DailyTrafficPoint(
                    date=day,
                    requests=previous.requests + point.requests,
                    uniques=previous.uniques + point.uniques,
                    bytes=previous.bytes + point.bytes,
                )
            by_date[day] = point

        return [by_date[day] for day in sorted(by_date)]

    async def fetch_top_paths(self, zone_id: str, period: MonthPeriod, limit: int = TOP_PATHS_LIMIT) -> list[TopPath]:
        data = await self.client.query(TOP_PATHS_QUERY, {
            "zoneTag": zone_id,
            "startDateTime": _iso_time(period.start_datetime),
            "endDateTimeExclusive": _iso_time(period.end_datetime_exclusive),
            "limit": limit,
        })
        return [
            TopPath(
                path=_as_dict(item.get("dimensions")).get("clientRequestPath") or "/",
                requests=_to_int((_as_dict(item.get("sum"))).get("requests")),
            )
            for item in _zone_groups(data, "httpRequestsAdaptiveGroups")
        ]


class SecuritySource:
    """
    Degrading source. Tries (source, action) first, then action only.

    Returns ``[]`` when the zone's plan has no firewall analytics; raises
    UpstreamError when both queries fail so the aggregator can warn.
    AuthError always propagates.
    """

    def __init__(self, client: CloudflareClient):
        self.client = client

    async def fetch(self, zone_id: str, period: MonthPeriod) -> list[SecurityEventGroup]:
        variables = {
            "zoneTag": zone_id,
            "startDateTime": _iso_time(period.start_datetime),
            "endDateTimeExclusive": _iso_time(period.end_datetime_exclusive),
            "limit": SECURITY_QUERY_LIMIT,
        }

        try:
            data = await self.client.query(SECURITY_QUERY, variables)
        except UpstreamError as primary:
            if PLAN_LIMITATION_MARKER in str(primary):
                logger.info("ℹ️ Zone %s has no firewall analytics on its plan — skipping", zone_id)
                return []
            logger.warning("⚠️ Security query rejected (%s) — retrying with action only", primary)
        else:
            return [
                SecurityEventGroup(
                    source=_as_dict(item.get("dimensions")).get("source") or "unknown",
                    action=_as_dict(item.get("dimensions")).get("action") or "unknown",
                    count=_to_int(item.get("count")),
                )
                for item in _zone_groups(data, "firewallEventsAdaptiveGroups")
            ]

        try:
            data = await self.client.query(SECURITY_ACTION_ONLY_QUERY, variables)
        except UpstreamError as fallback:
            if PLAN_LIMITATION_MARKER in str(fallback):
                return []
            raise UpstreamError(f"security query failed with reduced dimensions: {fallback}") from fallback

        return [
            SecurityEventGroup(
                source="unknown",
                action=_as_dict(item.get("dimensions")).get("action") or "unknown",
                count=_to_int(item.get("count")),
            )
            for item in _zone_groups(data, "firewallEventsAdaptiveGroups")
        ]
