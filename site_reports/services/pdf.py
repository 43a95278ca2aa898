"""
HTML → PDF conversion via Cloudflare Browser Rendering.
"""

import asyncio
import logging

import aiohttp

from site_reports.errors import ConversionError

logger = logging.getLogger(__name__)

RENDER_ENDPOINT = "https://api.cloudflare.com/client/v4/accounts/{account_id}/browser-rendering/pdf"


async def html_to_pdf(
    html: str,
    *,
    account_id: str,
    api_token: str,
    timeout_secs: int = 90,
) -> bytes:
    """Render ``html`` to A4 PDF bytes. Raises ConversionError on any failure."""
    if not account_id or not api_token:
        raise ConversionError("CF_ACCOUNT_ID / CF_API_TOKEN not set — cannot render PDF")

    payload = {
        "html": html,
        "pdfOptions": {"format": "A4", "printBackground": True},
        "gotoOptions": {"waitUntil": "networkidle0"},
    }
    headers = {
        "Authorization": f"Bearer {api_token}",
        "Content-Type": "application/json",
    }
    url = RENDER_ENDPOINT.format(account_id=account_id)

    try:
        timeout = aiohttp.ClientTimeout(total=timeout_secs)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=payload, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise ConversionError(
                        f"Browser Rendering PDF request failed ({resp.status}): {body[:300]}"
                    )
                content_type = resp.headers.get("content-type", "")
                if "application/json" in content_type:
                    body = await resp.text()
                    raise ConversionError(f"Unexpected JSON response from PDF endpoint: {body[:300]}")
                data = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ConversionError(f"Browser Rendering unreachable: {e!r}") from e

    if not data:
        raise ConversionError("Browser Rendering returned an empty PDF")
    logger.info("📄 Rendered PDF (%d bytes)", len(data))
    return data
