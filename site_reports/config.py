"""
Site Reports — Configuration via environment variables.
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All settings read from env / .env file."""

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./site_reports.db",
        description="Async SQLAlchemy DB URL",
    )

    # Cloudflare (GraphQL analytics + Browser Rendering PDF)
    cf_api_token: str = Field(default="", description="Cloudflare API token with Analytics:Read")
    cf_account_id: str = Field(default="", description="Cloudflare account id for Browser Rendering")

    # Google PageSpeed Insights
    psi_api_key: str = Field(default="", description="PageSpeed Insights API key")
    pagespeed_extended: bool = Field(
        default=True,
        description="Also collect web vitals + improvement opportunities",
    )

    # Report output
    report_timezone: str = Field(default="UTC")
    reports_dir: str = Field(default="./report_artifacts", description="Local blob store root")

    # Network
    http_timeout_secs: int = Field(default=30)
    pdf_timeout_secs: int = Field(default=90)

    # Default site (one deployment can still serve others via SiteConfig)
    site_client_id: str = Field(default="demo-client")
    site_zone_id: str = Field(default="")
    site_domain: str = Field(default="")
    site_pagespeed_urls: str = Field(
        default="",
        description="Comma-separated URLs probed with PageSpeed",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Scheduled trigger: 1st of the month, 06:00 UTC
    schedule_enabled: bool = Field(default=True)
    schedule_day: int = Field(default=1)
    schedule_hour: int = Field(default=6)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


class SiteConfig(BaseModel):
    """The site a report is generated for. Passed explicitly into the pipeline."""

    client_id: str
    zone_id: str
    domain: str
    pagespeed_urls: list[str] = []
    timezone: str = "UTC"


def site_from_settings(s: Settings | None = None) -> SiteConfig:
    """Build the deployment's default site from settings."""
    s = s or settings
    urls = [u.strip() for u in s.site_pagespeed_urls.split(",") if u.strip()]
    if not urls and s.site_domain:
        urls = [f"https://{s.site_domain}/"]
    return SiteConfig(
        client_id=s.site_client_id,
        zone_id=s.site_zone_id,
        domain=s.site_domain,
        pagespeed_urls=urls,
        timezone=s.report_timezone or "UTC",
    )


settings = Settings()
