"""
Report pipeline error taxonomy.

ValidationError  — bad month override (user-facing, 4xx)
AuthError        — upstream rejected our credentials (fatal)
UpstreamError    — upstream failed; fatal for traffic, degrading elsewhere
ConversionError  — HTML → PDF conversion failed (fatal, before persistence)
"""


class ReportError(Exception):
    """Base class for every error raised by the report pipeline."""


class ValidationError(ReportError):
    pass


class AuthError(ReportError):
    pass


class UpstreamError(ReportError):
    pass


class ConversionError(ReportError):
    pass
