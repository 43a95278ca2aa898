from site_reports.models.monthly_report import MonthlyReport  # noqa: F401
from site_reports.models.report_run import ReportRun  # noqa: F401
