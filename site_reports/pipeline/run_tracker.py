"""
Run tracker — records one generation attempt: started → success | failed.

The start record is best effort (a failed write never blocks the run).
The finish record is written exactly once, whether the run succeeded or
raised; if the start row is missing it is created at finish time.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from site_reports.models.report_run import ReportRun
from site_reports.schemas import RunStatus, TriggerType

logger = logging.getLogger("reports.runs")

ERROR_MAX_LEN = 1000


class RunAlreadyFinished(RuntimeError):
    pass


class RunTracker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client_id: str,
        report_month: str,
        trigger: TriggerType,
        run_id: str | None = None,
    ):
        self._session_factory = session_factory
        self.run_id = run_id or str(uuid.uuid4())
        self.client_id = client_id
        self.report_month = report_month
        self.trigger = TriggerType(trigger)
        self.started_at: datetime | None = None
        self.status = RunStatus.STARTED
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    async def start(self) -> None:
        self.started_at = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                session.add(ReportRun(
                    run_id=self.run_id,
                    client_id=self.client_id,
                    report_month=self.report_month,
                    trigger_type=self.trigger.value,
                    status=RunStatus.STARTED.value,
                    started_at=self.started_at,
                ))
                await session.commit()
            logger.info("▶️ Run %s started (%s %s, %s)", self.run_id, self.client_id, self.report_month, self.trigger.value)
        except Exception as e:
            logger.warning("Failed to record start of run %s: %s", self.run_id, e)

    async def finish(
        self,
        status: RunStatus,
        *,
        html_key: str | None = None,
        pdf_key: str | None = None,
        warning_count: int = 0,
        error: str | None = None,
    ) -> None:
        status = RunStatus(status)
        if status == RunStatus.STARTED:
            raise ValueError("finish() needs a terminal status")
        if self._finished:
            raise RunAlreadyFinished(f"Run {self.run_id} already finished as {self.status.value}")
        self._finished = True
        self.status = status

        row = ReportRun(
            run_id=self.run_id,
            client_id=self.client_id,
            report_month=self.report_month,
            trigger_type=self.trigger.value,
            status=status.value,
            started_at=self.started_at or datetime.now(timezone.utc),
            finished_at=datetime.now(timezone.utc),
            html_key=html_key,
            pdf_key=pdf_key,
            warning_count=warning_count,
            error_message=error[:ERROR_MAX_LEN] if error else None,
        )
        try:
            async with self._session_factory() as session:
                await session.merge(row)
                await session.commit()
        except Exception as e:
            logger.error("Failed to record %s for run %s: %s", status.value, self.run_id, e)
            return

        if status == RunStatus.SUCCESS:
            logger.info("🏁 Run %s succeeded (%d warnings)", self.run_id, warning_count)
        else:
            logger.info("🛑 Run %s failed: %s", self.run_id, (error or "")[:200])
