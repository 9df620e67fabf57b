import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.core.reporting.models import POST_SUBMISSION_STATUSES, OutdatedReportsRunSummary
from src.core.reporting.repository import FinancialReportRepository
from src.core.reporting.snapshot import SnapshotService

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3600.0
OUTDATED_REPORTS_JOB_ID = "detect_outdated_reports"


@dataclass(frozen=True)
class OutdatedReportsJobHandle:
    scheduler: BackgroundScheduler
    job_id: str
    interval_seconds: float

    @property
    def is_running(self) -> bool:
        return self.scheduler.running and self.scheduler.get_job(self.job_id) is not None


def detect_outdated_reports(
    *,
    repository: FinancialReportRepository,
    snapshot_service: Optional[SnapshotService] = None,
) -> OutdatedReportsRunSummary:
    """Reconcile ``is_outdated`` for every submitted or approved report.

    Reports are processed one at a time. A failure on one report is logged and
    counted and the pass moves on to the next report.
    """
    snapshot_service = snapshot_service or SnapshotService(repository=repository)
    started_at = _utc_now()
    summary = OutdatedReportsRunSummary(
        started_at=started_at.isoformat(),
        finished_at=started_at.isoformat(),
    )

    reports = repository.list_reports(statuses=sorted(POST_SUBMISSION_STATUSES))
    for report in reports:
        if not report.report_data or report.snapshot_timestamp is None:
            summary.skipped += 1
            continue
        try:
            has_changes = snapshot_service.detect_source_data_changes(report.report_id)
            if has_changes and not report.is_outdated:
                repository.set_report_outdated(
                    report_id=report.report_id, is_outdated=True, updated_at=_utc_now()
                )
                summary.flagged += 1
            elif not has_changes and report.is_outdated:
                repository.set_report_outdated(
                    report_id=report.report_id, is_outdated=False, updated_at=_utc_now()
                )
                summary.cleared += 1
            summary.checked += 1
        except Exception:
            logger.exception("Outdated detection failed for report %s", report.report_id)
            summary.errors += 1
            summary.failed_report_ids.append(report.report_id)

    summary.finished_at = _utc_now().isoformat()
    logger.info(
        "outdated_reports.pass_completed",
        extra={"extra_fields": summary.model_dump(mode="json")},
    )
    return summary


def schedule_outdated_reports_job(
    *,
    repository: Optional[FinancialReportRepository] = None,
    repository_provider: Optional[Callable[[], FinancialReportRepository]] = None,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    snapshot_service: Optional[SnapshotService] = None,
) -> OutdatedReportsJobHandle:
    """Start a background scheduler running one pass now and one per interval.

    With ``repository_provider`` the store is resolved on every tick, so a store
    that cannot be reached yet fails that tick only.
    """
    if (repository is None) == (repository_provider is None):
        raise ValueError("exactly one of repository or repository_provider is required")
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")

    def _run_pass() -> None:
        try:
            current = repository if repository is not None else repository_provider()
            detect_outdated_reports(repository=current, snapshot_service=snapshot_service)
        except Exception:
            logger.exception("Outdated reports pass failed")

    scheduler = BackgroundScheduler(timezone="UTC", daemon=True)
    scheduler.add_job(
        _run_pass,
        trigger=IntervalTrigger(seconds=interval_seconds, timezone="UTC"),
        id=OUTDATED_REPORTS_JOB_ID,
        next_run_time=_utc_now(),
        max_instances=1,
        coalesce=True,
        misfire_grace_time=int(max(interval_seconds, 1)),
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "outdated_reports.job_scheduled",
        extra={"extra_fields": {"interval_seconds": interval_seconds}},
    )
    return OutdatedReportsJobHandle(
        scheduler=scheduler, job_id=OUTDATED_REPORTS_JOB_ID, interval_seconds=interval_seconds
    )


def stop_outdated_reports_job(handle: OutdatedReportsJobHandle, *, wait: bool = True) -> None:
    if handle.scheduler.running:
        handle.scheduler.shutdown(wait=wait)
    logger.info("outdated_reports.job_stopped")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
