import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from src.core.reporting.errors import PeriodLockedError
from src.core.reporting.models import (
    POST_SUBMISSION_STATUSES,
    FinancialReportRecord,
    PeriodLockRecord,
)
from src.core.reporting.repository import FinancialReportRepository

logger = logging.getLogger(__name__)

SUBMISSION_LOCK_REASON = "Report submitted for approval"
REJECTION_UNLOCK_REASON = "Report rejected for correction"


class PeriodLockService:
    """Locks a (project, facility, reporting period) scope while its reports are under review.

    Locks are never deleted: unlocking flips ``is_locked`` and records who released the
    scope, so the row doubles as the audit trail for the latest lock and unlock.
    """

    def __init__(self, *, repository: FinancialReportRepository) -> None:
        self._repository = repository

    def get_lock(
        self, *, project_id: int, facility_id: int, reporting_period_id: int
    ) -> Optional[PeriodLockRecord]:
        return self._repository.get_period_lock(
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
        )

    def is_period_locked(
        self, *, project_id: int, facility_id: int, reporting_period_id: int
    ) -> bool:
        lock = self.get_lock(
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
        )
        return lock is not None and lock.is_locked

    def build_lock(
        self,
        *,
        project_id: int,
        facility_id: int,
        reporting_period_id: int,
        actor_id: int,
        reason: str,
        locked_at: Optional[datetime] = None,
    ) -> PeriodLockRecord:
        existing = self.get_lock(
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
        )
        update = {
            "is_locked": True,
            "locked_by": actor_id,
            "locked_at": locked_at or _utc_now(),
            "locked_reason": reason,
        }
        if existing is not None:
            return existing.model_copy(update=update)
        return PeriodLockRecord(
            lock_id=f"pl_{uuid.uuid4().hex[:12]}",
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
            **update,
        )

    def build_unlock(
        self,
        *,
        project_id: int,
        facility_id: int,
        reporting_period_id: int,
        actor_id: int,
        reason: str,
        unlocked_at: Optional[datetime] = None,
    ) -> Optional[PeriodLockRecord]:
        existing = self.get_lock(
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
        )
        if existing is None or not existing.is_locked:
            return None
        return existing.model_copy(
            update={
                "is_locked": False,
                "unlocked_by": actor_id,
                "unlocked_at": unlocked_at or _utc_now(),
                "unlocked_reason": reason,
            }
        )

    def build_release_for_rejection(
        self,
        report: FinancialReportRecord,
        *,
        actor_id: int,
        reason: str = REJECTION_UNLOCK_REASON,
        unlocked_at: Optional[datetime] = None,
    ) -> Optional[PeriodLockRecord]:
        """Unlock the report's scope unless another submitted report still holds it."""
        holders = [
            other
            for other in self._repository.list_reports(statuses=sorted(POST_SUBMISSION_STATUSES))
            if other.report_id != report.report_id
            and other.project_id == report.project_id
            and other.facility_id == report.facility_id
            and other.reporting_period_id == report.reporting_period_id
        ]
        if holders:
            logger.info(
                "period_lock.retained",
                extra={
                    "extra_fields": {
                        "report_id": report.report_id,
                        "held_by_report_ids": [other.report_id for other in holders],
                    }
                },
            )
            return None
        return self.build_unlock(
            project_id=report.project_id,
            facility_id=report.facility_id,
            reporting_period_id=report.reporting_period_id,
            actor_id=actor_id,
            reason=reason,
            unlocked_at=unlocked_at,
        )

    def lock_period(
        self,
        *,
        project_id: int,
        facility_id: int,
        reporting_period_id: int,
        actor_id: int,
        reason: str,
    ) -> PeriodLockRecord:
        lock = self.build_lock(
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
            actor_id=actor_id,
            reason=reason,
        )
        self._repository.save_period_lock(lock)
        logger.info("period_lock.locked", extra={"extra_fields": _lock_fields(lock)})
        return lock

    def unlock_period(
        self,
        *,
        project_id: int,
        facility_id: int,
        reporting_period_id: int,
        actor_id: int,
        reason: str,
    ) -> Optional[PeriodLockRecord]:
        lock = self.build_unlock(
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
            actor_id=actor_id,
            reason=reason,
        )
        if lock is None:
            return None
        self._repository.save_period_lock(lock)
        logger.info("period_lock.unlocked", extra={"extra_fields": _lock_fields(lock)})
        return lock

    def validate_edit_operation(
        self,
        *,
        project_id: int,
        facility_id: int,
        reporting_period_id: int,
        actor_id: int,
        allow_override: bool = False,
    ) -> None:
        """Raise ``PeriodLockedError`` when source data for the scope may not be edited.

        ``allow_override`` is for administrators correcting data in a locked period.
        """
        lock = self.get_lock(
            project_id=project_id,
            facility_id=facility_id,
            reporting_period_id=reporting_period_id,
        )
        if lock is None or not lock.is_locked:
            return
        if allow_override:
            logger.info(
                "period_lock.override",
                extra={"extra_fields": {**_lock_fields(lock), "actor_id": actor_id}},
            )
            return
        logger.warning(
            "period_lock.edit_refused",
            extra={"extra_fields": {**_lock_fields(lock), "actor_id": actor_id}},
        )
        raise PeriodLockedError(
            "PERIOD_LOCKED: reporting period is locked by a submitted financial report"
        )


def _lock_fields(lock: PeriodLockRecord) -> dict:
    return {
        "lock_id": lock.lock_id,
        "project_id": lock.project_id,
        "facility_id": lock.facility_id,
        "reporting_period_id": lock.reporting_period_id,
    }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
