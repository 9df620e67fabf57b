import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from src.core.reporting.errors import (
    FinancialReportNotFoundError,
    FinancialReportStateConflictError,
    FinancialReportTransitionError,
    FinancialReportValidationError,
    SnapshotCorruptedError,
    SnapshotMissingError,
)
from src.core.reporting.models import (
    SUBMITTABLE_STATUSES,
    FinancialReportDetailResponse,
    FinancialReportRecord,
    FinancialReportReviewRequest,
    FinancialReportStatus,
    FinancialReportSubmitRequest,
    FinancialReportSummary,
    FinancialReportWorkflowEvent,
    FinancialReportWorkflowEventRecord,
    FinancialReportWorkflowResponse,
    FinancialReportWorkflowTimelineResponse,
    PeriodLockStatusResponse,
    ReportSnapshotResponse,
    ReportVersionDetail,
    ReportVersionListResponse,
    SnapshotIntegrityResult,
    SourceFreshnessAssessment,
    VersionComparisonResult,
    WorkflowAction,
)
from src.core.reporting.period_locks import SUBMISSION_LOCK_REASON, PeriodLockService
from src.core.reporting.repository import FinancialReportRepository
from src.core.reporting.snapshot import SnapshotService
from src.core.reporting.versions import INITIAL_VERSION, VersionService

logger = logging.getLogger(__name__)

SUBMITTED_STATUS: FinancialReportStatus = "pending_daf_approval"

REVIEW_TRANSITION_MAP: dict[
    tuple[str, FinancialReportStatus, bool], tuple[WorkflowAction, FinancialReportStatus]
] = {
    ("DAF", "pending_daf_approval", True): ("daf_approved", "approved_by_daf"),
    ("DAF", "pending_daf_approval", False): ("daf_rejected", "rejected_by_daf"),
    ("DG", "approved_by_daf", True): ("dg_approved", "fully_approved"),
    ("DG", "approved_by_daf", False): ("dg_rejected", "rejected_by_dg"),
}


class FinancialReportWorkflowService:
    def __init__(
        self,
        *,
        repository: FinancialReportRepository,
        snapshot_service: Optional[SnapshotService] = None,
        version_service: Optional[VersionService] = None,
        period_lock_service: Optional[PeriodLockService] = None,
        require_expected_status: bool = False,
    ) -> None:
        self._repository = repository
        self._snapshot_service = snapshot_service or SnapshotService(repository=repository)
        self._version_service = version_service or VersionService(
            repository=repository, snapshot_service=self._snapshot_service
        )
        self._period_lock_service = period_lock_service or PeriodLockService(
            repository=repository
        )
        self._require_expected_status = require_expected_status

    @property
    def snapshot_service(self) -> SnapshotService:
        return self._snapshot_service

    @property
    def repository(self) -> FinancialReportRepository:
        return self._repository

    def submit_for_approval(
        self,
        *,
        report_id: int,
        payload: FinancialReportSubmitRequest,
    ) -> FinancialReportWorkflowResponse:
        report = self._get_report(report_id)
        self._validate_expected_status(report.status, payload.expected_status)
        if report.status not in SUBMITTABLE_STATUSES:
            raise FinancialReportTransitionError("INVALID_TRANSITION: report is not submittable")

        version_number = self._version_service.next_version_number(report_id=report_id)
        snapshot = self._snapshot_service.capture_snapshot(
            report,
            facility_ids=payload.facility_ids,
            version=version_number,
        )
        now = _utc_now()
        version = self._version_service.build_version(
            report_id=report_id,
            version_number=version_number,
            snapshot=snapshot,
            created_by=payload.actor_id,
            changes_summary=(
                "Initial submission for approval"
                if version_number == INITIAL_VERSION
                else "Resubmission after rejection"
            ),
        )
        event = FinancialReportWorkflowEventRecord(
            event_id=f"fre_{uuid.uuid4().hex[:12]}",
            report_id=report_id,
            action="submitted",
            from_status=report.status,
            to_status=SUBMITTED_STATUS,
            actor_id=payload.actor_id,
            occurred_at=now,
            related_version_number=version_number,
        )
        updated = report.model_copy(
            update={
                "status": SUBMITTED_STATUS,
                "version": version_number,
                "locked": True,
                "report_data": snapshot.model_dump(mode="json"),
                "snapshot_checksum": snapshot.checksum,
                "snapshot_timestamp": snapshot.captured_at,
                "is_outdated": False,
                "submitted_by": payload.actor_id,
                "submitted_at": now,
                "updated_at": now,
            }
        )
        period_lock = self._period_lock_service.build_lock(
            project_id=report.project_id,
            facility_id=report.facility_id,
            reporting_period_id=report.reporting_period_id,
            actor_id=payload.actor_id,
            reason=SUBMISSION_LOCK_REASON,
            locked_at=now,
        )

        self._repository.transition_report(
            report=updated, event=event, version=version, period_lock=period_lock
        )
        logger.info(
            "financial_report.submitted",
            extra={
                "extra_fields": {
                    "report_id": report_id,
                    "version_number": version_number,
                    "checksum": snapshot.checksum,
                }
            },
        )
        return FinancialReportWorkflowResponse(
            report=self._to_summary(updated),
            latest_workflow_event=self._to_event(event),
            version=self._version_service.to_detail(version),
        )

    def record_review(
        self,
        *,
        report_id: int,
        payload: FinancialReportReviewRequest,
    ) -> FinancialReportWorkflowResponse:
        report = self._get_report(report_id)
        self._validate_expected_status(report.status, payload.expected_status)
        action, to_status = self._resolve_review_transition(
            review_type=payload.review_type,
            current_status=report.status,
            approved=payload.approved,
        )
        comment = (payload.comment or "").strip() or None
        if not payload.approved and comment is None:
            raise FinancialReportValidationError("REJECTION_COMMENT_REQUIRED")
        self._assert_snapshot_reviewable(report)

        now = _utc_now()
        event = FinancialReportWorkflowEventRecord(
            event_id=f"fre_{uuid.uuid4().hex[:12]}",
            report_id=report_id,
            action=action,
            from_status=report.status,
            to_status=to_status,
            actor_id=payload.actor_id,
            occurred_at=now,
            comment=comment,
            related_version_number=report.version,
        )
        updated = report.model_copy(
            update={
                "status": to_status,
                "locked": payload.approved,
                "updated_at": now,
            }
        )

        period_lock = None
        if not payload.approved:
            period_lock = self._period_lock_service.build_release_for_rejection(
                report, actor_id=payload.actor_id, unlocked_at=now
            )

        self._repository.transition_report(
            report=updated, event=event, version=None, period_lock=period_lock
        )
        logger.info(
            "financial_report.reviewed",
            extra={
                "extra_fields": {
                    "report_id": report_id,
                    "review_type": payload.review_type,
                    "approved": payload.approved,
                    "to_status": to_status,
                }
            },
        )
        return FinancialReportWorkflowResponse(
            report=self._to_summary(updated),
            latest_workflow_event=self._to_event(event),
        )

    def get_report_detail(self, *, report_id: int) -> FinancialReportDetailResponse:
        report = self._get_report(report_id)
        integrity = self._snapshot_service.verify_snapshot_integrity(report)
        if integrity.is_corrupted:
            freshness = SourceFreshnessAssessment(report_id=report_id, status="NOT_APPLICABLE")
        else:
            freshness = self._snapshot_service.assess_source_freshness(report)
        return FinancialReportDetailResponse(
            report=self._to_summary(report),
            integrity=integrity,
            freshness=freshness,
        )

    def get_integrity(self, *, report_id: int) -> SnapshotIntegrityResult:
        return self._snapshot_service.verify_snapshot_integrity(self._get_report(report_id))

    def get_snapshot(self, *, report_id: int) -> ReportSnapshotResponse:
        report = self._get_report(report_id)
        snapshot = self._snapshot_service.require_intact_snapshot(report)
        return ReportSnapshotResponse(
            report_id=report_id,
            is_outdated=report.is_outdated,
            snapshot=snapshot,
        )

    def get_source_changes(self, *, report_id: int) -> SourceFreshnessAssessment:
        return self._snapshot_service.assess_source_freshness(self._get_report(report_id))

    def list_versions(self, *, report_id: int) -> ReportVersionListResponse:
        report = self._get_report(report_id)
        versions = self._version_service.list_versions(report_id=report_id)
        return ReportVersionListResponse(
            report_id=report_id,
            current_version=report.version,
            versions=[self._version_service.to_detail(version) for version in versions],
        )

    def get_version(self, *, report_id: int, version_number: str) -> ReportVersionDetail:
        self._get_report(report_id)
        version = self._version_service.get_version(
            report_id=report_id, version_number=version_number
        )
        return self._version_service.to_detail(version)

    def compare_versions(
        self, *, report_id: int, version1: str, version2: str
    ) -> VersionComparisonResult:
        self._get_report(report_id)
        return self._version_service.compare_versions(
            report_id=report_id, version1=version1, version2=version2
        )

    def get_workflow_timeline(self, *, report_id: int) -> FinancialReportWorkflowTimelineResponse:
        self._get_report(report_id)
        events = self._repository.list_events(report_id=report_id)
        return FinancialReportWorkflowTimelineResponse(
            report_id=report_id,
            events=[self._to_event(event) for event in events],
        )

    def get_period_lock_status(self, *, report_id: int) -> PeriodLockStatusResponse:
        report = self._get_report(report_id)
        lock = self._period_lock_service.get_lock(
            project_id=report.project_id,
            facility_id=report.facility_id,
            reporting_period_id=report.reporting_period_id,
        )
        response = PeriodLockStatusResponse(
            report_id=report_id,
            project_id=report.project_id,
            facility_id=report.facility_id,
            reporting_period_id=report.reporting_period_id,
            is_locked=False,
        )
        if lock is None:
            return response
        return response.model_copy(
            update={
                "is_locked": lock.is_locked,
                "locked_by": lock.locked_by,
                "locked_at": _optional_iso(lock.locked_at),
                "locked_reason": lock.locked_reason,
                "unlocked_by": lock.unlocked_by,
                "unlocked_at": _optional_iso(lock.unlocked_at),
                "unlocked_reason": lock.unlocked_reason,
            }
        )

    def _get_report(self, report_id: int) -> FinancialReportRecord:
        report = self._repository.get_report(report_id=report_id)
        if report is None:
            raise FinancialReportNotFoundError("FINANCIAL_REPORT_NOT_FOUND")
        return report

    def _assert_snapshot_reviewable(self, report: FinancialReportRecord) -> None:
        integrity = self._snapshot_service.verify_snapshot_integrity(report)
        if integrity.status == "MISSING":
            raise SnapshotMissingError("SNAPSHOT_MISSING")
        if integrity.is_corrupted:
            raise SnapshotCorruptedError(
                report_id=report.report_id,
                stored_checksum=integrity.stored_checksum,
                computed_checksum=integrity.computed_checksum,
            )

    def _validate_expected_status(
        self,
        current_status: FinancialReportStatus,
        expected_status: Optional[FinancialReportStatus],
    ) -> None:
        if expected_status is None and self._require_expected_status:
            raise FinancialReportStateConflictError(
                "STATE_CONFLICT: expected_status is required"
            )
        if expected_status is not None and expected_status != current_status:
            raise FinancialReportStateConflictError("STATE_CONFLICT: expected_status mismatch")

    def _resolve_review_transition(
        self,
        *,
        review_type: str,
        current_status: FinancialReportStatus,
        approved: bool,
    ) -> tuple[WorkflowAction, FinancialReportStatus]:
        if review_type not in {"DAF", "DG"}:
            raise FinancialReportTransitionError("INVALID_REVIEW_TYPE")
        transition = REVIEW_TRANSITION_MAP.get((review_type, current_status, approved))
        if transition is None:
            raise FinancialReportTransitionError("INVALID_REVIEW_STATE")
        return transition

    def _to_summary(self, report: FinancialReportRecord) -> FinancialReportSummary:
        return FinancialReportSummary(
            report_id=report.report_id,
            title=report.title,
            project_id=report.project_id,
            facility_id=report.facility_id,
            reporting_period_id=report.reporting_period_id,
            statement_code=report.statement_code,
            status=report.status,
            version=report.version,
            locked=report.locked,
            is_outdated=report.is_outdated,
            snapshot_checksum=report.snapshot_checksum,
            snapshot_timestamp=(
                report.snapshot_timestamp.isoformat()
                if report.snapshot_timestamp is not None
                else None
            ),
            updated_at=report.updated_at.isoformat(),
        )

    def _to_event(self, event: FinancialReportWorkflowEventRecord) -> FinancialReportWorkflowEvent:
        return FinancialReportWorkflowEvent(
            event_id=event.event_id,
            report_id=event.report_id,
            action=event.action,
            from_status=event.from_status,
            to_status=event.to_status,
            actor_id=event.actor_id,
            occurred_at=event.occurred_at.isoformat(),
            comment=event.comment,
            related_version_number=event.related_version_number,
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _optional_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
