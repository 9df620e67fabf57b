from src.core.reporting.errors import (
    FinancialReportLifecycleError,
    FinancialReportNotFoundError,
    FinancialReportStateConflictError,
    FinancialReportTransitionError,
    FinancialReportValidationError,
    PeriodLockedError,
    ReportingStoreTransientError,
    ReportVersionConflictError,
    ReportVersionNotFoundError,
    SnapshotCorruptedError,
    SnapshotMissingError,
)
from src.core.reporting.models import (
    FinancialReportDetailResponse,
    FinancialReportRecord,
    FinancialReportReviewRequest,
    FinancialReportSubmitRequest,
    FinancialReportWorkflowResponse,
    OutdatedReportsRunSummary,
    PeriodLockRecord,
    PeriodLockStatusResponse,
    ReportVersionRecord,
    SnapshotData,
    SnapshotIntegrityResult,
    SourceEntryRecord,
    SourceFreshnessAssessment,
    VersionComparisonResult,
)
from src.core.reporting.outdated_reports import (
    OutdatedReportsJobHandle,
    detect_outdated_reports,
    schedule_outdated_reports_job,
    stop_outdated_reports_job,
)
from src.core.reporting.period_locks import PeriodLockService
from src.core.reporting.repository import FinancialReportRepository
from src.core.reporting.snapshot import SnapshotService, compute_snapshot_checksum
from src.core.reporting.versions import VersionService, increment_version
from src.core.reporting.workflow import FinancialReportWorkflowService

__all__ = [
    "FinancialReportDetailResponse",
    "FinancialReportLifecycleError",
    "FinancialReportNotFoundError",
    "FinancialReportRecord",
    "FinancialReportRepository",
    "FinancialReportReviewRequest",
    "FinancialReportStateConflictError",
    "FinancialReportSubmitRequest",
    "FinancialReportTransitionError",
    "FinancialReportValidationError",
    "FinancialReportWorkflowResponse",
    "FinancialReportWorkflowService",
    "OutdatedReportsJobHandle",
    "OutdatedReportsRunSummary",
    "PeriodLockRecord",
    "PeriodLockService",
    "PeriodLockStatusResponse",
    "PeriodLockedError",
    "ReportVersionConflictError",
    "ReportVersionNotFoundError",
    "ReportVersionRecord",
    "ReportingStoreTransientError",
    "SnapshotCorruptedError",
    "SnapshotData",
    "SnapshotIntegrityResult",
    "SnapshotMissingError",
    "SnapshotService",
    "SourceEntryRecord",
    "SourceFreshnessAssessment",
    "VersionComparisonResult",
    "VersionService",
    "compute_snapshot_checksum",
    "detect_outdated_reports",
    "increment_version",
    "schedule_outdated_reports_job",
    "stop_outdated_reports_job",
]
