from typing import Optional


class FinancialReportLifecycleError(Exception):
    code = "FINANCIAL_REPORT_ERROR"


class FinancialReportNotFoundError(FinancialReportLifecycleError):
    code = "NOT_FOUND"


class ReportVersionNotFoundError(FinancialReportNotFoundError):
    pass


class FinancialReportValidationError(FinancialReportLifecycleError):
    code = "VALIDATION_FAILED"


class FinancialReportStateConflictError(FinancialReportLifecycleError):
    code = "STATE_CONFLICT"


class FinancialReportTransitionError(FinancialReportLifecycleError):
    code = "INVALID_TRANSITION"


class ReportVersionConflictError(FinancialReportLifecycleError):
    code = "VERSION_CONFLICT"


class PeriodLockedError(FinancialReportLifecycleError):
    code = "PERIOD_LOCKED"


class SnapshotMissingError(FinancialReportLifecycleError):
    code = "SNAPSHOT_MISSING"


class SnapshotCorruptedError(FinancialReportLifecycleError):
    code = "SNAPSHOT_CORRUPTED"

    def __init__(
        self,
        *,
        report_id: int,
        stored_checksum: Optional[str],
        computed_checksum: Optional[str],
    ) -> None:
        super().__init__("SNAPSHOT_CORRUPTED")
        self.report_id = report_id
        self.stored_checksum = stored_checksum
        self.computed_checksum = computed_checksum


class ReportingStoreTransientError(FinancialReportLifecycleError):
    """Database I/O failed; the operation may succeed when retried."""

    code = "TRANSIENT"
