from datetime import datetime
from typing import Iterable, Optional, Protocol

from src.core.reporting.models import (
    FinancialReportRecord,
    FinancialReportWorkflowEventRecord,
    PeriodLockRecord,
    ReportVersionRecord,
    SourceEntityType,
    SourceEntryRecord,
)


class FinancialReportRepository(Protocol):
    def create_report(self, report: FinancialReportRecord) -> None: ...

    def update_report(self, report: FinancialReportRecord) -> None: ...

    def get_report(self, *, report_id: int) -> Optional[FinancialReportRecord]: ...

    def list_reports(self, *, statuses: Optional[Iterable[str]]) -> list[FinancialReportRecord]: ...

    def set_report_outdated(
        self, *, report_id: int, is_outdated: bool, updated_at: datetime
    ) -> None: ...

    def list_source_entries(
        self,
        *,
        project_id: int,
        facility_ids: list[int],
        reporting_period_id: int,
        entity_type: SourceEntityType,
    ) -> list[SourceEntryRecord]: ...

    def get_source_entry_timestamps(self, *, entry_ids: list[int]) -> dict[int, datetime]: ...

    def create_version(self, version: ReportVersionRecord) -> None: ...

    def get_version(
        self, *, report_id: int, version_number: str
    ) -> Optional[ReportVersionRecord]: ...

    def list_versions(self, *, report_id: int) -> list[ReportVersionRecord]: ...

    def append_event(self, event: FinancialReportWorkflowEventRecord) -> None: ...

    def list_events(self, *, report_id: int) -> list[FinancialReportWorkflowEventRecord]: ...

    def get_period_lock(
        self, *, project_id: int, facility_id: int, reporting_period_id: int
    ) -> Optional[PeriodLockRecord]: ...

    def save_period_lock(self, lock: PeriodLockRecord) -> None: ...

    def transition_report(
        self,
        *,
        report: FinancialReportRecord,
        event: FinancialReportWorkflowEventRecord,
        version: Optional[ReportVersionRecord],
        period_lock: Optional[PeriodLockRecord] = None,
    ) -> None: ...
