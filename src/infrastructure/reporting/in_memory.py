from copy import deepcopy
from datetime import datetime
from threading import Lock
from typing import Iterable, Optional

from src.core.reporting.errors import ReportVersionConflictError
from src.core.reporting.models import (
    FinancialReportRecord,
    FinancialReportWorkflowEventRecord,
    PeriodLockRecord,
    ReportVersionRecord,
    SourceEntityType,
    SourceEntryRecord,
)
from src.core.reporting.repository import FinancialReportRepository


class InMemoryFinancialReportRepository(FinancialReportRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._reports: dict[int, FinancialReportRecord] = {}
        self._versions: dict[tuple[int, str], ReportVersionRecord] = {}
        self._events: dict[int, list[FinancialReportWorkflowEventRecord]] = {}
        self._source_entries: dict[int, SourceEntryRecord] = {}
        self._period_locks: dict[tuple[int, int, int], PeriodLockRecord] = {}

    def create_report(self, report: FinancialReportRecord) -> None:
        with self._lock:
            self._reports[report.report_id] = deepcopy(report)

    def update_report(self, report: FinancialReportRecord) -> None:
        with self._lock:
            self._reports[report.report_id] = deepcopy(report)

    def get_report(self, *, report_id: int) -> Optional[FinancialReportRecord]:
        with self._lock:
            report = self._reports.get(report_id)
            return deepcopy(report) if report is not None else None

    def list_reports(self, *, statuses: Optional[Iterable[str]]) -> list[FinancialReportRecord]:
        allowed = set(statuses) if statuses is not None else None
        with self._lock:
            rows = [
                row
                for row in self._reports.values()
                if allowed is None or row.status in allowed
            ]
            rows = sorted(rows, key=lambda x: x.report_id)
            return [deepcopy(row) for row in rows]

    def set_report_outdated(
        self, *, report_id: int, is_outdated: bool, updated_at: datetime
    ) -> None:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                return
            report.is_outdated = is_outdated
            report.updated_at = updated_at

    def save_source_entry(self, entry: SourceEntryRecord) -> None:
        with self._lock:
            self._source_entries[entry.entry_id] = deepcopy(entry)

    def delete_source_entry(self, *, entry_id: int) -> None:
        with self._lock:
            self._source_entries.pop(entry_id, None)

    def list_source_entries(
        self,
        *,
        project_id: int,
        facility_ids: list[int],
        reporting_period_id: int,
        entity_type: SourceEntityType,
    ) -> list[SourceEntryRecord]:
        scope = set(facility_ids)
        with self._lock:
            rows = [
                row
                for row in self._source_entries.values()
                if row.project_id == project_id
                and row.facility_id in scope
                and row.reporting_period_id == reporting_period_id
                and row.entity_type == entity_type
            ]
            rows = sorted(rows, key=lambda x: x.entry_id)
            return [deepcopy(row) for row in rows]

    def get_source_entry_timestamps(self, *, entry_ids: list[int]) -> dict[int, datetime]:
        with self._lock:
            return {
                entry_id: self._source_entries[entry_id].updated_at
                for entry_id in entry_ids
                if entry_id in self._source_entries
            }

    def create_version(self, version: ReportVersionRecord) -> None:
        with self._lock:
            self._insert_version(version)

    def get_version(
        self, *, report_id: int, version_number: str
    ) -> Optional[ReportVersionRecord]:
        with self._lock:
            version = self._versions.get((report_id, version_number))
            return deepcopy(version) if version is not None else None

    def list_versions(self, *, report_id: int) -> list[ReportVersionRecord]:
        with self._lock:
            versions = [v for (rid, _), v in self._versions.items() if rid == report_id]
            versions.sort(key=lambda x: x.created_at, reverse=True)
            return [deepcopy(version) for version in versions]

    def append_event(self, event: FinancialReportWorkflowEventRecord) -> None:
        with self._lock:
            events = self._events.setdefault(event.report_id, [])
            events.append(deepcopy(event))

    def list_events(self, *, report_id: int) -> list[FinancialReportWorkflowEventRecord]:
        with self._lock:
            events = self._events.get(report_id, [])
            return [deepcopy(event) for event in events]

    def get_period_lock(
        self, *, project_id: int, facility_id: int, reporting_period_id: int
    ) -> Optional[PeriodLockRecord]:
        with self._lock:
            lock = self._period_locks.get((reporting_period_id, project_id, facility_id))
            return deepcopy(lock) if lock is not None else None

    def save_period_lock(self, lock: PeriodLockRecord) -> None:
        with self._lock:
            self._store_period_lock(lock)

    def transition_report(
        self,
        *,
        report: FinancialReportRecord,
        event: FinancialReportWorkflowEventRecord,
        version: Optional[ReportVersionRecord],
        period_lock: Optional[PeriodLockRecord] = None,
    ) -> None:
        with self._lock:
            if version is not None:
                self._insert_version(version)
            if period_lock is not None:
                self._store_period_lock(period_lock)
            self._events.setdefault(event.report_id, []).append(deepcopy(event))
            self._reports[report.report_id] = deepcopy(report)

    def _insert_version(self, version: ReportVersionRecord) -> None:
        key = (version.report_id, version.version_number)
        if key in self._versions:
            raise ReportVersionConflictError("REPORT_VERSION_EXISTS")
        self._versions[key] = deepcopy(version)

    def _store_period_lock(self, lock: PeriodLockRecord) -> None:
        key = (lock.reporting_period_id, lock.project_id, lock.facility_id)
        self._period_locks[key] = deepcopy(lock)
