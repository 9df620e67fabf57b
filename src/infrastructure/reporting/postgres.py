import json
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from importlib.util import find_spec
from typing import Any, Iterable, Iterator, Optional, Union

from src.core.reporting.errors import ReportingStoreTransientError, ReportVersionConflictError
from src.core.reporting.models import (
    FinancialReportRecord,
    FinancialReportWorkflowEventRecord,
    PeriodLockRecord,
    ReportVersionRecord,
    SourceEntityType,
    SourceEntryRecord,
)
from src.infrastructure.postgres_migrations import apply_postgres_migrations

_REPORT_COLUMNS = """
    report_id,
    title,
    project_id,
    facility_id,
    reporting_period_id,
    statement_code,
    status,
    version,
    report_data,
    snapshot_checksum,
    snapshot_timestamp,
    is_outdated,
    locked,
    metadata_json,
    created_by,
    created_at,
    updated_at,
    submitted_by,
    submitted_at
"""

_VERSION_COLUMNS = """
    version_id,
    report_id,
    version_number,
    snapshot_data,
    snapshot_checksum,
    snapshot_timestamp,
    created_by,
    created_at,
    changes_summary
"""

_PERIOD_LOCK_COLUMNS = """
    lock_id,
    reporting_period_id,
    project_id,
    facility_id,
    is_locked,
    locked_by,
    locked_at,
    locked_reason,
    unlocked_by,
    unlocked_at,
    unlocked_reason
"""


class PostgresFinancialReportRepository:
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("FINANCIAL_REPORT_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("FINANCIAL_REPORT_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def create_report(self, report: FinancialReportRecord) -> None:
        with self._session() as connection:
            self._upsert_report(connection=connection, report=report)
            connection.commit()

    def update_report(self, report: FinancialReportRecord) -> None:
        with self._session() as connection:
            self._upsert_report(connection=connection, report=report)
            connection.commit()

    def get_report(self, *, report_id: int) -> Optional[FinancialReportRecord]:
        query = f"""
            SELECT {_REPORT_COLUMNS}
            FROM financial_reports
            WHERE report_id = %s
        """
        with self._session() as connection:
            row = connection.execute(query, (report_id,)).fetchone()
        return _to_report(row)

    def list_reports(self, *, statuses: Optional[Iterable[str]]) -> list[FinancialReportRecord]:
        args: tuple[Any, ...] = ()
        where_sql = ""
        if statuses is not None:
            where_sql = "WHERE status = ANY(%s)"
            args = (sorted(set(statuses)),)
        query = f"""
            SELECT {_REPORT_COLUMNS}
            FROM financial_reports
            {where_sql}
            ORDER BY report_id ASC
        """
        with self._session() as connection:
            rows = connection.execute(query, args).fetchall()
        return [report for report in (_to_report(row) for row in rows) if report is not None]

    def set_report_outdated(
        self, *, report_id: int, is_outdated: bool, updated_at: datetime
    ) -> None:
        query = """
            UPDATE financial_reports
            SET is_outdated = %s, updated_at = %s
            WHERE report_id = %s
        """
        with self._session() as connection:
            connection.execute(query, (is_outdated, updated_at.isoformat(), report_id))
            connection.commit()

    def save_source_entry(self, entry: SourceEntryRecord) -> None:
        query = """
            INSERT INTO form_data_entries (
                entry_id,
                entity_type,
                project_id,
                facility_id,
                reporting_period_id,
                form_data,
                updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (entry_id) DO UPDATE SET
                entity_type=excluded.entity_type,
                project_id=excluded.project_id,
                facility_id=excluded.facility_id,
                reporting_period_id=excluded.reporting_period_id,
                form_data=excluded.form_data,
                updated_at=excluded.updated_at
        """
        with self._session() as connection:
            connection.execute(
                query,
                (
                    entry.entry_id,
                    entry.entity_type,
                    entry.project_id,
                    entry.facility_id,
                    entry.reporting_period_id,
                    _json_dump(entry.form_data),
                    entry.updated_at.isoformat(),
                ),
            )
            connection.commit()

    def list_source_entries(
        self,
        *,
        project_id: int,
        facility_ids: list[int],
        reporting_period_id: int,
        entity_type: SourceEntityType,
    ) -> list[SourceEntryRecord]:
        query = """
            SELECT
                entry_id,
                entity_type,
                project_id,
                facility_id,
                reporting_period_id,
                form_data,
                updated_at
            FROM form_data_entries
            WHERE project_id = %s
                AND facility_id = ANY(%s)
                AND reporting_period_id = %s
                AND entity_type = %s
            ORDER BY entry_id ASC
        """
        with self._session() as connection:
            rows = connection.execute(
                query,
                (project_id, sorted(set(facility_ids)), reporting_period_id, entity_type),
            ).fetchall()
        return [_to_source_entry(row) for row in rows]

    def get_source_entry_timestamps(self, *, entry_ids: list[int]) -> dict[int, datetime]:
        if not entry_ids:
            return {}
        query = """
            SELECT entry_id, updated_at
            FROM form_data_entries
            WHERE entry_id = ANY(%s)
        """
        with self._session() as connection:
            rows = connection.execute(query, (sorted(set(entry_ids)),)).fetchall()
        return {int(row["entry_id"]): _parse_timestamp(row["updated_at"]) for row in rows}

    def create_version(self, version: ReportVersionRecord) -> None:
        with self._session() as connection:
            self._insert_version(connection=connection, version=version)
            connection.commit()

    def get_version(
        self, *, report_id: int, version_number: str
    ) -> Optional[ReportVersionRecord]:
        query = f"""
            SELECT {_VERSION_COLUMNS}
            FROM report_versions
            WHERE report_id = %s AND version_number = %s
        """
        with self._session() as connection:
            row = connection.execute(query, (report_id, version_number)).fetchone()
        return _to_version(row)

    def list_versions(self, *, report_id: int) -> list[ReportVersionRecord]:
        query = f"""
            SELECT {_VERSION_COLUMNS}
            FROM report_versions
            WHERE report_id = %s
            ORDER BY created_at DESC, version_id DESC
        """
        with self._session() as connection:
            rows = connection.execute(query, (report_id,)).fetchall()
        return [version for version in (_to_version(row) for row in rows) if version is not None]

    def append_event(self, event: FinancialReportWorkflowEventRecord) -> None:
        with self._session() as connection:
            self._insert_event(connection=connection, event=event)
            connection.commit()

    def list_events(self, *, report_id: int) -> list[FinancialReportWorkflowEventRecord]:
        query = """
            SELECT
                event_id,
                report_id,
                action,
                from_status,
                to_status,
                actor_id,
                occurred_at,
                comment,
                related_version_number
            FROM financial_report_workflow_events
            WHERE report_id = %s
            ORDER BY occurred_at ASC, event_id ASC
        """
        with self._session() as connection:
            rows = connection.execute(query, (report_id,)).fetchall()
        return [_to_event(row) for row in rows]

    def get_period_lock(
        self, *, project_id: int, facility_id: int, reporting_period_id: int
    ) -> Optional[PeriodLockRecord]:
        query = f"""
            SELECT {_PERIOD_LOCK_COLUMNS}
            FROM period_locks
            WHERE reporting_period_id = %s AND project_id = %s AND facility_id = %s
        """
        with self._session() as connection:
            row = connection.execute(
                query, (reporting_period_id, project_id, facility_id)
            ).fetchone()
        return _to_period_lock(row)

    def save_period_lock(self, lock: PeriodLockRecord) -> None:
        with self._session() as connection:
            self._upsert_period_lock(connection=connection, lock=lock)
            connection.commit()

    def transition_report(
        self,
        *,
        report: FinancialReportRecord,
        event: FinancialReportWorkflowEventRecord,
        version: Optional[ReportVersionRecord],
        period_lock: Optional[PeriodLockRecord] = None,
    ) -> None:
        with self._session() as connection:
            if version is not None:
                self._insert_version(connection=connection, version=version)
            if period_lock is not None:
                self._upsert_period_lock(connection=connection, lock=period_lock)
            self._insert_event(connection=connection, event=event)
            self._upsert_report(connection=connection, report=report)
            connection.commit()

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    @contextmanager
    def _session(self) -> Iterator[Any]:
        psycopg, _ = _import_psycopg()
        try:
            with closing(self._connect()) as connection:
                yield connection
        except psycopg.errors.UniqueViolation as exc:
            raise ReportVersionConflictError("REPORT_VERSION_EXISTS") from exc
        except psycopg.OperationalError as exc:
            raise ReportingStoreTransientError("FINANCIAL_REPORT_STORE_UNAVAILABLE") from exc

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="reporting")

    def _upsert_report(self, *, connection, report: FinancialReportRecord) -> None:
        query = """
            INSERT INTO financial_reports (
                report_id,
                title,
                project_id,
                facility_id,
                reporting_period_id,
                statement_code,
                status,
                version,
                report_data,
                snapshot_checksum,
                snapshot_timestamp,
                is_outdated,
                locked,
                metadata_json,
                created_by,
                created_at,
                updated_at,
                submitted_by,
                submitted_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (report_id) DO UPDATE SET
                title=excluded.title,
                project_id=excluded.project_id,
                facility_id=excluded.facility_id,
                reporting_period_id=excluded.reporting_period_id,
                statement_code=excluded.statement_code,
                status=excluded.status,
                version=excluded.version,
                report_data=excluded.report_data,
                snapshot_checksum=excluded.snapshot_checksum,
                snapshot_timestamp=excluded.snapshot_timestamp,
                is_outdated=excluded.is_outdated,
                locked=excluded.locked,
                metadata_json=excluded.metadata_json,
                created_by=excluded.created_by,
                created_at=excluded.created_at,
                updated_at=excluded.updated_at,
                submitted_by=excluded.submitted_by,
                submitted_at=excluded.submitted_at
        """
        connection.execute(
            query,
            (
                report.report_id,
                report.title,
                report.project_id,
                report.facility_id,
                report.reporting_period_id,
                report.statement_code,
                report.status,
                report.version,
                _optional_json(report.report_data),
                report.snapshot_checksum,
                _optional_iso(report.snapshot_timestamp),
                report.is_outdated,
                report.locked,
                _json_dump(report.metadata),
                report.created_by,
                report.created_at.isoformat(),
                report.updated_at.isoformat(),
                report.submitted_by,
                _optional_iso(report.submitted_at),
            ),
        )

    def _insert_version(self, *, connection, version: ReportVersionRecord) -> None:
        query = """
            INSERT INTO report_versions (
                version_id,
                report_id,
                version_number,
                snapshot_data,
                snapshot_checksum,
                snapshot_timestamp,
                created_by,
                created_at,
                changes_summary
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        connection.execute(
            query,
            (
                version.version_id,
                version.report_id,
                version.version_number,
                _json_dump(version.snapshot_data),
                version.snapshot_checksum,
                version.snapshot_timestamp.isoformat(),
                version.created_by,
                version.created_at.isoformat(),
                version.changes_summary,
            ),
        )

    def _insert_event(self, *, connection, event: FinancialReportWorkflowEventRecord) -> None:
        query = """
            INSERT INTO financial_report_workflow_events (
                event_id,
                report_id,
                action,
                from_status,
                to_status,
                actor_id,
                occurred_at,
                comment,
                related_version_number
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (event_id) DO NOTHING
        """
        connection.execute(
            query,
            (
                event.event_id,
                event.report_id,
                event.action,
                event.from_status,
                event.to_status,
                event.actor_id,
                event.occurred_at.isoformat(),
                event.comment,
                event.related_version_number,
            ),
        )

    def _upsert_period_lock(self, *, connection, lock: PeriodLockRecord) -> None:
        query = """
            INSERT INTO period_locks (
                lock_id,
                reporting_period_id,
                project_id,
                facility_id,
                is_locked,
                locked_by,
                locked_at,
                locked_reason,
                unlocked_by,
                unlocked_at,
                unlocked_reason
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (reporting_period_id, project_id, facility_id) DO UPDATE SET
                is_locked=excluded.is_locked,
                locked_by=excluded.locked_by,
                locked_at=excluded.locked_at,
                locked_reason=excluded.locked_reason,
                unlocked_by=excluded.unlocked_by,
                unlocked_at=excluded.unlocked_at,
                unlocked_reason=excluded.unlocked_reason
        """
        connection.execute(
            query,
            (
                lock.lock_id,
                lock.reporting_period_id,
                lock.project_id,
                lock.facility_id,
                lock.is_locked,
                lock.locked_by,
                _optional_iso(lock.locked_at),
                lock.locked_reason,
                lock.unlocked_by,
                _optional_iso(lock.unlocked_at),
                lock.unlocked_reason,
            ),
        )


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _optional_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _optional_json(value: Optional[dict]) -> Optional[str]:
    if value is None:
        return None
    return _json_dump(value)


def _json_dump(value: dict) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _load_json(value: Union[str, dict, None]) -> Optional[dict]:
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    return json.loads(value)


def _parse_timestamp(value: Union[str, datetime]) -> datetime:
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None:
        return None
    return _parse_timestamp(value)


def _to_report(row) -> Optional[FinancialReportRecord]:
    if row is None:
        return None
    return FinancialReportRecord(
        report_id=int(row["report_id"]),
        title=row["title"],
        project_id=int(row["project_id"]),
        facility_id=int(row["facility_id"]),
        reporting_period_id=int(row["reporting_period_id"]),
        statement_code=row["statement_code"],
        status=row["status"],
        version=row["version"],
        report_data=_load_json(row["report_data"]),
        snapshot_checksum=row["snapshot_checksum"],
        snapshot_timestamp=_optional_timestamp(row["snapshot_timestamp"]),
        is_outdated=bool(row["is_outdated"]),
        locked=bool(row["locked"]),
        metadata=_load_json(row["metadata_json"]) or {},
        created_by=row["created_by"],
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
        submitted_by=row["submitted_by"],
        submitted_at=_optional_timestamp(row["submitted_at"]),
    )


def _to_version(row) -> Optional[ReportVersionRecord]:
    if row is None:
        return None
    return ReportVersionRecord(
        version_id=row["version_id"],
        report_id=int(row["report_id"]),
        version_number=row["version_number"],
        snapshot_data=_load_json(row["snapshot_data"]) or {},
        snapshot_checksum=row["snapshot_checksum"],
        snapshot_timestamp=_parse_timestamp(row["snapshot_timestamp"]),
        created_by=row["created_by"],
        created_at=_parse_timestamp(row["created_at"]),
        changes_summary=row["changes_summary"],
    )


def _to_source_entry(row) -> SourceEntryRecord:
    return SourceEntryRecord(
        entry_id=int(row["entry_id"]),
        entity_type=row["entity_type"],
        project_id=int(row["project_id"]),
        facility_id=int(row["facility_id"]),
        reporting_period_id=int(row["reporting_period_id"]),
        form_data=_load_json(row["form_data"]) or {},
        updated_at=_parse_timestamp(row["updated_at"]),
    )


def _to_event(row) -> FinancialReportWorkflowEventRecord:
    return FinancialReportWorkflowEventRecord(
        event_id=row["event_id"],
        report_id=int(row["report_id"]),
        action=row["action"],
        from_status=row["from_status"],
        to_status=row["to_status"],
        actor_id=int(row["actor_id"]),
        occurred_at=_parse_timestamp(row["occurred_at"]),
        comment=row["comment"],
        related_version_number=row["related_version_number"],
    )


def _to_period_lock(row) -> Optional[PeriodLockRecord]:
    if row is None:
        return None
    return PeriodLockRecord(
        lock_id=row["lock_id"],
        reporting_period_id=int(row["reporting_period_id"]),
        project_id=int(row["project_id"]),
        facility_id=int(row["facility_id"]),
        is_locked=bool(row["is_locked"]),
        locked_by=row["locked_by"],
        locked_at=_optional_timestamp(row["locked_at"]),
        locked_reason=row["locked_reason"],
        unlocked_by=row["unlocked_by"],
        unlocked_at=_optional_timestamp(row["unlocked_at"]),
        unlocked_reason=row["unlocked_reason"],
    )
