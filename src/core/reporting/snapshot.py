import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError

from src.core.common.canonical import blank_key, sha256_hex_digest
from src.core.reporting.aggregations import build_aggregations
from src.core.reporting.errors import (
    FinancialReportNotFoundError,
    FinancialReportValidationError,
    SnapshotCorruptedError,
    SnapshotMissingError,
)
from src.core.reporting.models import (
    FinancialReportRecord,
    ReportVersionRecord,
    SnapshotData,
    SnapshotIntegrityResult,
    SnapshotSourceData,
    SourceDataEntry,
    SourceEntryRecord,
    SourceFreshnessAssessment,
    StatementPayload,
)
from src.core.reporting.repository import FinancialReportRepository

logger = logging.getLogger(__name__)

CHECKSUM_FIELD = "checksum"


def compute_snapshot_checksum(snapshot: Union[SnapshotData, dict[str, Any]]) -> str:
    """Hex SHA-256 over the canonical JSON of ``snapshot`` with its checksum blanked.

    Accepts either the model or the stored JSON payload. Stored payloads are
    hashed as-is so verification never depends on re-parsing.
    """
    if isinstance(snapshot, SnapshotData):
        payload = snapshot.model_dump(mode="json")
    elif isinstance(snapshot, dict):
        payload = snapshot
    else:
        raise FinancialReportValidationError("SNAPSHOT_PAYLOAD_INVALID")
    return sha256_hex_digest(blank_key(payload, key=CHECKSUM_FIELD))


def is_legacy_payload(payload: dict[str, Any]) -> bool:
    statement = payload.get("statement")
    return (
        isinstance(statement, dict)
        and bool(statement.get("statementCode") or statement.get("statement_code"))
        and not payload.get("version")
        and not payload.get("captured_at")
        and not payload.get("capturedAt")
    )


def is_snapshot_payload(payload: Optional[dict[str, Any]]) -> bool:
    return isinstance(payload, dict) and "captured_at" in payload and "source_data" in payload


class SnapshotService:
    def __init__(self, *, repository: FinancialReportRepository) -> None:
        self._repository = repository

    def compute_checksum(self, snapshot: Union[SnapshotData, dict[str, Any]]) -> str:
        return compute_snapshot_checksum(snapshot)

    def capture_snapshot(
        self,
        report: FinancialReportRecord,
        *,
        statement: Optional[StatementPayload] = None,
        facility_ids: Optional[list[int]] = None,
        version: Optional[str] = None,
        captured_at: Optional[datetime] = None,
    ) -> SnapshotData:
        statement_code = _resolve_statement_code(report)
        if not statement_code:
            raise FinancialReportValidationError("STATEMENT_CODE_REQUIRED")

        scope = sorted(set(facility_ids or [report.facility_id]))
        planning = self._load_source_entries(report, facility_ids=scope, entity_type="planning")
        execution = self._load_source_entries(report, facility_ids=scope, entity_type="execution")

        snapshot = SnapshotData(
            version=version or report.version,
            captured_at=captured_at or _utc_now(),
            statement_code=statement_code,
            statement=statement if statement is not None else _statement_from_report(report),
            source_data=SnapshotSourceData(
                planning_entries=[_to_source_data_entry(entry) for entry in planning],
                execution_entries=[_to_source_data_entry(entry) for entry in execution],
            ),
            aggregations=build_aggregations(
                planning_entries=planning,
                execution_entries=execution,
                facility_ids=scope,
            ),
        )
        checksum = self.compute_checksum(snapshot)
        logger.info(
            "snapshot.captured",
            extra={
                "extra_fields": {
                    "report_id": report.report_id,
                    "statement_code": statement_code,
                    "planning_entries": len(planning),
                    "execution_entries": len(execution),
                    "checksum": checksum,
                }
            },
        )
        return snapshot.model_copy(update={CHECKSUM_FIELD: checksum})

    def verify_snapshot_integrity(self, report: FinancialReportRecord) -> SnapshotIntegrityResult:
        return self._verify(
            report_id=report.report_id,
            payload=report.report_data,
            stored_checksum=report.snapshot_checksum,
        )

    def verify_version_integrity(self, version: ReportVersionRecord) -> SnapshotIntegrityResult:
        return self._verify(
            report_id=version.report_id,
            payload=version.snapshot_data,
            stored_checksum=version.snapshot_checksum,
        )

    def require_intact_snapshot(self, report: FinancialReportRecord) -> SnapshotData:
        result = self.verify_snapshot_integrity(report)
        if result.status == "MISSING":
            raise SnapshotMissingError("SNAPSHOT_MISSING")
        if result.status == "CORRUPTED":
            raise SnapshotCorruptedError(
                report_id=report.report_id,
                stored_checksum=result.stored_checksum,
                computed_checksum=result.computed_checksum,
            )
        return _parse_snapshot(report.report_data)

    def detect_source_data_changes(self, report_id: int) -> bool:
        report = self._repository.get_report(report_id=report_id)
        if report is None:
            raise FinancialReportNotFoundError("FINANCIAL_REPORT_NOT_FOUND")
        return self.assess_source_freshness(report).has_changes

    def assess_source_freshness(self, report: FinancialReportRecord) -> SourceFreshnessAssessment:
        payload = report.report_data
        if not is_snapshot_payload(payload):
            return SourceFreshnessAssessment(report_id=report.report_id, status="NOT_APPLICABLE")

        snapshot = _parse_snapshot(payload)
        baseline = _as_utc(snapshot.captured_at or report.snapshot_timestamp)
        referenced = sorted(
            {entry.id for entry in snapshot.source_data.planning_entries}
            | {entry.id for entry in snapshot.source_data.execution_entries}
        )
        live = (
            self._repository.get_source_entry_timestamps(entry_ids=referenced)
            if referenced
            else {}
        )

        changed: list[int] = []
        deleted: list[int] = []
        for entry_id in referenced:
            updated_at = live.get(entry_id)
            if updated_at is None:
                deleted.append(entry_id)
            elif _as_utc(updated_at) > baseline:
                changed.append(entry_id)

        status = "OUTDATED" if changed or deleted else "FRESH"
        if status == "OUTDATED":
            logger.info(
                "snapshot.source_changed",
                extra={
                    "extra_fields": {
                        "report_id": report.report_id,
                        "changed_entry_ids": changed,
                        "deleted_entry_ids": deleted,
                    }
                },
            )
        return SourceFreshnessAssessment(
            report_id=report.report_id,
            status=status,
            snapshot_timestamp=baseline.isoformat(),
            changed_entry_ids=changed,
            deleted_entry_ids=deleted,
        )

    def _verify(
        self,
        *,
        report_id: int,
        payload: Optional[dict[str, Any]],
        stored_checksum: Optional[str],
    ) -> SnapshotIntegrityResult:
        verified_at = _utc_now().isoformat()
        if not payload:
            return SnapshotIntegrityResult(
                report_id=report_id, status="MISSING", verified_at=verified_at
            )
        if not stored_checksum:
            logger.warning(
                "Report %s has no verifiable snapshot checksum; resubmission recommended",
                report_id,
                extra={"extra_fields": {"legacy_payload": is_legacy_payload(payload)}},
            )
            return SnapshotIntegrityResult(
                report_id=report_id,
                status="UNVERIFIED",
                stored_checksum=stored_checksum,
                verified_at=verified_at,
            )

        computed = compute_snapshot_checksum(payload)
        if computed != stored_checksum:
            logger.error(
                "snapshot.integrity_failed",
                extra={
                    "extra_fields": {
                        "report_id": report_id,
                        "stored_checksum": stored_checksum,
                        "computed_checksum": computed,
                    }
                },
            )
            status = "CORRUPTED"
        else:
            status = "VALID"
        return SnapshotIntegrityResult(
            report_id=report_id,
            status=status,
            stored_checksum=stored_checksum,
            computed_checksum=computed,
            verified_at=verified_at,
        )

    def _load_source_entries(
        self,
        report: FinancialReportRecord,
        *,
        facility_ids: list[int],
        entity_type: str,
    ) -> list[SourceEntryRecord]:
        rows = self._repository.list_source_entries(
            project_id=report.project_id,
            facility_ids=facility_ids,
            reporting_period_id=report.reporting_period_id,
            entity_type=entity_type,
        )
        return sorted(rows, key=lambda row: row.entry_id)


def _resolve_statement_code(report: FinancialReportRecord) -> Optional[str]:
    if report.statement_code:
        return report.statement_code
    code = report.metadata.get("statement_code") or report.metadata.get("statementCode")
    if code:
        return str(code)
    if isinstance(report.report_data, dict):
        code = report.report_data.get("statement_code") or report.report_data.get("statementCode")
        if code:
            return str(code)
    return None


def _statement_from_report(report: FinancialReportRecord) -> StatementPayload:
    data = report.report_data or {}
    statement = data.get("statement") if isinstance(data, dict) else None
    if not statement:
        return StatementPayload()
    try:
        return StatementPayload.model_validate(statement)
    except ValidationError as exc:
        raise FinancialReportValidationError("STATEMENT_PAYLOAD_INVALID") from exc


def _parse_snapshot(payload: Optional[dict[str, Any]]) -> SnapshotData:
    try:
        return SnapshotData.model_validate(payload)
    except ValidationError as exc:
        raise FinancialReportValidationError("SNAPSHOT_INVALID") from exc


def _to_source_data_entry(entry: SourceEntryRecord) -> SourceDataEntry:
    return SourceDataEntry(
        id=entry.entry_id,
        form_data=entry.form_data,
        updated_at=_as_utc(entry.updated_at),
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
