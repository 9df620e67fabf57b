import logging
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Optional

from src.core.reporting.errors import (
    FinancialReportValidationError,
    ReportVersionNotFoundError,
    SnapshotCorruptedError,
)
from src.core.reporting.models import (
    ReportVersionDetail,
    ReportVersionRecord,
    SnapshotData,
    VersionComparisonResult,
    VersionComparisonSummary,
    VersionDifference,
)
from src.core.reporting.repository import FinancialReportRepository
from src.core.reporting.snapshot import SnapshotService

logger = logging.getLogger(__name__)

INITIAL_VERSION = "1.0"
SIGNIFICANT_CHANGE_PERCENT = Decimal("5")

_COMPARED_FIELDS = (
    ("current_value", "currentValue"),
    ("previous_value", "previousValue"),
)


def increment_version(current_version: str) -> str:
    """Bump the minor component: ``"1.0" -> "1.1"``, ``"1.9" -> "1.10"``."""
    major, minor = _parse_version(current_version)
    return f"{major}.{minor + 1}"


def version_sort_key(version_number: str) -> tuple[int, int]:
    return _parse_version(version_number)


def _parse_version(version_number: str) -> tuple[int, int]:
    parts = str(version_number).split(".")
    if len(parts) > 2:
        raise FinancialReportValidationError("INVALID_VERSION_NUMBER")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) == 2 else 0
    except ValueError as exc:
        raise FinancialReportValidationError("INVALID_VERSION_NUMBER") from exc
    if major < 0 or minor < 0:
        raise FinancialReportValidationError("INVALID_VERSION_NUMBER")
    return major, minor


class VersionService:
    def __init__(
        self,
        *,
        repository: FinancialReportRepository,
        snapshot_service: SnapshotService,
    ) -> None:
        self._repository = repository
        self._snapshot_service = snapshot_service

    def build_version(
        self,
        *,
        report_id: int,
        version_number: str,
        snapshot: SnapshotData,
        created_by: Optional[int],
        changes_summary: Optional[str],
    ) -> ReportVersionRecord:
        _parse_version(version_number)
        return ReportVersionRecord(
            version_id=f"rv_{uuid.uuid4().hex[:12]}",
            report_id=report_id,
            version_number=version_number,
            snapshot_data=snapshot.model_dump(mode="json"),
            snapshot_checksum=snapshot.checksum,
            snapshot_timestamp=snapshot.captured_at,
            created_by=created_by,
            created_at=_utc_now(),
            changes_summary=changes_summary,
        )

    def create_version(
        self,
        *,
        report_id: int,
        version_number: str,
        snapshot: SnapshotData,
        created_by: Optional[int],
        changes_summary: Optional[str] = None,
    ) -> ReportVersionRecord:
        version = self.build_version(
            report_id=report_id,
            version_number=version_number,
            snapshot=snapshot,
            created_by=created_by,
            changes_summary=changes_summary,
        )
        self._repository.create_version(version)
        logger.info(
            "report_version.created",
            extra={"extra_fields": {"report_id": report_id, "version_number": version_number}},
        )
        return version

    def next_version_number(self, *, report_id: int) -> str:
        versions = self.list_versions(report_id=report_id)
        if not versions:
            return INITIAL_VERSION
        return increment_version(versions[0].version_number)

    def list_versions(self, *, report_id: int) -> list[ReportVersionRecord]:
        rows = self._repository.list_versions(report_id=report_id)
        return sorted(
            rows,
            key=lambda row: (version_sort_key(row.version_number), row.created_at),
            reverse=True,
        )

    def get_version(self, *, report_id: int, version_number: str) -> ReportVersionRecord:
        version = self._repository.get_version(report_id=report_id, version_number=version_number)
        if version is None:
            raise ReportVersionNotFoundError("REPORT_VERSION_NOT_FOUND")
        return version

    def compare_versions(
        self, *, report_id: int, version1: str, version2: str
    ) -> VersionComparisonResult:
        first = self._require_intact_version(report_id=report_id, version_number=version1)
        second = self._require_intact_version(report_id=report_id, version_number=version2)

        lines1 = _lines_by_code(first.snapshot_data)
        lines2 = _lines_by_code(second.snapshot_data)
        differences: list[VersionDifference] = []
        for code in sorted(set(lines1) & set(lines2)):
            line1 = lines1[code]
            line2 = lines2[code]
            for field, legacy_field in _COMPARED_FIELDS:
                value1 = _line_value(line1, field, legacy_field)
                value2 = _line_value(line2, field, legacy_field)
                if field == "previous_value" and (value1 is None or value2 is None):
                    continue
                if value1 == value2:
                    continue
                old = value1 if value1 is not None else Decimal("0")
                new = value2 if value2 is not None else Decimal("0")
                differences.append(
                    VersionDifference(
                        line_code=code,
                        line_name=str(line1.get("name") or line1.get("lineName") or code),
                        field=field,
                        version1_value=old,
                        version2_value=new,
                        difference=new - old,
                        percentage_change=percentage_change(old, new),
                    )
                )

        significant = sum(
            1 for item in differences if abs(item.percentage_change) > SIGNIFICANT_CHANGE_PERCENT
        )
        logger.info(
            "report_version.compared",
            extra={
                "extra_fields": {
                    "report_id": report_id,
                    "version1": version1,
                    "version2": version2,
                    "differences": len(differences),
                    "significant_changes": significant,
                }
            },
        )
        return VersionComparisonResult(
            report_id=report_id,
            version1=version1,
            version2=version2,
            differences=differences,
            summary=VersionComparisonSummary(
                total_differences=len(differences),
                significant_changes=significant,
            ),
        )

    def to_detail(self, version: ReportVersionRecord) -> ReportVersionDetail:
        return ReportVersionDetail(
            version_id=version.version_id,
            report_id=version.report_id,
            version_number=version.version_number,
            snapshot_checksum=version.snapshot_checksum,
            snapshot_timestamp=version.snapshot_timestamp.isoformat(),
            created_by=version.created_by,
            created_at=version.created_at.isoformat(),
            changes_summary=version.changes_summary,
            snapshot_data=version.snapshot_data,
        )

    def _require_intact_version(
        self, *, report_id: int, version_number: str
    ) -> ReportVersionRecord:
        version = self.get_version(report_id=report_id, version_number=version_number)
        integrity = self._snapshot_service.verify_version_integrity(version)
        if integrity.is_corrupted:
            raise SnapshotCorruptedError(
                report_id=report_id,
                stored_checksum=integrity.stored_checksum,
                computed_checksum=integrity.computed_checksum,
            )
        return version


def percentage_change(old: Decimal, new: Decimal) -> Decimal:
    if old == 0:
        return Decimal("0") if new == 0 else Decimal("100")
    with localcontext() as context:
        change = (new - old) / abs(old) * Decimal("100")
        # quantize needs every integer digit plus two decimals within precision
        context.prec = max(context.prec, change.adjusted() + 3)
        return change.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _lines_by_code(snapshot_data: dict[str, Any]) -> dict[str, dict[str, Any]]:
    statement = snapshot_data.get("statement") if isinstance(snapshot_data, dict) else None
    lines = statement.get("lines") if isinstance(statement, dict) else None
    if not isinstance(lines, list):
        return {}
    return {
        str(line["code"]): line for line in lines if isinstance(line, dict) and line.get("code")
    }


def _line_value(line: dict[str, Any], field: str, legacy_field: str) -> Optional[Decimal]:
    value = line.get(field, line.get(legacy_field))
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
