from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.core.reporting import (
    FinancialReportValidationError,
    ReportVersionConflictError,
    ReportVersionNotFoundError,
    SnapshotCorruptedError,
    SnapshotService,
    VersionService,
    increment_version,
)
from src.core.reporting.models import StatementPayload
from src.core.reporting.versions import (
    _line_value,
    _lines_by_code,
    percentage_change,
    version_sort_key,
)
from tests.factories import draft_statement, seed_report_scope, statement_line


def _services(repository):
    snapshot_service = SnapshotService(repository=repository)
    return snapshot_service, VersionService(
        repository=repository, snapshot_service=snapshot_service
    )


def _store_version(repository, version_number: str, lines: list[dict]):
    snapshot_service, version_service = _services(repository)
    report = repository.get_report(report_id=42)
    snapshot = snapshot_service.capture_snapshot(
        report,
        statement=StatementPayload.model_validate(draft_statement(lines)),
        version=version_number,
    )
    return version_service.create_version(
        report_id=42,
        version_number=version_number,
        snapshot=snapshot,
        created_by=7,
        changes_summary=f"Version {version_number}",
    )


@pytest.mark.parametrize(
    ("current", "expected"),
    [("1.0", "1.1"), ("1.1", "1.2"), ("1.9", "1.10"), ("2", "2.1")],
)
def test_increment_version_bumps_minor_component(current, expected):
    assert increment_version(current) == expected


@pytest.mark.parametrize("invalid", ["", "abc", "1.x", "1.2.3", "-1.0"])
def test_increment_version_rejects_malformed_numbers(invalid):
    with pytest.raises(FinancialReportValidationError) as exc:
        increment_version(invalid)

    assert str(exc.value) == "INVALID_VERSION_NUMBER"


def test_version_sort_key_orders_numerically():
    ordered = sorted(["1.10", "1.2", "1.0", "2.0"], key=version_sort_key)

    assert ordered == ["1.0", "1.2", "1.10", "2.0"]


def test_percentage_change_handles_zero_baseline_and_rounding():
    assert percentage_change(Decimal("0"), Decimal("0")) == Decimal("0")
    assert percentage_change(Decimal("0"), Decimal("50")) == Decimal("100")
    assert percentage_change(Decimal("100"), Decimal("110")) == Decimal("10.00")
    assert percentage_change(Decimal("-200"), Decimal("-100")) == Decimal("50.00")
    assert percentage_change(Decimal("3"), Decimal("4")) == Decimal("33.33")


def test_percentage_change_keeps_two_decimals_for_extreme_ratios():
    change = percentage_change(Decimal("0.0001"), Decimal("1e30"))

    assert change == Decimal("1e36")
    assert change.as_tuple().exponent == -2
    assert percentage_change(Decimal("1e30"), Decimal("0.0001")) == Decimal("-100.00")


def test_next_version_number_starts_at_initial_and_increments(repository):
    seed_report_scope(repository)
    _, version_service = _services(repository)

    assert version_service.next_version_number(report_id=42) == "1.0"
    _store_version(repository, "1.0", [statement_line("REV_001", "Transfers", "100")])
    assert version_service.next_version_number(report_id=42) == "1.1"


def test_versions_are_insert_only(repository):
    seed_report_scope(repository)
    _store_version(repository, "1.0", [statement_line("REV_001", "Transfers", "100")])

    with pytest.raises(ReportVersionConflictError):
        _store_version(repository, "1.0", [statement_line("REV_001", "Transfers", "200")])

    _, version_service = _services(repository)
    stored = version_service.get_version(report_id=42, version_number="1.0")
    assert stored.snapshot_data["statement"]["lines"][0]["current_value"] == "100"


def test_list_versions_orders_newest_version_first(repository):
    seed_report_scope(repository)
    for number in ("1.0", "1.1", "1.2"):
        _store_version(repository, number, [statement_line("REV_001", "Transfers", "100")])
    _, version_service = _services(repository)

    versions = version_service.list_versions(report_id=42)

    assert [version.version_number for version in versions] == ["1.2", "1.1", "1.0"]


def test_get_version_raises_when_unknown(repository):
    seed_report_scope(repository)
    _, version_service = _services(repository)

    with pytest.raises(ReportVersionNotFoundError) as exc:
        version_service.get_version(report_id=42, version_number="3.0")

    assert str(exc.value) == "REPORT_VERSION_NOT_FOUND"


def test_compare_versions_reports_value_differences(repository):
    seed_report_scope(repository)
    _store_version(
        repository,
        "1.0",
        [
            statement_line("REV_001", "Transfers", "100", "80"),
            statement_line("EXP_001", "Salaries", "50"),
            statement_line("OLD_001", "Removed line", "10"),
        ],
    )
    _store_version(
        repository,
        "1.1",
        [
            statement_line("REV_001", "Transfers", "110", "80"),
            statement_line("EXP_001", "Salaries", "51", "40"),
            statement_line("NEW_001", "Added line", "10"),
        ],
    )
    _, version_service = _services(repository)

    result = version_service.compare_versions(report_id=42, version1="1.0", version2="1.1")

    by_code = {item.line_code: item for item in result.differences}
    assert sorted(by_code) == ["EXP_001", "REV_001"]
    revenue = by_code["REV_001"]
    assert revenue.field == "current_value"
    assert revenue.version1_value == Decimal("100")
    assert revenue.version2_value == Decimal("110")
    assert revenue.difference == Decimal("10")
    assert revenue.percentage_change == Decimal("10.00")
    assert by_code["EXP_001"].percentage_change == Decimal("2.00")
    assert result.summary.total_differences == 2
    assert result.summary.significant_changes == 1


def test_line_values_accept_camel_case_keys_from_older_snapshots():
    snapshot_data = {
        "statement": {
            "lines": [{"code": "REV_001", "lineName": "Transfers", "currentValue": 200}]
        }
    }

    lines = _lines_by_code(snapshot_data)

    assert _line_value(lines["REV_001"], "current_value", "currentValue") == Decimal("200")
    assert _line_value(lines["REV_001"], "previous_value", "previousValue") is None


def test_compare_versions_refuses_corrupted_version(repository):
    seed_report_scope(repository)
    _store_version(repository, "1.0", [statement_line("REV_001", "Transfers", "100")])
    _store_version(repository, "1.1", [statement_line("REV_001", "Transfers", "110")])
    stored = repository._versions[(42, "1.1")]
    stored.snapshot_data["statement"]["lines"][0]["current_value"] = "1"
    _, version_service = _services(repository)

    with pytest.raises(SnapshotCorruptedError) as exc:
        version_service.compare_versions(report_id=42, version1="1.0", version2="1.1")

    assert exc.value.stored_checksum == stored.snapshot_checksum


def test_build_version_copies_snapshot_checksum_and_timestamp(repository):
    report = seed_report_scope(repository)
    snapshot_service, version_service = _services(repository)
    captured_at = datetime(2025, 2, 1, 10, 0, tzinfo=timezone.utc)
    snapshot = snapshot_service.capture_snapshot(report, version="1.0", captured_at=captured_at)

    version = version_service.build_version(
        report_id=42,
        version_number="1.0",
        snapshot=snapshot,
        created_by=7,
        changes_summary="Initial submission for approval",
    )

    assert version.version_id.startswith("rv_")
    assert version.snapshot_checksum == snapshot.checksum
    assert version.snapshot_timestamp == captured_at
    assert version.snapshot_data["checksum"] == snapshot.checksum
    assert repository.list_versions(report_id=42) == []


def test_compare_versions_handles_extreme_line_values(repository):
    seed_report_scope(repository)
    _store_version(repository, "1.0", [statement_line("REV_001", "Transfers", "0.0001")])
    _store_version(repository, "1.1", [statement_line("REV_001", "Transfers", "1e30")])
    _, version_service = _services(repository)

    result = version_service.compare_versions(report_id=42, version1="1.0", version2="1.1")

    assert [item.percentage_change for item in result.differences] == [Decimal("1e36")]
    assert result.summary.significant_changes == 1
