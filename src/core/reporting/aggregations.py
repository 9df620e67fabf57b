from decimal import Decimal
from typing import Any, Iterable, Optional

from src.core.reporting.models import (
    FacilityBreakdownItem,
    SnapshotAggregations,
    SourceEntryRecord,
)

_PLANNED_AMOUNT_FIELDS = ("total_budget", "budget", "amount")
_EXECUTED_AMOUNT_FIELDS = ("cumulative_balance", "spent", "executed")


def calculate_allocated_budget(form_payloads: Iterable[dict[str, Any]]) -> Decimal:
    total = Decimal("0")
    for form_data in form_payloads:
        for activity in _activities(form_data):
            total += _first_number(activity, _PLANNED_AMOUNT_FIELDS)
    return total


def calculate_spent_budget(form_payloads: Iterable[dict[str, Any]]) -> Decimal:
    total = Decimal("0")
    for form_data in form_payloads:
        sections = _by_section(form_data)
        if sections is not None:
            for section in sections:
                total += _first_number(section, ("total",))
            continue
        for activity in _activities(form_data):
            total += _first_number(activity, _EXECUTED_AMOUNT_FIELDS)
    return total


def build_aggregations(
    *,
    planning_entries: list[SourceEntryRecord],
    execution_entries: list[SourceEntryRecord],
    facility_ids: list[int],
) -> SnapshotAggregations:
    total_planning = calculate_allocated_budget(entry.form_data for entry in planning_entries)
    total_execution = calculate_spent_budget(entry.form_data for entry in execution_entries)
    breakdown: Optional[list[FacilityBreakdownItem]] = None
    if len(set(facility_ids)) > 1:
        breakdown = []
        for facility_id in sorted(set(facility_ids)):
            planned = calculate_allocated_budget(
                entry.form_data for entry in planning_entries if entry.facility_id == facility_id
            )
            executed = calculate_spent_budget(
                entry.form_data for entry in execution_entries if entry.facility_id == facility_id
            )
            breakdown.append(
                FacilityBreakdownItem(
                    facility_id=facility_id,
                    total_planning=planned,
                    total_execution=executed,
                    variance=planned - executed,
                )
            )
    return SnapshotAggregations(
        total_planning=total_planning,
        total_execution=total_execution,
        variance=total_planning - total_execution,
        facility_breakdown=breakdown,
    )


def _activities(form_data: dict[str, Any]) -> list[dict[str, Any]]:
    activities = form_data.get("activities") if isinstance(form_data, dict) else None
    if isinstance(activities, dict):
        activities = list(activities.values())
    if not isinstance(activities, list):
        return []
    return [activity for activity in activities if isinstance(activity, dict)]


def _by_section(form_data: dict[str, Any]) -> Optional[list[dict[str, Any]]]:
    rollups = form_data.get("rollups") if isinstance(form_data, dict) else None
    if not isinstance(rollups, dict):
        return None
    sections = rollups.get("bySection")
    if not isinstance(sections, dict):
        return None
    return [section for section in sections.values() if isinstance(section, dict)]


def _first_number(payload: dict[str, Any], fields: tuple[str, ...]) -> Decimal:
    for field in fields:
        value = payload.get(field)
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return Decimal(str(value))
    return Decimal("0")
