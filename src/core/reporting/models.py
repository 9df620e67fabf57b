from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

FinancialReportStatus = Literal[
    "draft",
    "submitted",
    "pending_daf_approval",
    "approved_by_daf",
    "fully_approved",
    "rejected",
    "rejected_by_daf",
    "rejected_by_dg",
]

POST_SUBMISSION_STATUSES: frozenset[str] = frozenset(
    {"submitted", "pending_daf_approval", "approved_by_daf", "fully_approved"}
)
SUBMITTABLE_STATUSES: frozenset[str] = frozenset(
    {"draft", "rejected", "rejected_by_daf", "rejected_by_dg"}
)

SourceEntityType = Literal["planning", "execution"]
ReviewType = Literal["DAF", "DG"]
WorkflowAction = Literal[
    "submitted",
    "daf_approved",
    "daf_rejected",
    "dg_approved",
    "dg_rejected",
]
SnapshotIntegrityStatus = Literal["VALID", "CORRUPTED", "UNVERIFIED", "MISSING"]
SourceFreshnessStatus = Literal["FRESH", "OUTDATED", "NOT_APPLICABLE"]


class StatementLine(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str = Field(description="Statement line code.", examples=["REV_001"])
    name: Optional[str] = Field(
        default=None, description="Statement line display name.", examples=["Transfers from SPIU"]
    )
    current_value: Optional[Decimal] = Field(
        default=None, description="Line value for the reporting period.", examples=["1500.00"]
    )
    previous_value: Optional[Decimal] = Field(
        default=None, description="Line value for the comparative period.", examples=["900.00"]
    )


class StatementPayload(BaseModel):
    lines: List[StatementLine] = Field(
        default_factory=list,
        description="Statement lines as generated for the report scope.",
        examples=[[{"code": "REV_001", "name": "Transfers", "current_value": "1500.00"}]],
    )
    totals: Dict[str, Decimal] = Field(
        default_factory=dict,
        description="Statement totals keyed by total code.",
        examples=[{"TOTAL_REVENUE": "1500.00"}],
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Generator metadata attached to the statement.",
        examples=[{"generated_at": "2026-01-31T10:00:00+00:00"}],
    )


class SourceDataEntry(BaseModel):
    id: int = Field(description="Planning or execution entry identifier.", examples=[101])
    form_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Form payload of the entry as captured.",
        examples=[{"activities": {"a1": {"total_budget": 1000}}}],
    )
    updated_at: datetime = Field(
        description="Entry update timestamp at capture time.",
        examples=["2026-01-30T08:00:00+00:00"],
    )


class SnapshotSourceData(BaseModel):
    planning_entries: List[SourceDataEntry] = Field(
        default_factory=list, description="Planning entries contributing to the statement."
    )
    execution_entries: List[SourceDataEntry] = Field(
        default_factory=list, description="Execution entries contributing to the statement."
    )


class FacilityBreakdownItem(BaseModel):
    facility_id: int = Field(description="Facility identifier.", examples=[12])
    total_planning: Decimal = Field(description="Planned budget total.", examples=["1000"])
    total_execution: Decimal = Field(description="Executed total.", examples=["800"])
    variance: Decimal = Field(description="Planned minus executed.", examples=["200"])


class SnapshotAggregations(BaseModel):
    total_planning: Decimal = Field(
        default=Decimal("0"), description="Planned budget total.", examples=["1000"]
    )
    total_execution: Decimal = Field(
        default=Decimal("0"), description="Executed total.", examples=["800"]
    )
    variance: Decimal = Field(
        default=Decimal("0"), description="Planned minus executed.", examples=["200"]
    )
    facility_breakdown: Optional[List[FacilityBreakdownItem]] = Field(
        default=None,
        description="Per-facility totals when the report scope spans several facilities.",
    )


class SnapshotData(BaseModel):
    version: str = Field(description="Report version captured.", examples=["1.0"])
    captured_at: datetime = Field(
        description="UTC capture timestamp.", examples=["2026-01-31T10:00:00+00:00"]
    )
    statement_code: str = Field(description="Statement code.", examples=["REV_EXP"])
    statement: StatementPayload = Field(
        default_factory=StatementPayload, description="Statement output at capture time."
    )
    source_data: SnapshotSourceData = Field(
        default_factory=SnapshotSourceData,
        description="Source rows that contributed to the statement.",
    )
    aggregations: SnapshotAggregations = Field(
        default_factory=SnapshotAggregations, description="Aggregated totals."
    )
    checksum: str = Field(
        default="",
        description="SHA-256 digest over the snapshot with this field blanked.",
        examples=["9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08"],
    )


class SourceEntryRecord(BaseModel):
    entry_id: int = Field(description="Internal form data entry identifier.", examples=[101])
    entity_type: SourceEntityType = Field(
        description="Internal entry kind.", examples=["planning"]
    )
    project_id: int = Field(description="Internal project identifier.", examples=[1])
    facility_id: int = Field(description="Internal facility identifier.", examples=[12])
    reporting_period_id: int = Field(
        description="Internal reporting period identifier.", examples=[3]
    )
    form_data: Dict[str, Any] = Field(
        default_factory=dict, description="Internal form payload.", examples=[{"activities": {}}]
    )
    updated_at: datetime = Field(
        description="Internal last-update timestamp.", examples=["2026-01-30T08:00:00+00:00"]
    )


class FinancialReportRecord(BaseModel):
    report_id: int = Field(description="Internal report identifier.", examples=[42])
    title: str = Field(description="Internal report title.", examples=["Q1 revenue/expenditure"])
    project_id: int = Field(description="Internal project identifier.", examples=[1])
    facility_id: int = Field(description="Internal facility identifier.", examples=[12])
    reporting_period_id: int = Field(
        description="Internal reporting period identifier.", examples=[3]
    )
    statement_code: Optional[str] = Field(
        default=None, description="Internal statement code.", examples=["REV_EXP"]
    )
    status: FinancialReportStatus = Field(description="Internal status.", examples=["draft"])
    version: str = Field(default="1.0", description="Internal current version.", examples=["1.0"])
    report_data: Optional[Dict[str, Any]] = Field(
        default=None, description="Internal snapshot or draft statement JSON."
    )
    snapshot_checksum: Optional[str] = Field(
        default=None, description="Internal stored snapshot checksum."
    )
    snapshot_timestamp: Optional[datetime] = Field(
        default=None, description="Internal snapshot capture timestamp."
    )
    is_outdated: bool = Field(default=False, description="Internal outdated flag.")
    locked: bool = Field(default=False, description="Internal edit lock flag.")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Internal metadata JSON.")
    created_by: Optional[int] = Field(default=None, description="Internal creator user id.")
    created_at: datetime = Field(description="Internal creation timestamp.")
    updated_at: datetime = Field(description="Internal last-update timestamp.")
    submitted_by: Optional[int] = Field(default=None, description="Internal submitter user id.")
    submitted_at: Optional[datetime] = Field(
        default=None, description="Internal submission timestamp."
    )


class ReportVersionRecord(BaseModel):
    version_id: str = Field(description="Internal version identifier.", examples=["rv_001"])
    report_id: int = Field(description="Internal report identifier.", examples=[42])
    version_number: str = Field(description="Internal version number.", examples=["1.0"])
    snapshot_data: Dict[str, Any] = Field(description="Internal snapshot JSON.")
    snapshot_checksum: str = Field(description="Internal snapshot checksum.")
    snapshot_timestamp: datetime = Field(description="Internal snapshot capture timestamp.")
    created_by: Optional[int] = Field(default=None, description="Internal creator user id.")
    created_at: datetime = Field(description="Internal version creation timestamp.")
    changes_summary: Optional[str] = Field(
        default=None, description="Internal change summary.", examples=["Initial submission"]
    )


class FinancialReportWorkflowEventRecord(BaseModel):
    event_id: str = Field(description="Internal event identifier.", examples=["fre_001"])
    report_id: int = Field(description="Internal report identifier.", examples=[42])
    action: WorkflowAction = Field(description="Internal workflow action.", examples=["submitted"])
    from_status: Optional[FinancialReportStatus] = Field(
        default=None, description="Internal previous status.", examples=["draft"]
    )
    to_status: FinancialReportStatus = Field(
        description="Internal next status.", examples=["pending_daf_approval"]
    )
    actor_id: int = Field(description="Internal actor user id.", examples=[7])
    occurred_at: datetime = Field(description="Internal event timestamp.")
    comment: Optional[str] = Field(default=None, description="Internal reviewer comment.")
    related_version_number: Optional[str] = Field(
        default=None, description="Internal related version number.", examples=["1.0"]
    )


class PeriodLockRecord(BaseModel):
    lock_id: str = Field(description="Internal period lock identifier.", examples=["pl_001"])
    project_id: int = Field(description="Internal project identifier.", examples=[1])
    facility_id: int = Field(description="Internal facility identifier.", examples=[12])
    reporting_period_id: int = Field(
        description="Internal reporting period identifier.", examples=[3]
    )
    is_locked: bool = Field(default=True, description="Internal lock flag.")
    locked_by: Optional[int] = Field(default=None, description="Internal locking user id.")
    locked_at: Optional[datetime] = Field(default=None, description="Internal lock timestamp.")
    locked_reason: Optional[str] = Field(default=None, description="Internal lock reason.")
    unlocked_by: Optional[int] = Field(default=None, description="Internal unlocking user id.")
    unlocked_at: Optional[datetime] = Field(
        default=None, description="Internal unlock timestamp."
    )
    unlocked_reason: Optional[str] = Field(default=None, description="Internal unlock reason.")


class SnapshotIntegrityResult(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    status: SnapshotIntegrityStatus = Field(
        description="Outcome of recompute-and-compare verification.", examples=["VALID"]
    )
    stored_checksum: Optional[str] = Field(
        default=None, description="Checksum persisted with the report."
    )
    computed_checksum: Optional[str] = Field(
        default=None, description="Checksum recomputed from the stored snapshot."
    )
    verified_at: str = Field(
        description="UTC ISO8601 verification timestamp.",
        examples=["2026-02-01T09:00:00+00:00"],
    )

    @property
    def is_corrupted(self) -> bool:
        return self.status == "CORRUPTED"


class SourceFreshnessAssessment(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    status: SourceFreshnessStatus = Field(
        description="Freshness of the snapshot against live source rows.", examples=["FRESH"]
    )
    snapshot_timestamp: Optional[str] = Field(
        default=None,
        description="Snapshot baseline timestamp used for comparison.",
        examples=["2026-01-31T10:00:00+00:00"],
    )
    changed_entry_ids: List[int] = Field(
        default_factory=list,
        description="Referenced entries updated after the snapshot was captured.",
        examples=[[101]],
    )
    deleted_entry_ids: List[int] = Field(
        default_factory=list,
        description="Referenced entries that no longer exist.",
        examples=[[]],
    )

    @property
    def has_changes(self) -> bool:
        return self.status == "OUTDATED"


class FinancialReportSummary(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    title: str = Field(description="Report title.", examples=["Q1 revenue/expenditure"])
    project_id: int = Field(description="Project identifier.", examples=[1])
    facility_id: int = Field(description="Facility identifier.", examples=[12])
    reporting_period_id: int = Field(description="Reporting period identifier.", examples=[3])
    statement_code: Optional[str] = Field(
        default=None, description="Statement code.", examples=["REV_EXP"]
    )
    status: FinancialReportStatus = Field(
        description="Workflow status.", examples=["pending_daf_approval"]
    )
    version: str = Field(description="Current version number.", examples=["1.0"])
    locked: bool = Field(description="Whether edits are locked.", examples=[True])
    is_outdated: bool = Field(
        description="Source data changed after the snapshot was captured.", examples=[False]
    )
    snapshot_checksum: Optional[str] = Field(default=None, description="Stored checksum.")
    snapshot_timestamp: Optional[str] = Field(
        default=None,
        description="UTC ISO8601 snapshot capture timestamp.",
        examples=["2026-01-31T10:00:00+00:00"],
    )
    updated_at: str = Field(
        description="UTC ISO8601 last-update timestamp.",
        examples=["2026-01-31T10:00:00+00:00"],
    )


class FinancialReportDetailResponse(BaseModel):
    report: FinancialReportSummary = Field(description="Report summary.")
    integrity: SnapshotIntegrityResult = Field(description="Snapshot integrity verification.")
    freshness: SourceFreshnessAssessment = Field(
        description="Snapshot freshness against live source data."
    )


class PeriodLockStatusResponse(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    project_id: int = Field(description="Project identifier.", examples=[1])
    facility_id: int = Field(description="Facility identifier.", examples=[12])
    reporting_period_id: int = Field(description="Reporting period identifier.", examples=[3])
    is_locked: bool = Field(
        description="Source data edits for this period are blocked.", examples=[True]
    )
    locked_by: Optional[int] = Field(default=None, description="User who locked the period.")
    locked_at: Optional[str] = Field(
        default=None,
        description="UTC ISO8601 lock timestamp.",
        examples=["2026-01-31T10:00:00+00:00"],
    )
    locked_reason: Optional[str] = Field(
        default=None, description="Lock reason.", examples=["Report submitted for approval"]
    )
    unlocked_by: Optional[int] = Field(default=None, description="User who unlocked the period.")
    unlocked_at: Optional[str] = Field(default=None, description="UTC ISO8601 unlock timestamp.")
    unlocked_reason: Optional[str] = Field(default=None, description="Unlock reason.")


class ReportSnapshotResponse(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    is_outdated: bool = Field(description="Stored outdated flag.", examples=[False])
    snapshot: SnapshotData = Field(description="Verified snapshot payload.")


class ReportVersionDetail(BaseModel):
    version_id: str = Field(description="Version identifier.", examples=["rv_001"])
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    version_number: str = Field(description="Version number.", examples=["1.0"])
    snapshot_checksum: str = Field(description="Checksum stored with this version.")
    snapshot_timestamp: str = Field(
        description="UTC ISO8601 snapshot capture timestamp.",
        examples=["2026-01-31T10:00:00+00:00"],
    )
    created_by: Optional[int] = Field(default=None, description="Creator user id.", examples=[7])
    created_at: str = Field(
        description="UTC ISO8601 version creation timestamp.",
        examples=["2026-01-31T10:00:00+00:00"],
    )
    changes_summary: Optional[str] = Field(
        default=None, description="Change summary.", examples=["Resubmission after rejection"]
    )
    snapshot_data: Dict[str, Any] = Field(
        default_factory=dict, description="Snapshot payload captured for this version."
    )


class ReportVersionListResponse(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    current_version: str = Field(description="Report current version.", examples=["1.1"])
    versions: List[ReportVersionDetail] = Field(
        default_factory=list, description="Versions ordered newest first."
    )


class VersionCompareRequest(BaseModel):
    version1: str = Field(description="Baseline version number.", examples=["1.0"])
    version2: str = Field(description="Compared version number.", examples=["1.1"])


class VersionDifference(BaseModel):
    line_code: str = Field(description="Statement line code.", examples=["REV_001"])
    line_name: str = Field(description="Statement line name.", examples=["Transfers"])
    field: Literal["current_value", "previous_value"] = Field(
        description="Compared value field.", examples=["current_value"]
    )
    version1_value: Decimal = Field(description="Value in baseline version.", examples=["100"])
    version2_value: Decimal = Field(description="Value in compared version.", examples=["110"])
    difference: Decimal = Field(description="version2 minus version1.", examples=["10"])
    percentage_change: Decimal = Field(description="Relative change in percent.", examples=["10"])


class VersionComparisonSummary(BaseModel):
    total_differences: int = Field(description="Number of differing values.", examples=[3])
    significant_changes: int = Field(
        description="Differences whose absolute percentage change exceeds 5%.", examples=[1]
    )


class VersionComparisonResult(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    version1: str = Field(description="Baseline version number.", examples=["1.0"])
    version2: str = Field(description="Compared version number.", examples=["1.1"])
    differences: List[VersionDifference] = Field(default_factory=list)
    summary: VersionComparisonSummary = Field(description="Comparison summary.")


class FinancialReportSubmitRequest(BaseModel):
    actor_id: int = Field(description="Submitting accountant user id.", examples=[7])
    expected_status: Optional[FinancialReportStatus] = Field(
        default=None,
        description="Optimistic concurrency check against current report status.",
        examples=["draft"],
    )
    facility_ids: Optional[List[int]] = Field(
        default=None,
        description="Facilities whose source rows are captured; defaults to the report facility.",
        examples=[[12, 13]],
    )


class FinancialReportReviewRequest(BaseModel):
    review_type: ReviewType = Field(description="Approval stage.", examples=["DAF"])
    approved: bool = Field(description="Review decision.", examples=[True])
    actor_id: int = Field(description="Reviewer user id.", examples=[8])
    comment: Optional[str] = Field(
        default=None,
        description="Reviewer comment; required for rejections.",
        examples=["Figures reconcile with bank statements."],
    )
    expected_status: Optional[FinancialReportStatus] = Field(
        default=None,
        description="Optimistic concurrency check against current report status.",
        examples=["pending_daf_approval"],
    )


class FinancialReportWorkflowEvent(BaseModel):
    event_id: str = Field(description="Workflow event identifier.", examples=["fre_001"])
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    action: WorkflowAction = Field(description="Workflow action.", examples=["submitted"])
    from_status: Optional[FinancialReportStatus] = Field(
        default=None, description="Status before the action.", examples=["draft"]
    )
    to_status: FinancialReportStatus = Field(
        description="Status after the action.", examples=["pending_daf_approval"]
    )
    actor_id: int = Field(description="Acting user id.", examples=[7])
    occurred_at: str = Field(
        description="UTC ISO8601 event timestamp.", examples=["2026-01-31T10:00:00+00:00"]
    )
    comment: Optional[str] = Field(default=None, description="Reviewer comment.")
    related_version_number: Optional[str] = Field(
        default=None, description="Version created or reviewed by the action.", examples=["1.0"]
    )


class FinancialReportWorkflowResponse(BaseModel):
    report: FinancialReportSummary = Field(description="Report summary after the action.")
    latest_workflow_event: FinancialReportWorkflowEvent = Field(
        description="Workflow event created by the action."
    )
    version: Optional[ReportVersionDetail] = Field(
        default=None, description="Version created by a submission, when applicable."
    )


class FinancialReportWorkflowTimelineResponse(BaseModel):
    report_id: int = Field(description="Financial report identifier.", examples=[42])
    events: List[FinancialReportWorkflowEvent] = Field(
        default_factory=list, description="Workflow events in occurrence order."
    )


class OutdatedReportsRunSummary(BaseModel):
    started_at: str = Field(
        description="UTC ISO8601 pass start.", examples=["2026-02-01T09:00:00+00:00"]
    )
    finished_at: str = Field(
        description="UTC ISO8601 pass end.", examples=["2026-02-01T09:00:02+00:00"]
    )
    checked: int = Field(default=0, description="Reports evaluated for staleness.", examples=[10])
    flagged: int = Field(default=0, description="Reports newly flagged outdated.", examples=[2])
    cleared: int = Field(default=0, description="Reports whose flag was cleared.", examples=[1])
    skipped: int = Field(default=0, description="Reports without a snapshot.", examples=[0])
    errors: int = Field(default=0, description="Reports that failed processing.", examples=[0])
    failed_report_ids: List[int] = Field(
        default_factory=list, description="Reports that failed processing in this pass."
    )

    @property
    def updated(self) -> int:
        return self.flagged + self.cleared


class FinancialReportSupportabilityConfigResponse(BaseModel):
    store_backend: str = Field(description="Configured store backend.", examples=["POSTGRES"])
    backend_ready: bool = Field(description="Store backend initialized.", examples=[True])
    backend_init_error: Optional[str] = Field(
        default=None, description="Backend initialization error code.", examples=[None]
    )
    support_apis_enabled: bool = Field(description="Support APIs enabled.", examples=[True])
    outdated_job_enabled: bool = Field(
        description="Background outdated-report detection enabled.", examples=[True]
    )
    outdated_job_interval_seconds: float = Field(
        description="Interval between outdated-report detection passes.", examples=[3600.0]
    )
