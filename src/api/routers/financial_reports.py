from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status

from src.api.routers import financial_reports_config
from src.api.routers.financial_report_http_errors import raise_financial_report_http_exception
from src.api.routers.financial_reports_config import env_flag
from src.core.reporting import (
    FinancialReportDetailResponse,
    FinancialReportLifecycleError,
    FinancialReportRepository,
    FinancialReportWorkflowService,
    SnapshotIntegrityResult,
    SourceFreshnessAssessment,
)
from src.core.reporting.models import ReportSnapshotResponse

router = APIRouter(tags=["Financial Report Snapshots"])

_REPOSITORY: Optional[FinancialReportRepository] = None
_SERVICE: Optional[FinancialReportWorkflowService] = None


def get_financial_report_repository() -> FinancialReportRepository:
    global _REPOSITORY
    if _REPOSITORY is None:
        _REPOSITORY = financial_reports_config.build_repository()
    return _REPOSITORY


def get_financial_report_workflow_service() -> FinancialReportWorkflowService:
    global _SERVICE
    if _SERVICE is None:
        try:
            repository = get_financial_report_repository()
        except RuntimeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        _SERVICE = FinancialReportWorkflowService(
            repository=repository,
            require_expected_status=env_flag(
                "FINANCIAL_REPORT_REQUIRE_EXPECTED_STATUS", False
            ),
        )
    return _SERVICE


def reset_financial_report_service_for_tests() -> None:
    global _REPOSITORY
    global _SERVICE
    _REPOSITORY = None
    _SERVICE = None


def _assert_support_apis_enabled() -> None:
    if not financial_reports_config.support_apis_enabled():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="FINANCIAL_REPORT_SUPPORT_APIS_DISABLED",
        )


ReportIdPath = Annotated[
    int,
    Path(description="Financial report identifier.", ge=1, examples=[42]),
]


@router.get(
    "/financial-reports/{report_id}",
    response_model=FinancialReportDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Financial Report",
    description=(
        "Returns report summary with snapshot integrity verification and freshness of the "
        "snapshot against live planning and execution data."
    ),
)
def get_financial_report(
    report_id: ReportIdPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(get_financial_report_workflow_service)
    ] = None,
) -> FinancialReportDetailResponse:
    try:
        return service.get_report_detail(report_id=report_id)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@router.get(
    "/financial-reports/{report_id}/snapshot",
    response_model=ReportSnapshotResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Verified Report Snapshot",
    description=(
        "Returns the frozen snapshot after checksum verification. A checksum mismatch is "
        "reported as 409 SNAPSHOT_CORRUPTED and the payload is withheld."
    ),
)
def get_financial_report_snapshot(
    report_id: ReportIdPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(get_financial_report_workflow_service)
    ] = None,
) -> ReportSnapshotResponse:
    try:
        return service.get_snapshot(report_id=report_id)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@router.get(
    "/financial-reports/{report_id}/integrity",
    response_model=SnapshotIntegrityResult,
    status_code=status.HTTP_200_OK,
    summary="Verify Report Snapshot Integrity",
    description="Recomputes the snapshot checksum and compares it with the stored checksum.",
)
def get_financial_report_integrity(
    report_id: ReportIdPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(get_financial_report_workflow_service)
    ] = None,
) -> SnapshotIntegrityResult:
    try:
        return service.get_integrity(report_id=report_id)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@router.get(
    "/financial-reports/{report_id}/source-changes",
    response_model=SourceFreshnessAssessment,
    status_code=status.HTTP_200_OK,
    summary="Detect Source Data Changes",
    description=(
        "Compares live update timestamps of the source entries referenced by the snapshot with "
        "the snapshot capture time. Deleted entries count as changes."
    ),
)
def get_financial_report_source_changes(
    report_id: ReportIdPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(get_financial_report_workflow_service)
    ] = None,
) -> SourceFreshnessAssessment:
    try:
        return service.get_source_changes(report_id=report_id)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


from src.api.routers import financial_reports_workflow_routes as _workflow_routes  # noqa: E402,F401
from src.api.routers import financial_reports_support_routes as _support_routes  # noqa: E402,F401
