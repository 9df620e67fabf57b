from typing import Annotated

from fastapi import Depends, Path, status

from src.api.routers import financial_reports as shared
from src.api.routers.financial_report_http_errors import raise_financial_report_http_exception
from src.core.reporting import (
    FinancialReportLifecycleError,
    FinancialReportReviewRequest,
    FinancialReportSubmitRequest,
    FinancialReportWorkflowResponse,
    FinancialReportWorkflowService,
    VersionComparisonResult,
)
from src.core.reporting.models import (
    PeriodLockStatusResponse,
    ReportVersionDetail,
    ReportVersionListResponse,
    VersionCompareRequest,
)

VersionNumberPath = Annotated[
    str,
    Path(
        description="Report version number in MAJOR.MINOR form.",
        pattern=r"^\d+(\.\d+)?$",
        examples=["1.0"],
    ),
]


@shared.router.post(
    "/financial-reports/{report_id}/submit",
    response_model=FinancialReportWorkflowResponse,
    status_code=status.HTTP_200_OK,
    summary="Submit Financial Report for Approval",
    description=(
        "Captures an immutable snapshot of statement output and contributing source entries, "
        "stores its checksum, locks the report and its reporting period, and creates the next "
        "report version."
    ),
)
def submit_financial_report(
    report_id: shared.ReportIdPath,
    payload: FinancialReportSubmitRequest,
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> FinancialReportWorkflowResponse:
    try:
        return service.submit_for_approval(report_id=report_id, payload=payload)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@shared.router.post(
    "/financial-reports/{report_id}/reviews",
    response_model=FinancialReportWorkflowResponse,
    status_code=status.HTTP_200_OK,
    summary="Record Financial Report Review",
    description=(
        "Records a DAF or DG review decision. Rejections require a comment and unlock the "
        "report for correction."
    ),
)
def record_financial_report_review(
    report_id: shared.ReportIdPath,
    payload: FinancialReportReviewRequest,
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> FinancialReportWorkflowResponse:
    try:
        return service.record_review(report_id=report_id, payload=payload)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@shared.router.get(
    "/financial-reports/{report_id}/period-lock",
    response_model=PeriodLockStatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Reporting Period Lock",
    description=(
        "Returns the lock on the report's project, facility and reporting period. Submission "
        "locks the period; a rejection releases it unless another submitted report holds it."
    ),
)
def get_financial_report_period_lock(
    report_id: shared.ReportIdPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> PeriodLockStatusResponse:
    try:
        return service.get_period_lock_status(report_id=report_id)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@shared.router.get(
    "/financial-reports/{report_id}/versions",
    response_model=ReportVersionListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Report Versions",
    description="Returns immutable report versions ordered newest first.",
)
def list_financial_report_versions(
    report_id: shared.ReportIdPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> ReportVersionListResponse:
    try:
        return service.list_versions(report_id=report_id)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@shared.router.get(
    "/financial-reports/{report_id}/versions/{version_number}",
    response_model=ReportVersionDetail,
    status_code=status.HTTP_200_OK,
    summary="Get Report Version",
    description="Returns one immutable report version including its snapshot payload.",
)
def get_financial_report_version(
    report_id: shared.ReportIdPath,
    version_number: VersionNumberPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> ReportVersionDetail:
    try:
        return service.get_version(report_id=report_id, version_number=version_number)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@shared.router.post(
    "/financial-reports/{report_id}/versions/compare",
    response_model=VersionComparisonResult,
    status_code=status.HTTP_200_OK,
    summary="Compare Report Versions",
    description=(
        "Compares statement lines of two versions by line code. Changes above 5% are counted "
        "as significant."
    ),
)
def compare_financial_report_versions(
    report_id: shared.ReportIdPath,
    payload: VersionCompareRequest,
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> VersionComparisonResult:
    try:
        return service.compare_versions(
            report_id=report_id, version1=payload.version1, version2=payload.version2
        )
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)
