from typing import Annotated, Optional

from fastapi import Depends, status

from src.api.routers import financial_reports as shared
from src.api.routers import financial_reports_config
from src.api.routers.financial_report_http_errors import raise_financial_report_http_exception
from src.core.reporting import (
    FinancialReportLifecycleError,
    FinancialReportWorkflowService,
    OutdatedReportsRunSummary,
    detect_outdated_reports,
)
from src.core.reporting.models import (
    FinancialReportSupportabilityConfigResponse,
    FinancialReportWorkflowTimelineResponse,
)


@shared.router.get(
    "/financial-reports/supportability/config",
    response_model=FinancialReportSupportabilityConfigResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Financial Report Supportability Configuration",
    description=(
        "Returns financial report store and outdated-detection runtime configuration with "
        "backend initialization status for operational diagnostics."
    ),
)
def get_financial_report_supportability_config() -> FinancialReportSupportabilityConfigResponse:
    backend_error: Optional[str] = None
    backend_ready = True
    try:
        financial_reports_config.build_repository()
    except RuntimeError as exc:
        backend_ready = False
        backend_error = str(exc)
    except Exception:
        backend_ready = False
        backend_error = "FINANCIAL_REPORT_POSTGRES_CONNECTION_FAILED"

    try:
        interval_seconds = financial_reports_config.outdated_job_interval_seconds()
    except RuntimeError:
        interval_seconds = financial_reports_config.DEFAULT_OUTDATED_JOB_INTERVAL_SECONDS

    return FinancialReportSupportabilityConfigResponse(
        store_backend=financial_reports_config.financial_report_store_backend_name(),
        backend_ready=backend_ready,
        backend_init_error=backend_error,
        support_apis_enabled=financial_reports_config.support_apis_enabled(),
        outdated_job_enabled=financial_reports_config.outdated_job_enabled(),
        outdated_job_interval_seconds=interval_seconds,
    )


@shared.router.post(
    "/financial-reports/outdated-detection/run",
    response_model=OutdatedReportsRunSummary,
    status_code=status.HTTP_200_OK,
    summary="Run Outdated Report Detection",
    description=(
        "Runs one reconciliation pass over submitted and approved reports, setting or clearing "
        "the outdated flag. Per-report failures are counted and do not stop the pass."
    ),
)
def run_outdated_report_detection(
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> OutdatedReportsRunSummary:
    shared._assert_support_apis_enabled()
    try:
        return detect_outdated_reports(
            repository=service.repository,
            snapshot_service=service.snapshot_service,
        )
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)


@shared.router.get(
    "/financial-reports/{report_id}/workflow-events",
    response_model=FinancialReportWorkflowTimelineResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Financial Report Workflow Timeline",
    description="Returns append-only workflow events for investigation and audit.",
)
def get_financial_report_workflow_timeline(
    report_id: shared.ReportIdPath,
    service: Annotated[
        FinancialReportWorkflowService, Depends(shared.get_financial_report_workflow_service)
    ] = None,
) -> FinancialReportWorkflowTimelineResponse:
    shared._assert_support_apis_enabled()
    try:
        return service.get_workflow_timeline(report_id=report_id)
    except FinancialReportLifecycleError as exc:
        raise_financial_report_http_exception(exc)
