from typing import NoReturn

from fastapi import HTTPException, status

from src.core.reporting import (
    FinancialReportNotFoundError,
    FinancialReportStateConflictError,
    FinancialReportTransitionError,
    FinancialReportValidationError,
    PeriodLockedError,
    ReportingStoreTransientError,
    ReportVersionConflictError,
    SnapshotCorruptedError,
    SnapshotMissingError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_financial_report_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, FinancialReportNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, SnapshotCorruptedError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": exc.code,
                "report_id": exc.report_id,
                "stored_checksum": exc.stored_checksum,
                "computed_checksum": exc.computed_checksum,
            },
        ) from exc
    if isinstance(
        exc, (FinancialReportStateConflictError, ReportVersionConflictError, PeriodLockedError)
    ):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(
        exc,
        (SnapshotMissingError, FinancialReportTransitionError, FinancialReportValidationError),
    ):
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail=str(exc),
        ) from exc
    if isinstance(exc, ReportingStoreTransientError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    raise exc
