import os
import warnings
from typing import cast

from src.core.reporting.repository import FinancialReportRepository
from src.infrastructure.reporting import (
    InMemoryFinancialReportRepository,
    PostgresFinancialReportRepository,
)

DEFAULT_OUTDATED_JOB_INTERVAL_SECONDS = 3600.0


def env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def financial_report_store_backend_name() -> str:
    backend = os.getenv("FINANCIAL_REPORT_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "POSTGRES":
        return "POSTGRES"
    warnings.warn(
        (
            "FINANCIAL_REPORT_STORE_BACKEND legacy runtime backend (IN_MEMORY) is deprecated; "
            "use POSTGRES."
        ),
        DeprecationWarning,
        stacklevel=2,
    )
    return "IN_MEMORY"


def financial_report_postgres_dsn() -> str:
    return os.getenv("FINANCIAL_REPORT_POSTGRES_DSN", "").strip()


def support_apis_enabled() -> bool:
    return env_flag("FINANCIAL_REPORT_SUPPORT_APIS_ENABLED", True)


def outdated_job_enabled() -> bool:
    return env_flag("FINANCIAL_REPORT_OUTDATED_JOB_ENABLED", True)


def outdated_job_interval_seconds() -> float:
    raw = os.getenv("FINANCIAL_REPORT_OUTDATED_JOB_INTERVAL_SECONDS")
    if raw is None or not raw.strip():
        return DEFAULT_OUTDATED_JOB_INTERVAL_SECONDS
    try:
        interval = float(raw)
    except ValueError as exc:
        raise RuntimeError("FINANCIAL_REPORT_OUTDATED_JOB_INTERVAL_INVALID") from exc
    if interval <= 0:
        raise RuntimeError("FINANCIAL_REPORT_OUTDATED_JOB_INTERVAL_INVALID")
    return interval


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> FinancialReportRepository:
    backend = financial_report_store_backend_name()
    if backend == "POSTGRES":
        dsn = financial_report_postgres_dsn()
        if not dsn:
            raise RuntimeError("FINANCIAL_REPORT_POSTGRES_DSN_REQUIRED")
        try:
            return cast(FinancialReportRepository, PostgresFinancialReportRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("FINANCIAL_REPORT_POSTGRES_CONNECTION_FAILED") from exc
    return cast(FinancialReportRepository, InMemoryFinancialReportRepository())
