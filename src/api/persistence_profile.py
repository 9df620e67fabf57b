from __future__ import annotations

import os

from src.api.routers.financial_reports_config import (
    financial_report_postgres_dsn,
    financial_report_store_backend_name,
    outdated_job_enabled,
    outdated_job_interval_seconds,
)

_PRODUCTION_PROFILE = "PRODUCTION"
_LOCAL_PROFILE = "LOCAL"


def app_persistence_profile_name() -> str:
    profile = os.getenv("APP_PERSISTENCE_PROFILE", _LOCAL_PROFILE).strip().upper()
    return _PRODUCTION_PROFILE if profile == _PRODUCTION_PROFILE else _LOCAL_PROFILE


def validate_persistence_profile_guardrails() -> None:
    if outdated_job_enabled():
        # fails fast on a malformed interval in every profile
        outdated_job_interval_seconds()
    if app_persistence_profile_name() != _PRODUCTION_PROFILE:
        return
    if financial_report_store_backend_name() != "POSTGRES":
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_FINANCIAL_REPORT_POSTGRES")
    if not financial_report_postgres_dsn():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_FINANCIAL_REPORT_POSTGRES_DSN")
