from src.infrastructure.reporting.in_memory import InMemoryFinancialReportRepository
from src.infrastructure.reporting.postgres import PostgresFinancialReportRepository

__all__ = ["InMemoryFinancialReportRepository", "PostgresFinancialReportRepository"]
