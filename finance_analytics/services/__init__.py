"""Service layer for the finance analytics service."""
from finance_analytics.services.analysis import AnalysisService, FullReport
from finance_analytics.services.repository_client import RepositoryClient, RepositoryError

__all__ = ["AnalysisService", "FullReport", "RepositoryClient", "RepositoryError"]
