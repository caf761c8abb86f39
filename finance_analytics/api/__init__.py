"""HTTP API for the finance analytics service."""
from finance_analytics.api.routes import router

__all__ = ["router"]
