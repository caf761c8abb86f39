"""Client for the document store's REST gateway."""
import time
from typing import Any, Optional

import httpx

from finance_analytics.config import settings
from finance_analytics.logging import get_logger
from finance_analytics import metrics

logger = get_logger(__name__)


class RepositoryError(Exception):
    """Raised when the document store is unreachable or returns an error."""
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Repository error {status_code}: {detail}")


class RepositoryClient:
    """Fetches a user's transactions, bank accounts and profile."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the repository client.

        Args:
            base_url: Base URL of the gateway. Defaults to settings.repository_api_base.
            timeout: Request timeout in seconds. Defaults to settings.repository_timeout_seconds.
            transport: Optional httpx transport, used to stub the gateway in tests
        """
        self.base_url = (base_url or settings.repository_api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.repository_timeout_seconds
        self.transport = transport

    async def fetch_transactions(self, user_id: str) -> list[dict]:
        """
        Fetch a user's transactions, most recent first as served.

        Returns [] when the user has no transactions.

        Raises:
            RepositoryError: If the gateway fails
        """
        data = await self._get(f"/users/{user_id}/transactions", user_id, resource="transactions")
        return _collection(data, "transactions")

    async def fetch_accounts(self, user_id: str) -> list[dict]:
        """Fetch a user's bank accounts. Returns [] when there are none."""
        data = await self._get(f"/users/{user_id}/bankAccounts", user_id, resource="accounts")
        return _collection(data, "accounts")

    async def fetch_user_profile(self, user_id: str) -> Optional[dict]:
        """Fetch the user document, or None when the user has none."""
        data = await self._get(f"/users/{user_id}", user_id, resource="profile")
        return data if isinstance(data, dict) else None

    async def _get(self, path: str, user_id: str, resource: str) -> Any:
        url = f"{self.base_url}{path}"
        start_time = time.perf_counter()

        logger.info("repository_request_started", user_id=user_id, resource=resource, url=url)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(url)
                duration_seconds = time.perf_counter() - start_time

                if response.status_code == 404:
                    logger.info(
                        "repository_resource_not_found",
                        user_id=user_id,
                        resource=resource,
                        duration_ms=round(duration_seconds * 1000, 2),
                        outcome="not_found",
                    )
                    # A missing user means "no data yet", not a failure
                    metrics.record_repository_fetch(resource, success=True, latency_seconds=duration_seconds)
                    return None

                response.raise_for_status()
                data = response.json()

                logger.info(
                    "repository_request_completed",
                    user_id=user_id,
                    resource=resource,
                    duration_ms=round(duration_seconds * 1000, 2),
                    outcome="success",
                )
                metrics.record_repository_fetch(resource, success=True, latency_seconds=duration_seconds)
                return data

            except httpx.HTTPStatusError as e:
                duration_seconds = time.perf_counter() - start_time
                logger.error(
                    "repository_http_error",
                    user_id=user_id,
                    resource=resource,
                    status_code=e.response.status_code,
                    duration_ms=round(duration_seconds * 1000, 2),
                    error=str(e),
                    outcome="error",
                )
                metrics.record_repository_fetch(
                    resource, success=False, latency_seconds=duration_seconds, error_type="http_error"
                )
                raise RepositoryError(e.response.status_code, str(e))

            except httpx.RequestError as e:
                duration_seconds = time.perf_counter() - start_time
                logger.error(
                    "repository_request_error",
                    user_id=user_id,
                    resource=resource,
                    duration_ms=round(duration_seconds * 1000, 2),
                    error=str(e),
                    outcome="error",
                )
                error_type = "timeout" if isinstance(e, httpx.TimeoutException) else "connection_error"
                metrics.record_repository_fetch(
                    resource, success=False, latency_seconds=duration_seconds, error_type=error_type
                )
                raise RepositoryError(503, f"Request failed: {e}")

            except ValueError as e:
                duration_seconds = time.perf_counter() - start_time
                logger.error(
                    "repository_invalid_payload",
                    user_id=user_id,
                    resource=resource,
                    error=str(e),
                    outcome="error",
                )
                metrics.record_repository_fetch(
                    resource, success=False, latency_seconds=duration_seconds, error_type="invalid_payload"
                )
                raise RepositoryError(502, f"Invalid JSON from repository: {e}")


def _collection(data: Any, key: str) -> list[dict]:
    """Unwrap ``{key: [...]}`` or a bare list; anything else is empty."""
    if isinstance(data, dict):
        data = data.get(key)
    if isinstance(data, list):
        return data
    return []
