"""Source gateway for the agent analytics service.

This module provides the read-only boundary the dashboard pulls its data
through:
- SourceGateway: the protocol the fetch coordinator depends on
- HttpSourceGateway: async httpx client for the analytics REST API
- Gateway exception hierarchy

Retrying transient failures is the gateway's job. The dashboard core
never retries; it degrades a failed source to an empty default instead.
"""

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Protocol, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.config import settings
from src.data.models import Agent, AnalyticsSnapshot, ReportingWindow, TransactionRecord

logger = structlog.get_logger(__name__)


def _parse_retry_after(value: str | None) -> float | None:
    """Read a Retry-After header as seconds.

    Accepts delta-seconds or an HTTP-date. Anything else gives None.
    """
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(seconds, 0.0) if math.isfinite(seconds) else None
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return max((moment - datetime.now(UTC)).total_seconds(), 0.0)


M = TypeVar("M", bound=BaseModel)

# Keys a response envelope may carry besides "data"
_ENVELOPE_KEYS = frozenset({"data", "meta", "success", "message"})


class GatewayError(Exception):
    """Base exception for analytics service errors."""

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {"error_type": self.__class__.__name__, "message": str(self)}


class GatewayAuthError(GatewayError):
    """Raised when the API key is missing or rejected."""

    pass


class GatewayRateLimitError(GatewayError):
    """Raised when the service answers HTTP 429."""

    def __init__(self, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after}s")


class GatewayAPIError(GatewayError):
    """Raised for non-success responses and transport failures.

    A ``status`` of 0 means the request never got a response.
    """

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Analytics API error {status}: {message}")


class GatewaySchemaError(GatewayError):
    """Raised when a payload does not have the expected shape."""

    pass


def is_transient(error: BaseException) -> bool:
    """Check whether a gateway error is worth retrying.

    Args:
        error: Exception raised by a request attempt.

    Returns:
        True for rate limiting, transport failures and 5xx responses.
    """
    if isinstance(error, GatewayRateLimitError):
        return True
    if isinstance(error, GatewayAPIError):
        return error.status == 0 or error.status >= 500
    return False


@dataclass
class RetryConfig:
    """Configuration for gateway retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including initial).
        min_wait_seconds: Minimum wait between retries.
        max_wait_seconds: Maximum wait between retries.
        multiplier: Exponential backoff multiplier.
    """

    max_attempts: int = 3
    min_wait_seconds: float = 0.5
    max_wait_seconds: float = 8.0
    multiplier: float = 1.0


class SourceGateway(Protocol):
    """Read operations the dashboard needs from the analytics service.

    Each call may raise; raising is the only failure signal.
    """

    async def get_overall_analytics(
        self, window: ReportingWindow | None = None
    ) -> AnalyticsSnapshot: ...

    async def get_agents(self) -> list[Agent]: ...

    async def get_transaction_history(
        self,
        window: ReportingWindow | None = None,
        limit: int | None = None,
    ) -> list[TransactionRecord]: ...


class HttpSourceGateway:
    """Async client for the agent analytics REST API.

    Example:
        gateway = HttpSourceGateway(base_url="https://api.example.com")
        agents = await gateway.get_agents()
        await gateway.close()
    """

    ANALYTICS_ENDPOINT = "/analytics/overall"
    AGENTS_ENDPOINT = "/agents"
    TRANSACTIONS_ENDPOINT = "/transactions"
    HEALTH_ENDPOINT = "/health"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            base_url: Service base URL. Defaults to DASHBOARD_API_URL.
            api_key: Bearer token. Defaults to DASHBOARD_API_KEY.
            timeout: Request timeout in seconds.
            retry: Retry configuration for transient failures.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = (base_url or settings.DASHBOARD_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.DASHBOARD_API_KEY
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.retry = retry or RetryConfig(max_attempts=settings.GATEWAY_MAX_ATTEMPTS)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="source_gateway")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request_once(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make a single GET request.

        Raises:
            GatewayAuthError: On 401/403.
            GatewayRateLimitError: On 429.
            GatewayAPIError: On other non-2xx responses or transport errors.
            GatewaySchemaError: If the body is not JSON.
        """
        client = await self._get_client()
        self._logger.debug("gateway_request", endpoint=endpoint, params=params)

        try:
            response = await client.get(endpoint, params=params)
        except httpx.RequestError as e:
            self._logger.error("gateway_transport_error", endpoint=endpoint, error=str(e))
            raise GatewayAPIError(0, str(e)) from e

        if response.status_code in (401, 403):
            raise GatewayAuthError(f"Rejected credentials ({response.status_code})")

        if response.status_code == 429:
            raise GatewayRateLimitError(
                retry_after=_parse_retry_after(response.headers.get("Retry-After"))
            )

        if not response.is_success:
            raise GatewayAPIError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise GatewaySchemaError(f"{endpoint} returned a non-JSON body") from e

        self._logger.debug(
            "gateway_response", endpoint=endpoint, status=response.status_code
        )
        return data

    async def _request(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make a GET request, retrying transient failures.

        Args:
            endpoint: Path relative to the base URL.
            params: Query parameters; None values are dropped.

        Returns:
            Decoded JSON body with any ``{"data": ...}`` envelope removed.
        """
        query = {k: v for k, v in (params or {}).items() if v is not None} or None
        attempt = 0

        async for attempt_context in AsyncRetrying(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential(
                multiplier=self.retry.multiplier,
                min=self.retry.min_wait_seconds,
                max=self.retry.max_wait_seconds,
            ),
            retry=retry_if_exception(is_transient),
            reraise=True,
        ):
            with attempt_context:
                attempt += 1
                if attempt > 1:
                    self._logger.info(
                        "retry_attempt",
                        endpoint=endpoint,
                        attempt=attempt,
                        max_attempts=self.retry.max_attempts,
                    )
                return _unwrap(await self._request_once(endpoint, query))

        # This should not be reached due to reraise=True
        raise RuntimeError("Retry loop exited unexpectedly")

    async def get_overall_analytics(
        self, window: ReportingWindow | None = None
    ) -> AnalyticsSnapshot:
        """Fetch the overall analytics snapshot.

        Args:
            window: Reporting window to aggregate over.

        Returns:
            Parsed snapshot. An empty body yields an empty snapshot.

        Raises:
            GatewayError: If the request fails or the payload is malformed.
        """
        data = await self._request(
            self.ANALYTICS_ENDPOINT,
            params={"window": window.value if window else None},
        )
        if data is None:
            return AnalyticsSnapshot()
        if not isinstance(data, dict):
            raise GatewaySchemaError(
                f"analytics payload must be an object, got {type(data).__name__}"
            )
        try:
            return AnalyticsSnapshot.model_validate(data)
        except ValidationError as e:
            raise GatewaySchemaError(f"invalid analytics payload: {e}") from e

    async def get_agents(self) -> list[Agent]:
        """Fetch the agent roster.

        Returns:
            Agents in the order the service returned them.

        Raises:
            GatewayError: If the request fails or the payload is not a list.
        """
        data = await self._request(self.AGENTS_ENDPOINT)
        return self._parse_list(Agent, data, source="agents")

    async def get_transaction_history(
        self,
        window: ReportingWindow | None = None,
        limit: int | None = None,
    ) -> list[TransactionRecord]:
        """Fetch transaction history, most recent first.

        Args:
            window: Reporting window to restrict the history to.
            limit: Maximum number of records to request.

        Returns:
            Records in the order the service returned them.

        Raises:
            GatewayError: If the request fails or the payload is not a list.
        """
        data = await self._request(
            self.TRANSACTIONS_ENDPOINT,
            params={"window": window.value if window else None, "limit": limit},
        )
        return self._parse_list(TransactionRecord, data, source="transactions")

    async def ping(self) -> None:
        """Check the service is reachable, without retrying.

        Raises:
            GatewayError: If the service is unreachable or unhealthy.
        """
        await self._request_once(self.HEALTH_ENDPOINT)

    def _parse_list(self, model: type[M], data: Any, source: str) -> list[M]:
        """Validate a list payload item by item.

        Items that fail validation are skipped so one bad record does not
        cost the whole source.
        """
        if data is None:
            return []
        if not isinstance(data, list):
            raise GatewaySchemaError(
                f"{source} payload must be a list, got {type(data).__name__}"
            )

        parsed: list[M] = []
        for index, item in enumerate(data):
            try:
                parsed.append(model.model_validate(item))
            except ValidationError as e:
                self._logger.warning(
                    "record_skipped",
                    source=source,
                    index=index,
                    errors=e.error_count(),
                )
        return parsed


def _unwrap(payload: Any) -> Any:
    """Strip the optional ``{"data": ...}`` response envelope."""
    if isinstance(payload, dict) and "data" in payload and set(payload) <= _ENVELOPE_KEYS:
        return payload["data"]
    return payload

