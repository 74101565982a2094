"""HTTP clients for the external collaborators.

The Prediction Producer and the Verification Oracle are black boxes reached
over HTTP. Every call is bounded:
- Per-request timeout
- Retry with exponential backoff on timeouts, connection errors, 429 and 5xx
- Exhausted retries surface as UpstreamTimeoutError (retryable), never a hang
"""

import asyncio
from datetime import datetime
from typing import Any

import httpx
import structlog

from app.config import Settings, get_settings
from app.services.market.errors import ErrorKind, UpstreamTimeoutError, ValidationError
from app.services.market.records import PredictionRecord, VerifiedOutcome

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


class CollaboratorClient:
    """
    Base async client for a collaborator API.

    Supports:
    - Bounded timeout per request
    - Automatic retry with exponential backoff
    - API key header when configured
    """

    name = "collaborator"

    def __init__(
        self,
        base_url: str,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_base: float = 1.0,
    ):
        """
        Initialize collaborator client.

        Args:
            base_url: Root URL of the collaborator API
            settings: Optional settings (defaults to cached settings)
            transport: Optional httpx transport (tests use MockTransport)
            backoff_base: Seconds to wait before the first retry; doubles each time
        """
        self.settings = settings or get_settings()
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.backoff_base = backoff_base
        self.max_retries = max(1, self.settings.collaborator_max_retries)
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "CollaboratorClient":
        """Async context manager entry."""
        self._http_client = self._build_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.settings.collaborator_api_key:
            headers["X-API-Key"] = self.settings.collaborator_api_key
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.settings.collaborator_timeout_seconds,
            headers=headers,
            transport=self.transport,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = self._build_client()
        return self._http_client

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an API request with retry.

        Returns:
            Decoded JSON body, or None on 404

        Raises:
            UpstreamTimeoutError: If the collaborator stays unreachable
            httpx.HTTPStatusError: On non-retryable client errors
        """
        last_error = "no attempt made"

        for attempt in range(self.max_retries):
            try:
                client = await self._get_client()
                response = await client.request(method, path, params=params)
            except httpx.TimeoutException:
                last_error = "request timed out"
            except httpx.TransportError as e:
                last_error = f"connection error: {e}"
            else:
                if response.status_code == 404:
                    return None
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    response.raise_for_status()
                    return response.json()
                last_error = f"HTTP {response.status_code}"

            if attempt < self.max_retries - 1:
                wait_time = self.backoff_base * 2**attempt
                logger.warning(
                    "collaborator_retrying",
                    collaborator=self.name,
                    path=path,
                    error=last_error,
                    attempt=attempt,
                    wait_time=wait_time,
                )
                await asyncio.sleep(wait_time)

        logger.error(
            "collaborator_unreachable",
            collaborator=self.name,
            path=path,
            error=last_error,
            attempts=self.max_retries,
        )
        raise UpstreamTimeoutError(self.name, last_error)

    async def health_check(self) -> bool:
        """Check whether the collaborator answers its health endpoint."""
        try:
            await self._request("GET", "/health")
            return True
        except (UpstreamTimeoutError, httpx.HTTPStatusError) as e:
            logger.warning("collaborator_health_check_failed", collaborator=self.name, error=str(e))
            return False


class PredictionProducerClient(CollaboratorClient):
    """Client for the Prediction Producer."""

    name = "prediction_producer"

    def __init__(self, settings: Settings | None = None, **kwargs: Any):
        settings = settings or get_settings()
        super().__init__(settings.producer_base_url, settings=settings, **kwargs)

    async def fetch_predictions(self, since: datetime | None = None) -> list[PredictionRecord]:
        """
        Fetch predictions produced since a point in time.

        Payloads that cannot be parsed are logged and skipped; bounds checks
        happen later in the validation layer.
        """
        params = {"since": since.isoformat()} if since else None
        data = await self._request("GET", "/predictions", params=params) or []
        if isinstance(data, dict):
            data = data.get("predictions", [])

        records = []
        for payload in data:
            try:
                records.append(PredictionRecord.from_payload(payload))
            except (ValueError, TypeError, ArithmeticError) as e:
                logger.warning(
                    "prediction_payload_unparseable",
                    payload_id=payload.get("prediction_id") if isinstance(payload, dict) else None,
                    error=str(e),
                )
        return records


class VerificationOracleClient(CollaboratorClient):
    """Client for the Verification Oracle."""

    name = "verification_oracle"

    def __init__(self, settings: Settings | None = None, **kwargs: Any):
        settings = settings or get_settings()
        super().__init__(settings.oracle_base_url, settings=settings, **kwargs)

    async def fetch_verification(self, prediction_id: str) -> VerifiedOutcome | None:
        """
        Ask the oracle whether a prediction's outcome is verified.

        Returns:
            VerifiedOutcome, or None while the outcome is still unknown

        Raises:
            ValidationError: InvalidVerification when the payload cannot be parsed
        """
        data = await self._request("GET", f"/verifications/{prediction_id}")
        if not data:
            return None
        try:
            if not data.get("verified", True):
                return None
            data.setdefault("prediction_id", prediction_id)
            return VerifiedOutcome.from_payload(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(
                "verification_payload_unparseable",
                prediction_id=prediction_id,
                error=str(e),
            )
            raise ValidationError(
                ErrorKind.INVALID_VERIFICATION,
                f"unparseable verification for {prediction_id}: {e}",
            ) from e
