from __future__ import annotations

from typing import Any

import httpx
import structlog
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from shush.core.errors import (
    Conflict,
    NotFound,
    RegistryError,
    RegistryUnavailable,
    Unauthorized,
)

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "shush/0.4.0"


def is_retryable_status(status_code: int) -> bool:
    """Determine if HTTP status code is retryable."""
    return status_code in (408, 429) or status_code >= 500


def classify_response(response: httpx.Response) -> None:
    """Raise the registry error matching a non-2xx response."""
    status = response.status_code
    if status < 400:
        return
    details = {
        "status": status,
        "method": response.request.method,
        "url": str(response.request.url),
    }
    body = response.text[:200] if response.content else ""
    if status in (401, 403):
        raise Unauthorized(f"Registry refused credentials (HTTP {status})", details=details)
    if status == 404:
        raise NotFound(f"Registry resource not found (HTTP {status})", details=details)
    if status == 409:
        raise Conflict(f"Registry reported a conflict: {body}", details=details)
    if is_retryable_status(status):
        raise RegistryUnavailable(f"Registry unavailable (HTTP {status}): {body}", details=details)
    raise RegistryError(f"Registry rejected request (HTTP {status}): {body}", details=details)


class RegistryHTTPClient:
    """HTTP client for a silence registry with retry logic and circuit breaker.

    Only RegistryUnavailable is retried, with capped exponential backoff and
    full jitter. Once retries are exhausted the failure counts against the
    circuit breaker; an open circuit fails fast as RegistryUnavailable.
    The underlying connection pool is owned here and released by ``aclose``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_factor: float = 0.5,
        backoff_max: float = 8.0,
        circuit_failure_threshold: int = 5,
        circuit_recovery_timeout: int = 30,
        auth: tuple[str, str] | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._base_url = base_url.rstrip("/")
        self._max_attempts = max_attempts
        self._backoff_factor = backoff_factor
        self._backoff_max = backoff_max
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            auth=auth,
            headers=self._headers(user_agent),
            transport=transport,
        )
        breaker = CircuitBreaker(
            failure_threshold=circuit_failure_threshold,
            recovery_timeout=circuit_recovery_timeout,
            expected_exception=RegistryUnavailable,
            name=f"silence-registry:{self._base_url}",
        )
        self._guarded_request = breaker(self._request_with_retry)

    def _headers(self, user_agent: str) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": user_agent,
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RegistryHTTPClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Execute a request with retry and circuit breaker."""
        try:
            return await self._guarded_request(method, path, json=json, params=params)
        except CircuitBreakerError as exc:
            logger.warning("registry_circuit_open", url=self._base_url)
            raise RegistryUnavailable(
                "Silence registry circuit is open after repeated failures",
                details={"url": self._base_url},
            ) from exc

    async def get_json(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        response = await self.request("GET", path, params=params)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RegistryError(
                "Registry response did not contain JSON",
                details={"path": path},
            ) from exc

    async def post(self, path: str, *, json: dict[str, Any]) -> httpx.Response:
        return await self.request("POST", path, json=json)

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RegistryUnavailable),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_random_exponential(multiplier=self._backoff_factor, max=self._backoff_max),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(self._send, method, path, json=json, params=params)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.RequestError as exc:
            logger.warning("registry_network_error", method=method, path=path, error=str(exc))
            raise RegistryUnavailable(
                f"Could not reach silence registry: {exc}",
                details={"method": method, "path": path},
            ) from exc

        try:
            classify_response(response)
        except RegistryUnavailable:
            logger.warning(
                "registry_retryable_error",
                status=response.status_code,
                method=method,
                path=path,
            )
            raise
        except RegistryError as exc:
            logger.debug(
                "registry_permanent_error",
                status=response.status_code,
                method=method,
                path=path,
                error_type=type(exc).__name__,
            )
            raise
        return response


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.info(
        "registry_retry",
        attempt=retry_state.attempt_number,
        error=str(error) if error else None,
    )
