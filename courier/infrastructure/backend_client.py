"""
Backend API Client
==================

Asynchronous HTTP client for the backend that receives bot status and error
reports and answers reachability probes.

KEY DESIGN DECISIONS
--------------------
1. **Reusable HTTP Client**: one httpx.AsyncClient per process, opened in the
   application lifespan and closed on shutdown.
2. **Retry with Exponential Backoff**: connect errors and timeouts are
   retried with tenacity (exponential jitter). HTTP error statuses are not
   retried; they raise BackendError immediately.
3. **Explicit Exception Types**:
   - BackendUnavailableError: network failure after all retries
   - BackendError: backend answered with an error status

USAGE
-----
```python
async with BackendClient() as client:
    await client.update_bot_status(BotStatus.ONLINE)
    probe = await client.health_check()
```

Author: System Architect
Date: 2025-12-13
"""

from __future__ import annotations

import platform
import time
from datetime import datetime
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from courier.core.config.constants import BotStatus, Stage
from courier.core.config.settings import BackendSettings, get_settings
from courier.core.exceptions import BackendError, BackendUnavailableError
from courier.core.logging import get_logger

logger = get_logger(__name__)

_RETRYABLE = (httpx.ConnectError, httpx.TimeoutException)


class BackendClient:
    """
    Backend API client with retry on transient network failures.

    Attributes:
        settings: Backend section of the application settings
    """

    def __init__(
        self,
        settings: BackendSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        app_version: str = "1.0.0",
    ):
        self.settings = settings or get_settings().backend
        self._transport = transport
        self._app_version = app_version
        self._client: httpx.AsyncClient | None = None
        self._started_at = time.time()

    async def open(self) -> BackendClient:
        if self._client is None:
            headers = {"Content-Type": "application/json", "User-Agent": "session-courier/1.0"}
            if self.settings.API_KEY:
                headers["Authorization"] = f"Bearer {self.settings.API_KEY}"
            self._client = httpx.AsyncClient(
                base_url=self.settings.API_URL,
                timeout=httpx.Timeout(self.settings.API_TIMEOUT_SECONDS),
                headers=headers,
                transport=self._transport,
            )
            logger.debug("Backend HTTP client opened", base_url=self.settings.API_URL)
        return self

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.debug("Backend HTTP client closed")
        self._client = None

    async def __aenter__(self) -> BackendClient:
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        """
        Execute one request with retry on connect errors and timeouts.

        Raises:
            BackendUnavailableError: network failure after all retries
            BackendError: non-2xx response
        """
        if self._client is None:
            await self.open()

        @retry(
            stop=stop_after_attempt(self.settings.API_MAX_RETRIES),
            wait=wait_exponential_jitter(initial=0.5, max=5.0),
            retry=retry_if_exception_type(_RETRYABLE),
            reraise=True,
        )
        async def _do_request() -> httpx.Response:
            assert self._client is not None
            return await self._client.request(method, path, json=json)

        try:
            response = await _do_request()
        except httpx.HTTPError as e:
            raise BackendUnavailableError.from_exception(
                e, message=f"Backend unreachable: {path}", path=path
            ) from e

        if response.is_error:
            raise BackendError(
                f"Backend error: {response.status_code}",
                details={"path": path, "status_code": response.status_code},
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def update_bot_status(self, status: BotStatus | str) -> None:
        status = BotStatus(status)
        logger.info("Updating bot status", status=status.value, stage=Stage.BACKEND)
        await self._request("POST", "/api/whatsapp/bot-status", json={
            "status": status.value,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "version": self._app_version,
        })

    async def health_check(self) -> dict[str, Any]:
        """Probe the backend; raises on failure so callers can time the round-trip."""
        started = time.perf_counter()
        await self._request("GET", "/health")
        return {
            "status": "healthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    async def report_error(self, error: BaseException | dict[str, Any]) -> bool:
        """Best-effort error report; returns False if the backend could not take it."""
        if isinstance(error, BaseException):
            error_body = {"message": str(error), "type": type(error).__name__}
            if hasattr(error, "to_dict"):
                error_body["details"] = error.to_dict().get("details", {})
        else:
            error_body = dict(error)

        try:
            await self._request("POST", "/api/errors/report", json={
                "error": error_body,
                "environment": {
                    "python_version": platform.python_version(),
                    "platform": platform.system().lower(),
                    "uptime_seconds": round(time.time() - self._started_at, 1),
                },
                "timestamp": datetime.utcnow().isoformat() + "Z",
            })
        except (BackendError, BackendUnavailableError) as e:
            logger.error("Failed to report error to backend", error=e.message, stage=Stage.BACKEND)
            return False
        return True
