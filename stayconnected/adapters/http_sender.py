"""Shared HTTP delivery for provider adapters.

Every outbound call gets a bounded timeout and a capped number of retries
driven by tenacity. Retries happen only for timeouts, transport errors, 429
and 5xx responses; any other error response fails the attempt immediately.
"""

from __future__ import annotations

import logging

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stayconnected.ports.notification_port import SenderError

logger = logging.getLogger(__name__)

_RETRY_DELAY_SECONDS = 0.5
_MAX_RETRY_DELAY_SECONDS = 10


class _RetryableStatus(Exception):
    """Provider answered 429 or 5xx."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class HttpSender:
    """Base class for JSON-over-HTTP notification providers."""

    provider = "HTTP"

    def __init__(
        self,
        timeout: float,
        max_retries: int = 0,
        retry_delay: float = _RETRY_DELAY_SECONDS,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max(max_retries, 0)
        self._retry_delay = retry_delay

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "%s request failed (attempt %d/%d): %s",
            self.provider,
            retry_state.attempt_number,
            self._max_retries + 1,
            retry_state.outcome.exception(),
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=self._retry_delay, max=_MAX_RETRY_DELAY_SECONDS),
            retry=retry_if_exception_type(
                (httpx.TimeoutException, httpx.TransportError, _RetryableStatus)
            ),
            before_sleep=self._log_retry,
            reraise=True,
        )

    async def _post_once(self, url: str, payload: object, headers: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(url, json=payload, headers=headers)
        if resp.status_code < 400:
            return resp
        if _is_retryable(resp.status_code):
            raise _RetryableStatus(resp.status_code)
        raise SenderError(f"{self.provider} API error: {resp.status_code}")

    async def _post(self, url: str, payload: object, headers: dict[str, str]) -> httpx.Response:
        """POST JSON, retrying transient failures. Raises SenderError when all attempts fail."""
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await self._post_once(url, payload, headers)
        except _RetryableStatus as exc:
            raise SenderError(f"{self.provider} API error: {exc.status_code}") from exc
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise SenderError(f"{self.provider} request failed: {exc}") from exc
        raise SenderError(f"{self.provider} request failed")
