"""
Shared HTTP plumbing for provider adapters.

Handles:
- httpx client construction (with an optional transport for tests)
- retries for transient failures on non-streaming calls
- wrapping every transport/API failure into AIProviderError
- rejecting JSON bodies whose shape does not match the wire format
- line-based streaming with guaranteed connection release
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..base import AIAdapter, ChatCompletionRequest
from ..exceptions import AIProviderError, AIResponseError, AITimeoutError

logger = logging.getLogger(__name__)

# Number of attempts for transient errors
MAX_RETRIES = 2
RETRY_DELAY = 1.0  # seconds


class HTTPAdapter(AIAdapter):
    """Base class for adapters talking to a JSON-over-HTTP chat API."""

    def __init__(
        self,
        model: str,
        temperature: float = 0.0,
        timeout: float = 120.0,
        max_retries: int = MAX_RETRIES,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = RETRY_DELAY
        self._transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"timeout": timeout or self.timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _temperature(self, request: ChatCompletionRequest) -> float:
        """Request temperature wins over the adapter default."""
        return self.temperature if request.temperature is None else request.temperature

    def _error_detail(self, response) -> str:
        """Best-effort error message from an error response body."""
        status = response.status_code
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {status}"
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            error = error.get("message")
        return f"HTTP {status}: {error}" if error else f"HTTP {status}"

    def _status_error(self, response) -> AIResponseError:
        return AIResponseError(
            self.provider,
            status_code=response.status_code,
            message=self._error_detail(response),
            response_body=(response.text or "")[:500]
        )

    async def _get_json(self, url: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Single GET without retries, failures wrapped."""
        try:
            async with self._client(timeout) as client:
                response = await client.get(url, headers=self._headers())
            response.raise_for_status()
            return self._expect(response.json(), dict, "response body")
        except httpx.TimeoutException as e:
            raise AITimeoutError(self.provider, timeout or self.timeout) from e
        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response) from e
        except httpx.HTTPError as e:
            raise AIProviderError(self.provider, str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise AIResponseError(self.provider, message=f"invalid JSON response: {e}") from e

    async def _post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST with retries on timeouts, 5xx and connection errors; 4xx fail fast."""
        last_error: Optional[AIProviderError] = None

        for attempt in range(self.max_retries):
            try:
                async with self._client() as client:
                    response = await client.post(url, headers=self._headers(), json=payload)

                response.raise_for_status()
                return self._expect(response.json(), dict, "response body")

            except httpx.TimeoutException as e:
                logger.warning(f"[AI] {self.provider.value} timeout on attempt {attempt + 1}/{self.max_retries}")
                last_error = AITimeoutError(self.provider, self.timeout)
                last_error.__cause__ = e

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.error(f"[AI] {self.provider.value} HTTP error: {status}")
                error = self._status_error(e.response)
                if 400 <= status < 500:
                    raise error from e
                last_error = error
                last_error.__cause__ = e

            except httpx.HTTPError as e:
                logger.warning(f"[AI] {self.provider.value} error on attempt {attempt + 1}/{self.max_retries}: {e}")
                last_error = AIProviderError(self.provider, str(e) or e.__class__.__name__)
                last_error.__cause__ = e

            except ValueError as e:
                raise AIResponseError(self.provider, message=f"invalid JSON response: {e}") from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(self.retry_delay)

        raise last_error

    async def _stream_lines(self, url: str, payload: Dict[str, Any]) -> AsyncIterator[str]:
        """
        Yield non-empty response lines of a streaming POST.

        Leaving the generator (exhaustion, aclose or cancellation) exits the
        httpx stream context and releases the connection.
        """
        try:
            async with self._client() as client:
                async with client.stream("POST", url, headers=self._headers(), json=payload) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise self._status_error(response)
                    async for line in response.aiter_lines():
                        if line.strip():
                            yield line
        except httpx.TimeoutException as e:
            raise AITimeoutError(self.provider, self.timeout) from e
        except httpx.HTTPError as e:
            raise AIProviderError(self.provider, str(e) or e.__class__.__name__) from e

    def _decode_frame(self, raw: str) -> Dict[str, Any]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise AIResponseError(self.provider, message=f"malformed stream frame: {raw[:100]!r}") from e
        if not isinstance(data, dict):
            raise AIResponseError(self.provider, message=f"unexpected stream frame: {raw[:100]!r}")
        return data

    def _expect(self, value: Any, kind, what: str) -> Any:
        """Return value if it has the expected JSON type, else raise a wrapped shape error."""
        if not isinstance(value, kind):
            raise AIResponseError(
                self.provider,
                message=f"unexpected response shape: {what} is {type(value).__name__}"
            )
        return value
