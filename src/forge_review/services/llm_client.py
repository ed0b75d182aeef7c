"""
Model Client

Sends prompts to the retrieval-augmented model endpoint and returns the
response text, retrying transient failures according to a RetryPolicy.
"""

import asyncio
import time

import httpx
import structlog

from ..config import RetryPolicy, ReviewConfig
from ..errors import ModelCallError

logger = structlog.get_logger(__name__)


class ModelClient:
    """Client for the ``/ai/query`` completion endpoint."""

    def __init__(
        self,
        base_url: str,
        model: str,
        project_name: str,
        access_token: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 300.0,
        debug: bool = False,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Endpoint root, e.g. https://host/api/v2
            model: Model identifier sent with every query
            project_name: Knowledge project the query runs against
            access_token: Bearer token for the endpoint
            retry_policy: Attempts and backoff for transient failures
            timeout: Per-request timeout in seconds
            debug: Log full prompts and responses
            client: Preconfigured HTTP client (tests pass a mock transport)
        """
        self.query_url = f"{base_url.rstrip('/')}/ai/query"
        self.model = model
        self.project_name = project_name
        self.retry_policy = retry_policy or RetryPolicy()
        self.debug = debug

        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: ReviewConfig) -> "ModelClient":
        return cls(
            base_url=config.model_base_url,
            model=config.model,
            project_name=config.model_project_name,
            access_token=config.model_access_token,
            retry_policy=config.retry_policy,
            timeout=config.model_timeout_seconds,
            debug=config.debug,
        )

    async def __aenter__(self) -> "ModelClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(self, prompt: str) -> str:
        """
        Send ``prompt`` and return the response text.

        Returns an empty string for an empty prompt or an empty answer.

        Raises:
            ModelCallError: the call failed permanently or ran out of attempts
        """
        if not prompt:
            return ""

        if self.debug:
            logger.debug("Sending prompt to model", prompt=prompt)

        start = time.monotonic()
        last_error = "no attempts made"
        for attempt in range(1, self.retry_policy.attempts + 1):
            try:
                text = await self._query(prompt)
            except _Retryable as e:
                last_error = str(e)
                if attempt < self.retry_policy.attempts:
                    delay = self.retry_policy.delay(attempt)
                    logger.warning(
                        "Model call failed, retrying",
                        attempt=attempt,
                        delay=delay,
                        error=last_error,
                    )
                    await asyncio.sleep(delay)
                continue

            logger.info(
                "Model response received",
                attempts=attempt,
                elapsed_ms=int((time.monotonic() - start) * 1000),
            )
            if self.debug:
                logger.debug("Model response", response=text)
            return text

        raise ModelCallError(
            f"Model call failed after {self.retry_policy.attempts} attempts: {last_error}"
        )

    async def _query(self, prompt: str) -> str:
        try:
            response = await self._client.post(
                self.query_url,
                json={
                    "query": prompt,
                    "model": self.model,
                    "project_name": self.project_name,
                },
            )
        except httpx.TransportError as e:
            raise _Retryable(f"{type(e).__name__}: {e}") from e

        if self.retry_policy.is_retryable_status(response.status_code):
            raise _Retryable(f"HTTP {response.status_code}")
        if response.is_error:
            raise ModelCallError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            return response.json()["response"]["text"] or ""
        except (ValueError, KeyError, TypeError) as e:
            raise ModelCallError(f"Unexpected response shape: {e}") from e


class _Retryable(Exception):
    """A failure worth another attempt."""
