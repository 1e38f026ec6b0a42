"""Transports carrying a prompt to the external reasoning service."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from jollyplanner.config import OptimizerConfig
from jollyplanner.errors import CredentialError, ExternalCallError, SchemaError

logger = logging.getLogger(__name__)


class OptimizerTransport(ABC):
    """Abstract base class for the external optimizer call."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send a prompt and return the raw text answer.

        Raises:
            ExternalCallError: If the service is unreachable, times out or
                answers with a non-2xx status.
        """
        pass


class GeminiTransport(OptimizerTransport):
    """Calls the Gemini generateContent endpoint over HTTP.

    The request asks for a JSON answer (responseMimeType application/json)
    and the whole call is bounded by config.timeout_seconds.

    Args:
        config: Model, endpoint, credential and timeout.
        client: Optional preconfigured httpx.AsyncClient; tests pass one
            built on httpx.MockTransport.
    """

    def __init__(
        self,
        config: Optional[OptimizerConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or OptimizerConfig.from_env()
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/models/{self.config.model}:generateContent"

    def build_body(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

    async def complete(self, prompt: str) -> str:
        if not self.config.has_credentials:
            raise CredentialError("No API key configured for the delegated optimizer")

        headers = {
            "x-goog-api-key": self.config.api_key.strip(),
            "Content-Type": "application/json",
        }
        logger.info("Calling optimizer model %s", self.config.model)
        try:
            if self._client is not None:
                response = await self._client.post(
                    self.url,
                    headers=headers,
                    json=self.build_body(prompt),
                    timeout=self.config.timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                    response = await client.post(
                        self.url, headers=headers, json=self.build_body(prompt)
                    )
        except httpx.TimeoutException as e:
            raise ExternalCallError(
                f"Optimizer call timed out after {self.config.timeout_seconds:g}s: {e}"
            )
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Optimizer call failed: {e}")

        if not response.is_success:
            raise ExternalCallError(
                f"Optimizer answered {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return self._extract_text(response)

    def _extract_text(self, response: httpx.Response) -> str:
        """Concatenate the text parts of the first candidate."""
        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise SchemaError(f"Unexpected optimizer envelope: {e!r}")
