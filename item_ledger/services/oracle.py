"""HTTP client for the text-classification oracle.

The oracle is an Ollama compatible server: prompts are posted to
``/api/generate`` with ``stream`` disabled and the completion is read
from the ``response`` field.  Transport failures are translated into the
domain taxonomy here so that callers only ever see
:class:`ServiceUnavailableError` or :class:`RequestTimeoutError`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from item_ledger.core.config import settings
from item_ledger.core.errors import RequestTimeoutError, ServiceUnavailableError
from item_ledger.core.observability import sentry_breadcrumb

logger = logging.getLogger(__name__)


class OllamaClient:
    """Thin async wrapper around the Ollama HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_MODEL
        self.timeout = float(timeout if timeout is not None else settings.ORACLE_TIMEOUT_SECONDS)
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    async def send(self, prompt: str, model: Optional[str] = None) -> str:
        """Send ``prompt`` and return the raw completion text.

        The whole exchange is bounded by ``self.timeout`` seconds.
        """
        payload: Dict[str, Any] = {"model": model or self.model, "prompt": prompt, "stream": False}
        sentry_breadcrumb("oracle", "generate", data={"model": payload["model"], "chars": len(prompt)})
        try:
            async with self._client(self.timeout) as client:
                response = await asyncio.wait_for(client.post("/api/generate", json=payload), timeout=self.timeout)
                response.raise_for_status()
                body = response.json()
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("Oracle timed out after %.1fs", self.timeout)
            raise RequestTimeoutError(f"Classifier did not respond within {self.timeout:g} seconds") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning("Oracle returned HTTP %s", exc.response.status_code)
            raise ServiceUnavailableError(
                f"Classifier returned HTTP {exc.response.status_code}",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Oracle unreachable at %s: %s", self.base_url, exc)
            raise ServiceUnavailableError("Classifier service is unavailable") from exc
        except ValueError as exc:
            # Non-JSON envelope from the server
            raise ServiceUnavailableError("Classifier returned a malformed envelope") from exc

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise ServiceUnavailableError("Classifier response is missing the 'response' field")
        return text

    async def status(self) -> Dict[str, Any]:
        """Probe ``/api/tags``; never raises."""
        try:
            async with self._client(min(self.timeout, 5.0)) as client:
                response = await client.get("/api/tags")
        except httpx.HTTPError as exc:
            return {"available": False, "message": f"Ollama service is not reachable: {exc.__class__.__name__}"}
        if response.is_success:
            return {"available": True, "message": "Ollama service is available"}
        return {"available": False, "message": f"Ollama service responded with HTTP {response.status_code}"}

    async def is_available(self) -> bool:
        return bool((await self.status())["available"])
