"""Google Gemini API adapter."""

from typing import Any, Dict, Optional

import httpx

from ..config import GOOGLE_API_URL, REQUEST_TIMEOUT
from ..context import QueryContext
from ..errors import EmptyResponseError, MalformedResponseError
from .base import Option, Provider


class GoogleProvider(Provider):
    """
    Queries the Gemini generateContent endpoint.

    Unlike the other adapters this one keeps a long-lived client for its
    lifetime; call ``aclose()`` when done with it.
    """

    name = "google"
    default_max_tokens = 1024
    default_temperature = 0.7

    def __init__(
        self,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, http_client, base_url, timeout)
        self._owns_client = http_client is None
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        if self._owns_client and not self.http_client.is_closed:
            await self.http_client.aclose()

    async def query(self, ctx: QueryContext, prompt: str, *options: Option) -> str:
        """
        Query the Gemini API.

        Args:
            ctx: Cancellation/deadline signal for the call
            prompt: User prompt
            options: Request options; "system", "top_p" and "top_k" custom params are honoured

        Returns:
            Text of the first part of the first candidate
        """
        opts = self.resolve_options(options)

        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        generation_config: Dict[str, Any] = {
            "temperature": opts.temperature,
            "maxOutputTokens": opts.max_tokens,
        }
        top_p = opts.get_float("top_p")
        if top_p is not None:
            generation_config["topP"] = top_p
        top_k = opts.get_int("top_k")
        if top_k is not None:
            generation_config["topK"] = top_k

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

        system = opts.get_str("system")
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        base_url = (self.base_url or GOOGLE_API_URL).rstrip("/")
        url = f"{base_url}/v1beta/models/{opts.model}:generateContent"
        data = await self._post_json(ctx, url, headers, payload)

        if not isinstance(data, dict):
            raise MalformedResponseError("unexpected response shape from Google API")
        candidates = data.get("candidates") or []
        if not isinstance(candidates, list):
            raise MalformedResponseError("unexpected response shape from Google API")

        first_candidate = candidates[0] if candidates else {}
        content = first_candidate.get("content") if isinstance(first_candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not parts:
            raise EmptyResponseError("empty response from Google API")
        if not isinstance(parts, list):
            raise MalformedResponseError("unexpected response shape from Google API")

        first = parts[0]
        if not isinstance(first, dict) or not isinstance(first.get("text"), str):
            raise MalformedResponseError("unexpected response type from Google API")
        return first["text"]
