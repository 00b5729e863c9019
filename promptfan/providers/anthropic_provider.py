"""Anthropic/Claude API adapter."""

from typing import Any, Dict

from ..config import ANTHROPIC_API_URL, ANTHROPIC_API_VERSION
from ..context import QueryContext
from ..errors import EmptyResponseError, MalformedResponseError
from .base import Option, Provider


class AnthropicProvider(Provider):
    """Queries the Anthropic Messages API."""

    name = "anthropic"
    default_max_tokens = 1000
    default_temperature = 0.7

    async def query(self, ctx: QueryContext, prompt: str, *options: Option) -> str:
        """
        Query the Anthropic API.

        Args:
            ctx: Cancellation/deadline signal for the call
            prompt: User prompt
            options: Request options; "system" and "top_p" custom params are honoured

        Returns:
            Text of the first text content block
        """
        opts = self.resolve_options(options)

        headers = {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_API_VERSION,
        }

        payload: Dict[str, Any] = {
            "model": opts.model,
            "max_tokens": opts.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": opts.temperature,
        }

        # System prompt is a top-level field, not a message
        system = opts.get_str("system")
        if system:
            payload["system"] = system

        top_p = opts.get_float("top_p")
        if top_p is not None:
            payload["top_p"] = top_p

        data = await self._post_json(ctx, self.base_url or ANTHROPIC_API_URL, headers, payload)

        # Response content is an array of content blocks
        if not isinstance(data, dict):
            raise MalformedResponseError("unexpected response shape from Anthropic API")
        content_blocks = data.get("content") or []
        if not isinstance(content_blocks, list):
            raise MalformedResponseError("unexpected response shape from Anthropic API")
        if not content_blocks:
            raise EmptyResponseError("empty response from Anthropic API")

        for block in content_blocks:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text", "")
                if not isinstance(text, str):
                    raise MalformedResponseError("unexpected response type from Anthropic API")
                return text

        raise MalformedResponseError("no text content in Anthropic response")
