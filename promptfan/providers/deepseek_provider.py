"""DeepSeek API adapter (OpenAI-compatible chat completions)."""

from typing import Any, Dict, List

from ..config import DEEPSEEK_API_URL
from ..context import QueryContext
from ..errors import EmptyResponseError, MalformedResponseError
from .base import Option, Provider


class DeepseekProvider(Provider):
    """Queries the DeepSeek chat completions API."""

    name = "deepseek"
    default_max_tokens = 1000
    default_temperature = 0.7

    async def query(self, ctx: QueryContext, prompt: str, *options: Option) -> str:
        """
        Query the DeepSeek API.

        Args:
            ctx: Cancellation/deadline signal for the call
            prompt: User prompt
            options: Request options; "system" and "top_p" custom params are honoured

        Returns:
            Content of the first choice's message
        """
        opts = self.resolve_options(options)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]
        system = opts.get_str("system")
        if system:
            messages.insert(0, {"role": "system", "content": system})

        payload: Dict[str, Any] = {
            "model": opts.model,
            "messages": messages,
            "max_tokens": opts.max_tokens,
            "temperature": opts.temperature,
            "stream": False,
        }

        top_p = opts.get_float("top_p")
        if top_p is not None:
            payload["top_p"] = top_p

        data = await self._post_json(ctx, self.base_url or DEEPSEEK_API_URL, headers, payload)

        if not isinstance(data, dict):
            raise MalformedResponseError("unexpected response shape from DeepSeek API")
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise MalformedResponseError("unexpected response shape from DeepSeek API")
        if not choices:
            raise EmptyResponseError("empty response from DeepSeek API")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise MalformedResponseError("DeepSeek choice carries no message")
        content = message.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise MalformedResponseError("unexpected response type from DeepSeek API")
        return content
