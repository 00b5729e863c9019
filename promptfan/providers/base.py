"""Provider contract and request options shared by every adapter."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, Optional, Union

import httpx

from ..config import REQUEST_TIMEOUT
from ..context import QueryContext
from ..errors import (
    BackendError,
    MalformedResponseError,
    MissingModelError,
    QueryTimeoutError,
    TransportError,
)

logger = logging.getLogger(__name__)

ParamValue = Union[str, int, float, bool]


@dataclass
class RequestOptions:
    """Configuration for a single request, composed from Option mutators."""
    model: str = ""
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    # Provider-specific parameters such as "system", "top_p" or "top_k"
    custom_params: Dict[str, ParamValue] = field(default_factory=dict)

    def get_str(self, key: str) -> Optional[str]:
        value = self.custom_params.get(key)
        return value if isinstance(value, str) else None

    def get_float(self, key: str) -> Optional[float]:
        value = self.custom_params.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def get_int(self, key: str) -> Optional[int]:
        value = self.custom_params.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value


Option = Callable[[RequestOptions], None]


def with_model(model: str) -> Option:
    def apply(opts: RequestOptions) -> None:
        opts.model = model
    return apply


def with_max_tokens(max_tokens: int) -> Option:
    def apply(opts: RequestOptions) -> None:
        opts.max_tokens = max_tokens
    return apply


def with_temperature(temperature: float) -> Option:
    def apply(opts: RequestOptions) -> None:
        opts.temperature = temperature
    return apply


def with_custom_param(key: str, value: ParamValue) -> Option:
    """Set a provider-specific parameter; adapters ignore keys they don't know."""
    if not isinstance(value, (str, int, float, bool)):
        raise TypeError(f"unsupported value for custom param {key!r}: {type(value).__name__}")

    def apply(opts: RequestOptions) -> None:
        opts.custom_params[key] = value
    return apply


def apply_options(options: Iterable[Option], base: Optional[RequestOptions] = None) -> RequestOptions:
    """
    Compose options onto a copy of ``base``.

    Later options override earlier ones; custom params are merged key by key.
    """
    if base is None:
        opts = RequestOptions()
    else:
        opts = replace(base, custom_params=dict(base.custom_params))
    for option in options:
        if option is None:
            continue
        option(opts)
    return opts


class Provider(ABC):
    """
    A remote text-generation backend.

    Subclasses translate the uniform query contract into their backend's wire
    format. Each performs exactly one remote call per ``query``.
    """

    name: str = ""
    default_max_tokens: int = 1000
    default_temperature: float = 0.7

    def __init__(
        self,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.http_client = http_client
        self.base_url = base_url
        self.timeout = timeout

    @abstractmethod
    async def query(self, ctx: QueryContext, prompt: str, *options: Option) -> str:
        """
        Send a prompt to the backend and return the generated text.

        Args:
            ctx: Cancellation/deadline signal for the call
            prompt: Input text
            options: Request option mutators; a model is required

        Returns:
            The extracted response text
        """

    async def aclose(self) -> None:
        """Release any long-lived client held by the adapter."""

    def resolve_options(self, options: Iterable[Option]) -> RequestOptions:
        """Apply options over this backend's defaults and require a model."""
        opts = apply_options(
            options,
            RequestOptions(max_tokens=self.default_max_tokens, temperature=self.default_temperature),
        )
        if not opts.model:
            raise MissingModelError(self.name)
        return opts

    async def _post_json(
        self,
        ctx: QueryContext,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
    ) -> Any:
        """
        POST a JSON payload under ``ctx`` and decode the JSON reply.

        Raises:
            TransportError: If the request fails before a response arrives
            BackendError: If the backend answers with a non-success status
            MalformedResponseError: If the body is not valid JSON
        """
        if self.http_client is not None:
            response = await self._send(ctx, self.http_client, url, headers, payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._send(ctx, client, url, headers, payload)

        if not response.is_success:
            error = self.parse_error(response)
            logger.warning("%s API error for %s: %s", self.name, url, error)
            raise error

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(f"error parsing {self.name} response: {e}") from e

    async def _send(
        self,
        ctx: QueryContext,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
    ) -> httpx.Response:
        try:
            return await ctx.run(client.post(url, headers=headers, json=payload))
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(f"{self.name} request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"error sending request to {self.name}: {e}") from e

    def parse_error(self, response: httpx.Response) -> BackendError:
        """
        Build a BackendError from a non-success response.

        Most backends reply with {"error": {"type": ..., "message": ...}}; the
        raw body is used when it cannot be parsed.
        """
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            category = error.get("type") or error.get("status") or f"http_{response.status_code}"
            return BackendError(response.status_code, str(category), str(error["message"]))

        return BackendError(
            response.status_code,
            f"http_{response.status_code}",
            f"status {response.status_code}: {response.text}",
        )
