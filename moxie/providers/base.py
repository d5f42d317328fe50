"""Provider contract, error taxonomy and the shared HTTP/retry machinery."""
from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Union, TYPE_CHECKING

import aiohttp

from moxie.conversation.models import Conversation, Message

if TYPE_CHECKING:
    from moxie.services.config_service import ConfigService, ProviderConfig

logger = logging.getLogger(__name__)

# Fence used to carry tool calls inside assistant text
TOOL_CALL_FENCE = "```tool_call"


class ProviderError(Exception):
    """Base class for chat backend failures."""

    kind = "ProviderError"
    retryable = False

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.retries = 0                     # Retries spent by the failed call

    def __str__(self) -> str:
        return f"{self.kind}({self.message})"


class UnknownProviderError(ProviderError):
    kind = "UnknownProvider"


class NetworkError(ProviderError):
    kind = "Network"
    retryable = True


class AuthError(ProviderError):
    kind = "Auth"


class RateLimitedError(ProviderError):
    kind = "RateLimited"
    retryable = True


class InvalidModelError(ProviderError):
    kind = "InvalidModel"


class BadResponseError(ProviderError):
    kind = "BadResponse"


def _error_message(body: str) -> str:
    """Pull a human-readable message out of an error body."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body.strip()[:500]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if data.get("message"):
            return str(data["message"])
    return body.strip()[:500]


def classify_http_error(status: int, body: str) -> ProviderError:
    """Map a non-2xx backend response onto the provider error taxonomy."""
    message = _error_message(body) or f"HTTP {status}"
    lowered = message.lower()

    if status in (401, 403):
        return AuthError(message, status)
    if status == 429:
        return RateLimitedError(message, status)
    if status == 404 or ("model" in lowered and any(
        marker in lowered for marker in ("not found", "does not exist", "invalid model", "unknown model")
    )):
        return InvalidModelError(message, status)
    if status >= 500:
        return NetworkError(message, status)
    return BadResponseError(f"HTTP {status}: {message}", status)


def format_tool_call(name: str, arguments: Any) -> str:
    """Render a tool call the way the chat loop expects to find it."""
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError:
            arguments = {"_raw": arguments}
    body = json.dumps({"name": name, "arguments": arguments}, indent=2, ensure_ascii=False)
    return f"{TOOL_CALL_FENCE}\n{body}\n```"


def to_function_name(qualified_name: str) -> str:
    """Backends only accept [a-zA-Z0-9_-] in function names."""
    return qualified_name.replace(".", "__")


def from_function_name(function_name: str) -> str:
    return function_name.replace("__", ".")


class Provider(ABC):
    """A chat-completion backend.

    Subclasses translate canonical messages into their wire format and back.
    One instance holds one pooled ``aiohttp.ClientSession`` and no other
    per-call state, so concurrent calls on a pooled provider are independent.
    """

    name = "provider"

    def __init__(self, config: ProviderConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_name(cls, name: str, config_service: ConfigService) -> "Provider":
        from moxie.providers.factory import create_provider
        return create_provider(name, config_service)

    # ----- wire format -----

    @abstractmethod
    def endpoint(self) -> str:
        """Absolute URL of the chat endpoint."""

    @abstractmethod
    def headers(self) -> Dict[str, str]:
        """Request headers, including credentials."""

    @abstractmethod
    def build_payload(
        self,
        messages: List[Message],
        model: str,
        tools: Optional[List[dict]] = None,
    ) -> dict:
        """Translate canonical messages into the backend request body."""

    @abstractmethod
    def parse_response(self, data: dict) -> Message:
        """Translate the backend response body into an assistant message."""

    # ----- public API -----

    async def chat(
        self,
        messages: Union[Conversation, Iterable[Message]],
        model: str = "",
        *,
        tools: Optional[List[dict]] = None,
        timeout: Optional[float] = None,
    ) -> Message:
        """Send the conversation and return the assistant reply.

        Args:
            messages: Conversation or message sequence, in dialogue order
            model: Backend model name; empty uses the configured default
            tools: Optional tool specs ``{"name", "description", "parameters"}``
            timeout: Per-attempt timeout in seconds

        Raises:
            ProviderError: A classified backend failure
        """
        if isinstance(messages, Conversation):
            messages = messages.messages
        payload = self.build_payload(list(messages), model or self.config.model, tools)
        data = await self._call_with_retry(payload, timeout or self.config.timeout_s)
        try:
            return self.parse_response(data)
        except ProviderError:
            raise
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise BadResponseError(f"Unexpected response shape: {e}") from e

    async def close(self) -> None:
        """Close the pooled session if this provider created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "Provider":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ----- transport -----

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _send(self, payload: dict, timeout: float) -> dict:
        """POST the payload once and return the decoded JSON body."""
        session = self._get_session()
        try:
            async with session.post(
                self.endpoint(),
                json=payload,
                headers=self.headers(),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise classify_http_error(response.status, body)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise BadResponseError(f"Invalid JSON response: {e}") from e
        if not isinstance(data, dict):
            raise BadResponseError("Response body is not a JSON object")
        return data

    async def _call_with_retry(self, payload: dict, timeout: float) -> dict:
        """Send with exponential backoff for retryable failures.

        Only ``Network`` and ``RateLimited`` errors are retried, up to
        ``config.max_retries`` attempts in total. The delay doubles each
        attempt starting at ``config.retry_base_delay``. The raised error
        carries the number of retries in ``retries``.
        """
        attempts = max(1, self.config.max_retries)

        for attempt in range(attempts):
            try:
                data = await self._send(payload, timeout)
            except ProviderError as e:
                if not e.retryable or attempt == attempts - 1:
                    e.retries = attempt
                    logger.error(f"[{self.config.name}] {e} after {attempt} retries")
                    raise
                delay = self.config.retry_base_delay * (2 ** attempt)
                logger.warning(
                    f"[{self.config.name}] {e}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                await asyncio.sleep(delay)
            else:
                if attempt:
                    logger.info(f"[{self.config.name}] Succeeded after {attempt} retries")
                return data

        raise NetworkError("Request failed after all retries")  # pragma: no cover
