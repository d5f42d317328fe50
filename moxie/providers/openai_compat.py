"""OpenAI-compatible provider.

Works with any API that implements the OpenAI chat completions format:
OpenAI, Groq, vLLM, LM Studio, LocalAI, Together AI and similar servers.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import aiohttp

from moxie.conversation.models import Message, Role
from moxie.providers.base import (
    BadResponseError,
    Provider,
    format_tool_call,
    from_function_name,
    to_function_name,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096


class OpenAICompatProvider(Provider):
    """Chat completions over ``POST {base_url}/chat/completions``."""

    name = "openai"

    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/chat/completions"

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        api_key = self.config.get_api_key()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        organization = self.config.get_organization()
        if organization:
            headers["OpenAI-Organization"] = organization
        return headers

    def build_payload(
        self,
        messages: List[Message],
        model: str,
        tools: Optional[List[dict]] = None,
    ) -> dict:
        chat_messages = []
        for m in messages:
            # Tool output without a tool_call_id is not accepted as role "tool"
            role = "user" if m.role == Role.TOOL else m.role.value
            chat_messages.append({"role": role, "content": m.content})

        payload = {
            "model": model,
            "messages": chat_messages,
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": DEFAULT_MAX_TOKENS,
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": to_function_name(t["name"]),
                        "description": t.get("description", ""),
                        "parameters": t.get("parameters") or {"type": "object", "properties": {}},
                    },
                }
                for t in tools
            ]
        return payload

    def parse_response(self, data: dict) -> Message:
        choices = data.get("choices") or []
        if not choices:
            raise BadResponseError("No choices in response")

        message = choices[0].get("message") or {}
        tool_calls = message.get("tool_calls") or []
        if tool_calls:
            # Native function calls are rendered in the fenced format the chat loop parses
            rendered = [
                format_tool_call(
                    from_function_name(call["function"]["name"]),
                    call["function"].get("arguments", "{}"),
                )
                for call in tool_calls
            ]
            return Message.assistant("\n\n".join(rendered))

        return Message.assistant(message.get("content") or "")

    async def list_models(self) -> List[str]:
        """List model ids via ``GET /models``; servers without it yield []."""
        url = f"{self.config.base_url.rstrip('/')}/models"
        session = self._get_session()
        try:
            async with session.get(
                url,
                headers=self.headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_s),
            ) as response:
                if response.status != 200:
                    return []
                body = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"[{self.config.name}] Model listing unavailable: {e}")
            return []

        return [m["id"] for m in body.get("data", []) if isinstance(m, dict) and "id" in m]
