"""Anthropic Messages API provider."""

from typing import Dict, List, Optional

from moxie.conversation.models import Message, Role
from moxie.providers.base import (
    BadResponseError,
    Provider,
    format_tool_call,
    from_function_name,
    to_function_name,
)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(Provider):
    """``POST {base_url}/v1/messages``.

    System messages are lifted into the top-level ``system`` field and tool
    output is sent as a user turn. Consecutive turns with the same role are
    merged, since the API requires alternating roles.
    """

    name = "anthropic"

    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/v1/messages"

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.get_api_key(),
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_payload(
        self,
        messages: List[Message],
        model: str,
        tools: Optional[List[dict]] = None,
    ) -> dict:
        system_parts = []
        turns: List[dict] = []
        for m in messages:
            if m.role == Role.SYSTEM:
                system_parts.append(m.content)
                continue
            role = "assistant" if m.role == Role.ASSISTANT else "user"
            if turns and turns[-1]["role"] == role:
                turns[-1]["content"] += "\n\n" + m.content
            else:
                turns.append({"role": role, "content": m.content})

        payload = {
            "model": model,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "messages": turns,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if tools:
            payload["tools"] = [
                {
                    "name": to_function_name(t["name"]),
                    "description": t.get("description", ""),
                    "input_schema": t.get("parameters") or {"type": "object", "properties": {}},
                }
                for t in tools
            ]
        return payload

    def parse_response(self, data: dict) -> Message:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise BadResponseError("Missing 'content' in Anthropic response")

        texts = [b.get("text", "") for b in blocks if b.get("type") == "text"]
        calls = [
            format_tool_call(from_function_name(b["name"]), b.get("input", {}))
            for b in blocks
            if b.get("type") == "tool_use"
        ]
        return Message.assistant("\n\n".join(part for part in texts + calls if part))
