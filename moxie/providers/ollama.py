"""Ollama provider (local model server)."""

from typing import Dict, List, Optional

from moxie.conversation.models import Message
from moxie.providers.base import (
    BadResponseError,
    Provider,
    format_tool_call,
    from_function_name,
    to_function_name,
)


class OllamaProvider(Provider):
    """Talks to ``POST {base_url}/api/chat`` with streaming disabled."""

    name = "ollama"

    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/api/chat"

    def headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def build_payload(
        self,
        messages: List[Message],
        model: str,
        tools: Optional[List[dict]] = None,
    ) -> dict:
        payload = {
            "model": model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "stream": False,
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
        message = data.get("message")
        if not isinstance(message, dict):
            raise BadResponseError("Missing 'message' in Ollama response")

        tool_calls = message.get("tool_calls") or []
        if tool_calls:
            rendered = [
                format_tool_call(
                    from_function_name(call["function"]["name"]),
                    call["function"].get("arguments", {}),
                )
                for call in tool_calls
            ]
            return Message.assistant("\n\n".join(rendered))

        return Message.assistant(message.get("content") or "")
