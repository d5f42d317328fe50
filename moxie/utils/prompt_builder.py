"""Prompt building and tool-call extraction for the chat loop."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from moxie.plugins.base import ToolDefinition
from moxie.providers.base import TOOL_CALL_FENCE

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "You are Moxie, a helpful AI assistant. You can use tools to help answer "
    "questions and complete tasks. Be concise and helpful in your responses."
)

BUSINESS_ANALYST_PROMPT = """You are a skilled business analyst assistant. Your role is to help business owners understand their data and make informed decisions.

When analyzing data:
1. Gather context first - use tools to get the actual data
2. Present data clearly with tables and key metrics
3. Provide insights, not just numbers - explain what it means
4. Suggest actionable next steps when appropriate

Always use actual data from tools - never make up numbers."""

TECH_SUPPORT_PROMPT = """You are a technical support assistant. Help users troubleshoot issues with their systems.

When helping:
1. Ask clarifying questions to understand the problem
2. Use available tools to gather diagnostic information
3. Provide step-by-step solutions
4. Explain what caused the issue when possible

Be patient and clear in your explanations."""

DATA_ENTRY_PROMPT = """You are a data entry assistant. Help users input and manage data efficiently.

When handling data:
1. Confirm the data before making changes
2. Validate inputs against expected formats
3. Report any issues or anomalies
4. Summarize what was done after completion

Always ask for confirmation before writing or modifying data."""

PERSONAS: Dict[str, str] = {
    "default": DEFAULT_PROMPT,
    "business_analyst": BUSINESS_ANALYST_PROMPT,
    "analyst": BUSINESS_ANALYST_PROMPT,
    "tech_support": TECH_SUPPORT_PROMPT,
    "support": TECH_SUPPORT_PROMPT,
    "data_entry": DATA_ENTRY_PROMPT,
    "data": DATA_ENTRY_PROMPT,
}


@dataclass
class ToolCall:
    """A tool call requested by the model."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


def resolve_persona(persona: str) -> str:
    prompt = PERSONAS.get(persona.strip().lower())
    if prompt is None:
        logger.warning(f"Unknown persona '{persona}', using default")
        return f"{DEFAULT_PROMPT}\n\nNote: Unknown persona '{persona}', using default."
    return prompt


def build_system_prompt(
    base_prompt: Optional[str] = None,
    tools: Sequence[ToolDefinition] = (),
    persona: Optional[str] = None,
) -> str:
    """
    Build the system prompt, listing available tools and the tool-call format.

    Args:
        base_prompt: Explicit system prompt; wins over ``persona``
        tools: Tools the model may call
        persona: Built-in persona name (default, analyst, support, data)

    Returns:
        System prompt text
    """
    if base_prompt:
        prompt = base_prompt
    elif persona:
        prompt = resolve_persona(persona)
    else:
        prompt = DEFAULT_PROMPT

    if not tools:
        return prompt

    listing = "\n".join(f"- {t.qualified_name}: {t.description}" for t in tools)
    schemas = json.dumps(
        [{"name": t.qualified_name, "description": t.description, "parameters": t.parameters} for t in tools],
        indent=2,
        ensure_ascii=False,
    )

    parts = [
        prompt,
        "## Available Tools",
        f"You have access to the following tools:\n\n{listing}",
        "To use a tool, respond with a JSON block in this format:\n"
        f'{TOOL_CALL_FENCE}\n{{\n  "name": "tool_name",\n  "arguments": {{}}\n}}\n```',
        f"Tool schemas:\n```json\n{schemas}\n```",
    ]
    return "\n\n".join(parts)


def extract_tool_calls(content: str) -> List[ToolCall]:
    """Find fenced ``tool_call`` blocks in a reply; malformed blocks are ignored."""
    calls = []
    for block in content.split(TOOL_CALL_FENCE)[1:]:
        end = block.find("```")
        if end == -1:
            continue
        try:
            data = json.loads(block[:end].strip())
        except json.JSONDecodeError:
            logger.debug(f"Ignoring malformed tool_call block: {block[:end][:100]}")
            continue
        if not isinstance(data, dict) or not isinstance(data.get("name"), str) or "arguments" not in data:
            continue
        arguments = data["arguments"]
        calls.append(ToolCall(name=data["name"], arguments=arguments if arguments is not None else {}))
    return calls
