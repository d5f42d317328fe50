"""Utility functions for the Moxie service."""

from .prompt_builder import build_system_prompt, extract_tool_calls, resolve_persona

__all__ = [
    'build_system_prompt',
    'extract_tool_calls',
    'resolve_persona',
]
