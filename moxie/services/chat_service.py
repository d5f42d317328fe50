"""Chat business logic - the provider / tool-call loop over stored conversations."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from moxie.constants import MAX_CONTEXT_MESSAGES, MAX_TOOL_ITERATIONS
from moxie.conversation.models import Message
from moxie.conversation.store import ConversationStore
from moxie.plugins.executor import ToolExecutor
from moxie.providers.factory import ProviderPool
from moxie.services.config_service import ConfigService
from moxie.utils.prompt_builder import build_system_prompt, extract_tool_calls

logger = logging.getLogger(__name__)


class MaxToolIterationsExceeded(Exception):
    """The model kept requesting tools past the iteration limit."""


@dataclass
class ToolCallSummary:
    name: str
    success: bool


@dataclass
class ChatResult:
    message: str
    conversation_id: str
    tool_calls: List[ToolCallSummary] = field(default_factory=list)


class ChatService:
    """
    Chat business logic service.

    Responsibilities:
    - Assemble the system prompt and conversation context
    - Run the provider, dispatching tool calls through the executor
    - Commit the exchange to the conversation store only when it completed
    """

    def __init__(
        self,
        providers: ProviderPool,
        executor: ToolExecutor,
        store: ConversationStore,
        config_service: ConfigService,
        max_iterations: int = MAX_TOOL_ITERATIONS,
        max_context_messages: Optional[int] = MAX_CONTEXT_MESSAGES,
        native_tools: bool = False,
    ):
        """
        Args:
            native_tools: Also send tool specs in the backend's function-calling format
        """
        self.providers = providers
        self.executor = executor
        self.store = store
        self.config_service = config_service
        self.max_iterations = max_iterations
        self.max_context_messages = max_context_messages
        self.native_tools = native_tools

    async def chat(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        system_prompt: Optional[str] = None,
        persona: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ChatResult:
        """
        Answer one user message.

        The user message, tool exchanges and final reply are appended to the
        stored conversation together once the loop finishes. On timeout,
        cancellation or error the stored conversation is left unchanged.
        Without ``model`` the provider uses the model of its own config.

        Raises:
            ProviderError: Backend failure (UnknownProviderError for a bad name)
            MaxToolIterationsExceeded: Tool loop did not settle
            asyncio.TimeoutError: ``timeout`` elapsed
        """
        provider_name = (provider or self.config_service.get_current_config_name()).lower()
        backend = self.providers.get(provider_name)

        async with self.store.session(conversation_id) as conversation:
            history = conversation.truncate_for_context(max_messages=self.max_context_messages)
            run = self._run(backend, model or "", history, message, system_prompt, persona)
            if timeout:
                new_messages, reply, summaries = await asyncio.wait_for(run, timeout)
            else:
                new_messages, reply, summaries = await run

            await self.store.commit(conversation, new_messages)
            logger.info(
                f"[{conversation.id}] Reply from {provider_name} after {len(summaries)} tool call(s)"
            )
            return ChatResult(message=reply, conversation_id=conversation.id, tool_calls=summaries)

    async def _run(self, backend, model, history, user_text, system_prompt, persona):
        tools = self.executor.list_tools()
        system = Message.system(build_system_prompt(system_prompt, tools, persona))
        native = None
        if self.native_tools and tools:
            native = [
                {"name": t.qualified_name, "description": t.description, "parameters": t.parameters}
                for t in tools
            ]

        new_messages = [Message.user(user_text)]
        summaries: List[ToolCallSummary] = []

        for _ in range(self.max_iterations):
            response = await backend.chat([system, *history, *new_messages], model, tools=native)
            calls = extract_tool_calls(response.content)
            if not calls:
                new_messages.append(response)
                return new_messages, response.content, summaries

            for call in calls:
                result = await self.executor.execute_safe(call.name, call.arguments)
                summaries.append(ToolCallSummary(name=call.name, success=result.success))
                logger.debug(f"Tool call {call.name}: success={result.success}")

                new_messages.append(Message.assistant(
                    f"Tool call: {call.name} with arguments: "
                    f"{json.dumps(call.arguments, indent=2, ensure_ascii=False, default=str)}"
                ))
                new_messages.append(Message.tool(
                    f"Tool result for {call.name}: "
                    f"{json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str)}"
                ))

        raise MaxToolIterationsExceeded(f"No final reply after {self.max_iterations} provider rounds")
