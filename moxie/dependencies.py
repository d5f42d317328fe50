"""Dependency injection for routers.

The runtime lives on ``app.state``; tests can build their own app with a
separate runtime instead of resetting globals.
"""

from fastapi import HTTPException, Request

from moxie.conversation.store import ConversationStore
from moxie.plugins.executor import ToolExecutor
from moxie.plugins.loader import PluginLoader
from moxie.runtime import MoxieRuntime
from moxie.services.chat_service import ChatService


def get_runtime(request: Request) -> MoxieRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return runtime


def get_loader(request: Request) -> PluginLoader:
    return get_runtime(request).loader


def get_executor(request: Request) -> ToolExecutor:
    return get_runtime(request).executor


def get_chat_service(request: Request) -> ChatService:
    return get_runtime(request).chat_service


def get_conversation_store(request: Request) -> ConversationStore:
    return get_runtime(request).store
