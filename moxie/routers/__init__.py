"""API routers package."""

from .chat import router as chat_router
from .conversations import router as conversations_router
from .health import router as health_router
from .plugins import router as plugins_router
from .providers import router as providers_router
from .tools import router as tools_router

__all__ = [
    "chat_router",
    "conversations_router",
    "health_router",
    "plugins_router",
    "providers_router",
    "tools_router",
]
