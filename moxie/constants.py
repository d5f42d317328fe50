"""Global constants for the Moxie service."""

import os
from pathlib import Path

# Directory paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent

DATA_DIR = Path(os.getenv("MOXIE_DATA_DIR", str(PROJECT_ROOT / "data")))
PLUGINS_DATA_DIR = DATA_DIR / "plugins"               # per-plugin data_dir root

PLUGINS_DIR = Path(os.getenv("MOXIE_PLUGINS_DIR", str(PROJECT_ROOT / "plugins")))
BUNDLED_PLUGINS_DIR = PLUGINS_DIR / "bundled"
PLUGIN_CONFIG_FILE = PLUGINS_DIR / "config.json"

# Server
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "3000"))

# Chat defaults
DEFAULT_PROVIDER = os.getenv("MOXIE_DEFAULT_PROVIDER", "ollama")
# Model override for the startup provider; empty keeps its preset
DEFAULT_MODEL = os.getenv("MOXIE_DEFAULT_MODEL", "")

# Upper bound of provider rounds in one chat request
MAX_TOOL_ITERATIONS = 10

# Seconds shutdown waits for in-flight tool calls of a plugin
PLUGIN_DRAIN_TIMEOUT = float(os.getenv("PLUGIN_DRAIN_TIMEOUT", "10"))

DEBUG = os.getenv("MOXIE_DEBUG", "").lower() in ("1", "true", "yes", "on")

# Stored messages sent to the provider per request (system prompt excluded)
MAX_CONTEXT_MESSAGES = int(os.getenv("MOXIE_MAX_CONTEXT_MESSAGES", "50"))

# Idle seconds before a stored conversation is dropped; 0 keeps them forever
CONVERSATION_TIMEOUT = int(os.getenv("MOXIE_CONVERSATION_TIMEOUT", "3600"))

# SQLite file holding persisted conversations
CONVERSATION_DB = Path(os.getenv("MOXIE_CONVERSATION_DB", str(DATA_DIR / "conversations.db")))
