"""Moxie - a chat service with pluggable providers and tool plugins."""

__version__ = "0.3.0"
