"""Shared utilities for Herald CLI commands."""

from rich.console import Console

from herald.config import load_settings
from herald.main import create_store

console = Console()


def open_store():
    """Settings and a conversation store for the configured data directory."""
    settings = load_settings()
    return settings, create_store(settings)
