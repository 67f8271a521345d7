"""Core WordPress client functionality shared by the CLI and watch mode."""

from .async_utils import run_sync
from .client import WordPressClient

__all__ = ["WordPressClient", "run_sync"]
