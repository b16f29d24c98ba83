"""Utility modules for chat_engine."""

from .logging import setup_logging

__all__ = ["setup_logging"]
