"""Deskpilot - an autonomous desktop agent driven by interchangeable LLM backends."""

__version__ = "0.1.0"

from deskpilot.config import Config

__all__ = ["Config", "__version__"]
