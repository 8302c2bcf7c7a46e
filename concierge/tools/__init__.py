"""Tool framework: import tool modules here to register them."""

from concierge.tools import marketplace_tools  # noqa: F401
from concierge.tools.registry import registry

__all__ = ["registry"]
