"""Data transformation nodes."""

from .set_node import SetNode

__all__ = ["SetNode"]
