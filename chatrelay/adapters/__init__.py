"""Messaging adapters connecting the relay to chat platforms."""

from chatrelay.adapters.base import BaseAdapter

__all__ = ["BaseAdapter"]
