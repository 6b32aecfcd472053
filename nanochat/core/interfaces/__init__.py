"""
Core Interfaces Module

Protocols for the persistence collaborators, enabling dependency injection
and testability.

Components:
-----------
- **store.py**: ChatStore (conversations, messages, user configuration)
  and FileStorage (media bytes)
"""

from nanochat.core.interfaces.store import ChatStore, FileStorage

__all__ = ["ChatStore", "FileStorage"]
