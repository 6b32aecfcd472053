"""
Cancellation Registry

Maps a conversation id to the cancellation handle of its in-flight
generation. The HTTP cancel endpoint signals the handle; the background run
checks it cooperatively (before start, before opening the stream, before
every chunk and before every media poll).

Invariants:
- At most one handle per conversation id
- `cancel` on an absent id is a no-op returning False
- `release` is idempotent; with a handle it only removes that exact handle,
  so a late release from a finished run can never evict a newer run

The registry is process-local. A multi-process deployment would implement
the same protocol over a shared backend.
"""

import asyncio
from typing import Protocol, runtime_checkable

from nanochat.core.config.constants import Stage
from nanochat.core.exceptions import GenerationInProgressError
from nanochat.core.logging import get_logger, log_stage

logger = get_logger(__name__)


class CancellationHandle:
    """Cooperative cancellation token for one run."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def __repr__(self) -> str:
        return f"CancellationHandle(conversation_id='{self.conversation_id}', cancelled={self.cancelled})"


@runtime_checkable
class CancellationRegistry(Protocol):
    def register(self, conversation_id: str) -> CancellationHandle:
        ...

    def cancel(self, conversation_id: str) -> bool:
        ...

    def release(self, conversation_id: str, handle: CancellationHandle | None = None) -> None:
        ...

    def is_active(self, conversation_id: str) -> bool:
        ...

    def active_count(self) -> int:
        ...


class InMemoryCancellationRegistry:
    """Dict-backed registry for a single process."""

    def __init__(self):
        self._handles: dict[str, CancellationHandle] = {}

    def register(self, conversation_id: str) -> CancellationHandle:
        """
        Register a new handle for a conversation.

        Raises:
            GenerationInProgressError: If a handle is already registered
        """
        if conversation_id in self._handles:
            raise GenerationInProgressError(
                "A generation is already in progress for this conversation",
                conversation_id=conversation_id,
            )
        handle = CancellationHandle(conversation_id)
        self._handles[conversation_id] = handle
        return handle

    def cancel(self, conversation_id: str) -> bool:
        """
        Signal the handle of a conversation and remove it.

        Returns:
            True if a run was signalled, False if nothing was registered
        """
        handle = self._handles.pop(conversation_id, None)
        if handle is None:
            return False
        handle.cancel()
        log_stage(logger, Stage.CANCELLATION, "Generation cancelled", conversation_id=conversation_id)
        return True

    def release(self, conversation_id: str, handle: CancellationHandle | None = None) -> None:
        current = self._handles.get(conversation_id)
        if current is None:
            return
        if handle is not None and current is not handle:
            return
        del self._handles[conversation_id]

    def is_active(self, conversation_id: str) -> bool:
        return conversation_id in self._handles

    def active_count(self) -> int:
        return len(self._handles)
