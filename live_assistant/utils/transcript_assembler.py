"""
Turn-based transcript assembly.

The remote service streams transcription as incremental fragments
(" What", " is", " the", ...) for both the user's speech and the
assistant's. Fragments are concatenated per role until the turn completes;
only then do they become transcript entries.
"""

import time
from typing import Callable, Dict, List, Optional

from ..models.data_models import MessageRole, TranscriptionEntry


class TranscriptionAssembler:
    """Accumulates partial text per role for the current turn."""

    # Flush order is fixed so history is deterministic regardless of which
    # role's fragments arrived first.
    FLUSH_ORDER = (MessageRole.USER, MessageRole.ASSISTANT)

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._buffers: Dict[MessageRole, str] = {role: '' for role in self.FLUSH_ORDER}

    def append_partial(self, role: MessageRole, text_delta: str) -> None:
        """Concatenate a fragment onto the role's accumulator."""
        if not text_delta:
            return
        self._buffers[MessageRole(role)] += text_delta

    def pending(self, role: MessageRole) -> str:
        """Text accumulated so far for `role` in the current turn."""
        return self._buffers[MessageRole(role)]

    @property
    def has_pending(self) -> bool:
        return any(self._buffers.values())

    def flush_turn(self) -> List[TranscriptionEntry]:
        """
        Finalize the current turn.

        Returns:
            0, 1 or 2 entries, user before assistant; empty text never
            produces an entry. Both accumulators are cleared in every case.
        """
        timestamp = self._clock()
        entries = []
        for role in self.FLUSH_ORDER:
            text = self._buffers[role].strip()
            if text:
                entries.append(TranscriptionEntry(role=role, text=text, timestamp=timestamp))
        self.clear()
        return entries

    def clear(self) -> None:
        for role in self.FLUSH_ORDER:
            self._buffers[role] = ''
