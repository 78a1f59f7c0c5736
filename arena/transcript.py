"""Per-side accumulator of transcription fragments."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class TranscriptBuffer:
    """
    Collects incremental transcription fragments for one debater.

    `pending_text` grows until the turn completes; `flush()` hands it back and
    moves it into `committed_log`. The buffer is owned by one side of the
    orchestrator and is only touched from that side's event handlers.
    """

    def __init__(self, side: str) -> None:
        self.side = side
        self.pending_text = ""
        self.committed_log = ""

    def append(self, fragment: str) -> None:
        self.pending_text += fragment

    def flush(self) -> str:
        """Return and clear the pending text, committing it to the log."""
        text = self.pending_text
        self.pending_text = ""
        if text.strip():
            # One line per turn in the committed log.
            if self.committed_log:
                self.committed_log += "\n"
            self.committed_log += text
            logger.debug(f"TranscriptBuffer({self.side}): flushed {len(text)} chars")
        return text

    def clear(self) -> None:
        """Drop any partial turn without committing it."""
        if self.pending_text:
            logger.debug(
                f"TranscriptBuffer({self.side}): discarding {len(self.pending_text)} pending chars"
            )
        self.pending_text = ""

    def reset(self) -> None:
        self.pending_text = ""
        self.committed_log = ""

    def __repr__(self) -> str:
        return (
            f"TranscriptBuffer(side={self.side!r}, pending={len(self.pending_text)}, "
            f"committed={len(self.committed_log)})"
        )


__all__ = ["TranscriptBuffer"]
