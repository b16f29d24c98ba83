"""
Delta Reconciler

Merges streamed fragments into one growing string per conversation turn.

Some backends re-send the tail of what they already emitted at the start of
the next fragment ("Okay Okay so so", "<think><think>"). Each new fragment is
trimmed by the longest suffix of the accumulated text (within a lookback
window) that it starts with, and repeated reasoning markers inside the
fragment are collapsed before it is appended.

This only removes echo at the seam between accumulated text and the new
fragment. Duplication inside a single fragment is left alone.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from chat_engine.config import OVERLAP_WINDOW, REASONING_CLOSE_TAG, REASONING_OPEN_TAG

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of merging one fragment."""

    text: str  # accumulated text after the merge
    appended: str  # what was actually added
    overlap: int  # characters dropped from the head of the fragment

    @property
    def changed(self) -> bool:
        return bool(self.appended)


@lru_cache(maxsize=16)
def _repeat_pattern(tag: str) -> re.Pattern[str]:
    return re.compile(f"(?:{re.escape(tag)}){{2,}}")


def overlap_length(prev: str, fragment: str, window: int = OVERLAP_WINDOW) -> int:
    """
    Length of the longest suffix of ``prev`` that ``fragment`` starts with.

    The search starts at min(window, len(prev), len(fragment)) and walks down
    to 1; the first match wins.

    Examples:
        overlap_length("...The quick", "quick brown fox") -> 5
        overlap_length("abc", "xyz") -> 0
    """
    if not prev or not fragment or window <= 0:
        return 0
    tail = prev[-window:]
    for length in range(min(len(tail), len(fragment)), 0, -1):
        if tail[-length:] == fragment[:length]:
            return length
    return 0


def trim_overlap(prev: str, fragment: str, window: int = OVERLAP_WINDOW) -> str:
    """Drop the part of fragment that repeats the end of prev."""
    return fragment[overlap_length(prev, fragment, window) :]


def collapse_markers(
    fragment: str, open_tag: str = REASONING_OPEN_TAG, close_tag: str = REASONING_CLOSE_TAG
) -> str:
    """Collapse runs of repeated open/close markers into a single marker each."""
    for tag in (open_tag, close_tag):
        if tag:
            fragment = _repeat_pattern(tag).sub(lambda _match, tag=tag: tag, fragment)
    return fragment


def reconcile(
    prev: str,
    fragment: str,
    window: int = OVERLAP_WINDOW,
    open_tag: str = REASONING_OPEN_TAG,
    close_tag: str = REASONING_CLOSE_TAG,
) -> ReconcileResult:
    """
    Merge one fragment into accumulated text.

    Args:
        prev: Text accumulated so far (never rewritten)
        fragment: Newly arrived fragment
        window: Lookback window for overlap detection

    Returns:
        ReconcileResult; ``changed`` is False when nothing was appended
    """
    prev = prev or ""
    if not fragment:
        return ReconcileResult(text=prev, appended="", overlap=0)

    overlap = overlap_length(prev, fragment, window)
    appended = collapse_markers(fragment[overlap:], open_tag, close_tag)
    if not appended:
        return ReconcileResult(text=prev, appended="", overlap=overlap)
    return ReconcileResult(text=prev + appended, appended=appended, overlap=overlap)


class DeltaReconciler:
    """
    Holds the accumulated text of one turn and merges fragments into it.

    Simple API:
        reconciler = DeltaReconciler()
        reconciler.append("The quick")
        reconciler.append("quick brown fox")
        reconciler.text  # "The quick brown fox"

    Callbacks:
        reconciler.on_change = lambda text: render(text)

    ``on_change`` fires only when text was actually appended.
    """

    def __init__(
        self,
        text: str = "",
        window: int = OVERLAP_WINDOW,
        open_tag: str = REASONING_OPEN_TAG,
        close_tag: str = REASONING_CLOSE_TAG,
    ):
        self._text = text or ""
        self._window = window
        self._open_tag = open_tag
        self._close_tag = close_tag
        self.fragments_seen = 0
        self.chars_dropped = 0

        self.on_change: Callable[[str], None] | None = None

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def append(self, fragment: str) -> str:
        """
        Merge a fragment.

        Returns:
            The text actually appended ("" when the fragment was pure echo)
        """
        self.fragments_seen += 1
        result = reconcile(self._text, fragment, self._window, self._open_tag, self._close_tag)
        if result.overlap:
            self.chars_dropped += result.overlap
            logger.debug(f"[OVERLAP] dropped {result.overlap} echoed chars")
        if not result.changed:
            return ""

        self._text = result.text
        if self.on_change:
            try:
                self.on_change(self._text)
            except Exception:
                logger.exception("on_change callback failed")
        return result.appended

    def reset(self, text: str = "") -> None:
        """Start over from text (no callback)."""
        self._text = text or ""
        self.fragments_seen = 0
        self.chars_dropped = 0
