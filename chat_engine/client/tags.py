"""
Reasoning Tag Parser

Splits an assistant transcript into a "reasoning" part (the text inside the
first <think>...</think> block) and the visible answer.

The parser is stateless: it is re-run on the full accumulated text after every
delta, so it has to cope with a block that is still being streamed (open
marker seen, close marker not yet).

Usage:
    result = parse("<think>plan</think>Hello")
    result.reasoning  # "plan"
    result.visible    # "Hello"
    result.is_open    # False
"""

from __future__ import annotations

from dataclasses import dataclass

from chat_engine.config import REASONING_CLOSE_TAG, REASONING_OPEN_TAG


@dataclass(frozen=True)
class TagParseResult:
    """Renderable split of one assistant transcript."""

    visible: str
    reasoning: str | None = None
    is_open: bool = False

    @property
    def has_reasoning(self) -> bool:
        return bool(self.reasoning)


def strip_markers(
    text: str, open_tag: str = REASONING_OPEN_TAG, close_tag: str = REASONING_CLOSE_TAG
) -> str:
    """Remove every open and close marker from text."""
    return text.replace(open_tag, "").replace(close_tag, "")


def parse(
    text: str, open_tag: str = REASONING_OPEN_TAG, close_tag: str = REASONING_CLOSE_TAG
) -> TagParseResult:
    """
    Split text into reasoning and visible parts.

    Only the first open/close pair is a reasoning block. Markers found
    anywhere else are stripped.

    Args:
        text: Full accumulated assistant text
        open_tag: Marker that opens a reasoning block
        close_tag: Marker that closes it

    Returns:
        TagParseResult; ``is_open`` is True while the block is unterminated
    """
    if not open_tag or not close_tag:
        raise ValueError("open_tag and close_tag must be non-empty")

    text = text or ""
    open_idx = text.find(open_tag)
    if open_idx == -1:
        return TagParseResult(visible=strip_markers(text, open_tag, close_tag))

    body_start = open_idx + len(open_tag)
    close_idx = text.find(close_tag, body_start)
    if close_idx == -1:
        # Still streaming the block
        return TagParseResult(
            visible=strip_markers(text[:open_idx], open_tag, close_tag).strip(),
            reasoning=strip_markers(text[body_start:], open_tag, close_tag).strip(),
            is_open=True,
        )

    visible = text[:open_idx] + text[close_idx + len(close_tag) :]
    return TagParseResult(
        visible=strip_markers(visible, open_tag, close_tag).strip(),
        reasoning=strip_markers(text[body_start:close_idx], open_tag, close_tag).strip(),
        is_open=False,
    )
