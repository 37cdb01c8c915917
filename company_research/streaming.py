"""Split streamed model output into report text and `<think>` reasoning."""
from __future__ import annotations

from collections.abc import Callable

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


class ThinkTagStreamDecoder:
    """Classify each streamed character range as content or reasoning.

    Tags may be split across chunks, so a trailing partial tag is held back
    until the next chunk (or `flush`) decides what it was.
    """

    def __init__(self, on_content: Callable[[str], None], on_reasoning: Callable[[str], None] | None = None):
        self.on_content = on_content
        self.on_reasoning = on_reasoning
        self.in_think = False
        self._pending = ""
        self.content: list[str] = []
        self.reasoning: list[str] = []

    def feed(self, chunk: str) -> None:
        buffer = self._pending + chunk
        self._pending = ""

        while buffer:
            tag = THINK_CLOSE if self.in_think else THINK_OPEN
            idx = buffer.find(tag)
            if idx >= 0:
                self._emit(buffer[:idx])
                self.in_think = not self.in_think
                buffer = buffer[idx + len(tag):]
                continue

            hold = _partial_suffix(buffer, tag)
            self._emit(buffer[: len(buffer) - hold])
            self._pending = buffer[len(buffer) - hold:] if hold else ""
            break

    def flush(self) -> None:
        if self._pending:
            pending, self._pending = self._pending, ""
            self._emit(pending)

    @property
    def text(self) -> str:
        return "".join(self.content)

    def _emit(self, text: str) -> None:
        if not text:
            return
        if self.in_think:
            self.reasoning.append(text)
            if self.on_reasoning:
                self.on_reasoning(text)
        else:
            self.content.append(text)
            self.on_content(text)


def _partial_suffix(buffer: str, tag: str) -> int:
    """Length of the longest suffix of `buffer` that is a proper prefix of `tag`."""
    for size in range(min(len(tag) - 1, len(buffer)), 0, -1):
        if buffer.endswith(tag[:size]):
            return size
    return 0
