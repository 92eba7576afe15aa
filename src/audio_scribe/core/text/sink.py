from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable, Protocol, TextIO


class TextSink(Protocol):
    def insert_text(self, text: str) -> None: ...


@dataclass(slots=True)
class StreamTextSink:
    """Writes transcribed text to a stream, as if typed at the cursor."""

    stream: TextIO = field(default_factory=lambda: sys.stdout)

    def insert_text(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()


@dataclass(slots=True)
class CallbackTextSink:
    insert: Callable[[str], None]

    def insert_text(self, text: str) -> None:
        self.insert(text)
