from __future__ import annotations

import io
from abc import ABC, abstractmethod
from typing import Callable, Optional, TextIO

import structlog

from .framing import LineBuffer, StatementFramer
from .messages import Sentence, SyntaxState

logger = structlog.get_logger()


class SentenceSource(ABC):
    """Supplies logical units of script input to a shell.

    Both read methods return ``None`` once no more input is available. A
    returned :class:`Sentence` carries the line number that follows it.
    """

    @abstractmethod
    def read_statement(self, line_number: int) -> Optional[Sentence]:
        """Read one syntactically bounded statement starting at *line_number*."""

    @abstractmethod
    def read_all(self, line_number: int) -> Optional[Sentence]:
        """Read all remaining input starting at *line_number*."""


class BufferSentenceSource(SentenceSource):
    """Sentence source over a text buffer or a line-oriented stream.

    Lines are pulled from the stream only as far as statement framing needs,
    so a pipe can feed the shell while the script is running.
    """

    def __init__(
        self,
        readline: Callable[[], str],
        check_syntax: Callable[[str], SyntaxState],
    ) -> None:
        self._lines = LineBuffer(readline)
        self._framer = StatementFramer(check_syntax)
        self._position = 0

    @classmethod
    def from_text(
        cls, text: str, check_syntax: Callable[[str], SyntaxState]
    ) -> BufferSentenceSource:
        return cls(io.StringIO(text).readline, check_syntax)

    @classmethod
    def from_stream(
        cls, stream: TextIO, check_syntax: Callable[[str], SyntaxState]
    ) -> BufferSentenceSource:
        return cls(stream.readline, check_syntax)

    @property
    def position(self) -> int:
        """Index of the next unread physical line."""
        return self._position

    def read_statement(self, line_number: int) -> Optional[Sentence]:
        end = self._framer.frame(self._lines, self._position)
        return self._take(end, line_number)

    def read_all(self, line_number: int) -> Optional[Sentence]:
        end = self._framer.frame_all(self._lines, self._position)
        return self._take(end, line_number)

    def _take(self, end: int, line_number: int) -> Optional[Sentence]:
        start = self._position
        if end == start:
            return None
        self._position = end
        consumed = end - start
        logger.debug("Sentence read", start_line=line_number, lines=consumed)
        return Sentence(
            text=self._lines.join(start, end),
            start_line=line_number,
            next_line=line_number + consumed,
        )
