"""Statement framing: where one statement ends in a buffer of physical lines."""

from __future__ import annotations

import io
import re
import tokenize
from typing import Callable, Optional

import structlog

from .messages import SyntaxState

logger = structlog.get_logger()

# Clauses that continue a compound statement at its own indentation level.
_CONTINUATION_RE = re.compile(r"(elif|else|except|finally)\b")

_DEPTH_OPEN = {"(", "[", "{"}
_DEPTH_CLOSE = {")", "]", "}"}
_LAYOUT = {
    tokenize.NEWLINE,
    tokenize.NL,
    tokenize.INDENT,
    tokenize.DEDENT,
    tokenize.COMMENT,
    tokenize.ENDMARKER,
}


def is_blank(line: str) -> bool:
    """Return True for empty and comment-only lines."""
    stripped = line.strip()
    return not stripped or stripped.startswith("#")


def continues_statement(line: str) -> bool:
    """Return True if *line* belongs to the statement above it."""
    if is_blank(line):
        return False
    if line[0] in " \t":
        return True
    return _CONTINUATION_RE.match(line) is not None


def is_block_header(line: str) -> bool:
    """Return True if *line* ends with a block-opening colon at depth 0."""
    try:
        tokens = list(tokenize.generate_tokens(io.StringIO(line).readline))
    except (tokenize.TokenError, SyntaxError):
        return False

    depth = 0
    last_sig = None
    for tok in tokens:
        if tok.type in _LAYOUT:
            continue
        if tok.string in _DEPTH_OPEN:
            depth += 1
        elif tok.string in _DEPTH_CLOSE:
            depth = max(depth - 1, 0)
        if depth == 0:
            last_sig = tok.string

    return depth == 0 and last_sig == ":"


class LineBuffer:
    """Physical lines pulled on demand from a ``readline`` callable."""

    def __init__(self, readline: Callable[[], str]) -> None:
        self._readline = readline
        self._lines: list[str] = []
        self._eof = False

    @classmethod
    def from_text(cls, text: str) -> LineBuffer:
        return cls(io.StringIO(text).readline)

    def line(self, index: int) -> Optional[str]:
        """Return line *index* without its line break, or None past the end."""
        while len(self._lines) <= index and not self._eof:
            raw = self._readline()
            if not raw:
                self._eof = True
                break
            self._lines.append(raw.rstrip("\r\n"))
        if index < len(self._lines):
            return self._lines[index]
        return None

    def join(self, start: int, end: int) -> str:
        return "\n".join(self._lines[start:end])


class StatementFramer:
    """Splits buffered physical lines into syntactically bounded statements.

    Leading blank lines are kept in front of the statement that follows them so
    that the statement's first line is still the caller's current line number.
    """

    def __init__(self, check_syntax: Callable[[str], SyntaxState]) -> None:
        self._check_syntax = check_syntax

    def _skip_blank(self, lines: LineBuffer, index: int) -> int:
        while True:
            line = lines.line(index)
            if line is None or not is_blank(line):
                return index
            index += 1

    def frame(self, lines: LineBuffer, start: int) -> int:
        """Return the exclusive end index of the statement starting at *start*.

        Returns *start* itself when only blank lines remain.
        """
        end = self._skip_blank(lines, start)
        if lines.line(end) is None:
            return start

        while lines.line(end) is not None:
            end += 1
            state = self._check_syntax(lines.join(start, end))
            if state is SyntaxState.INTERMEDIATE:
                continue
            if state is SyntaxState.ERROR:
                logger.debug("Statement has a syntax error", start=start, end=end)
                return end

            following = self._skip_blank(lines, end)
            upcoming = lines.line(following)
            if upcoming is not None and continues_statement(upcoming):
                end = following
                continue
            return end

        return end

    def frame_all(self, lines: LineBuffer, start: int) -> int:
        """Return the exclusive end index of everything from *start* on.

        Returns *start* itself when only blank lines remain.
        """
        end = start
        while lines.line(end) is not None:
            end += 1
        if lines.line(self._skip_blank(lines, start)) is None:
            return start
        return end
