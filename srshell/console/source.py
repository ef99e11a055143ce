"""Interactive console input, powered by prompt_toolkit."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterator, Optional

import structlog
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import CompleteEvent, Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings, KeyPressEvent

from ..protocol.framing import is_block_header
from ..protocol.messages import Sentence, SyntaxState
from ..protocol.transport import SentenceSource

if TYPE_CHECKING:
    from ..session.shell import Shell

logger = structlog.get_logger()

# Zero-width and invisible characters to strip from input.
_INVISIBLE_RE = re.compile("[\u200b\u200c\u200d\ufeff\u00a0\r]")


def _normalize(text: str) -> str:
    return _INVISIBLE_RE.sub("", text)


def _compute_indent(text: str) -> str:
    """Compute the auto-indent prefix for the next continuation line."""
    last = text.split("\n")[-1]

    if is_block_header(last):
        existing = len(last) - len(last.lstrip())
        return " " * (existing + 4)

    if last.strip():
        return " " * (len(last) - len(last.lstrip()))

    return ""


class ShellCompleter(Completer):
    """Completes dotted expressions against the shell's live values."""

    def __init__(self, shell: Shell) -> None:
        self._shell = shell

    def get_completions(self, document: Document, complete_event: CompleteEvent) -> Iterator[Completion]:
        text = document.text_before_cursor
        result = self._shell.complete(text)
        typed = len(text) - result.insertion_offset
        for candidate in result.candidates:
            yield Completion(candidate, start_position=-typed)


class ConsoleSentenceSource(SentenceSource):
    """Reads statements from the terminal.

    A single line is submitted on Enter unless it opens a block or the engine
    needs more input. Once a statement spans several lines, an empty line
    submits it.
    """

    def __init__(self, shell: Shell, session: Optional[PromptSession] = None) -> None:
        self._shell = shell
        self._session = session or self._create_session()

    def _needs_more(self, text: str) -> bool:
        return is_block_header(text) or self._shell.check_syntax(text) is SyntaxState.INTERMEDIATE

    def _create_session(self) -> PromptSession:
        bindings = KeyBindings()

        @bindings.add("enter")
        def _enter(event: KeyPressEvent) -> None:
            buf = event.app.current_buffer
            text = buf.text

            if "\n" not in text:
                if self._needs_more(text):
                    buf.insert_text("\n" + _compute_indent(text))
                    return
                buf.validate_and_handle()
                return

            # Multiline: an empty last line submits
            lines = text.split("\n")
            if lines[-1].strip() == "":
                buf.text = "\n".join(lines[:-1])
                buf.cursor_position = len(buf.text)
                buf.validate_and_handle()
                return

            buf.insert_text("\n" + _compute_indent(text))

        return PromptSession(
            history=InMemoryHistory(),
            completer=ShellCompleter(self._shell),
            complete_while_typing=False,
            key_bindings=bindings,
            multiline=True,
            prompt_continuation=self._shell.config.continuation_prompt,
        )

    def read_statement(self, line_number: int) -> Optional[Sentence]:
        while True:
            try:
                text = self._session.prompt(self._shell.config.prompt)
            except EOFError:
                self._shell.print_out("")
                return None
            except KeyboardInterrupt:
                self._shell.print_err("KeyboardInterrupt")
                continue

            text = _normalize(text)
            if not text.strip():
                continue
            return Sentence(text=text, start_line=line_number, next_line=line_number + text.count("\n") + 1)

    def read_all(self, line_number: int) -> Optional[Sentence]:
        """Read statements until end of input and return them as one unit."""
        statements = []
        next_line = line_number
        while True:
            sentence = self.read_statement(next_line)
            if sentence is None:
                break
            statements.append(sentence.text)
            next_line = sentence.next_line

        if not statements:
            return None
        logger.debug("Console input collected", statements=len(statements))
        return Sentence(text="\n".join(statements), start_line=line_number, next_line=next_line)
