"""Read-evaluate-print driver in front of a script engine."""

from __future__ import annotations

import functools
import sys
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, TextIO, Tuple, Union

import structlog

from ..engine.base import Engine
from ..engine.constants import DEFAULT_SOURCE_NAME, SRSHELL_VERSION
from ..engine.executor import PythonEngine
from ..protocol.messages import (
    UNDEFINED,
    CompletionRequest,
    CompletionResult,
    EvaluationOutcome,
    RunMode,
    Sentence,
    SyntaxState,
)
from ..protocol.transport import SentenceSource
from .binding import EngineBinding
from .completion import CompletionResolver
from .config import ShellConfig

logger = structlog.get_logger()

FinishedCallback = Callable[[int], None]

HELP_TEMPLATE = """\
List of basic commands:
    error([message, ...])    print the messages to the standard error.
    exit()                   exit the shell with exit code 0 (zero).
    exit(code)               exit the shell with the given exit code.
    getFromEnvironment(name) return the value of the environment variable
                             'name', or None if it is not set.
    help()                   return this help text.
    importExtension([name, ...])
                             import the named extensions into the global
                             namespace.
    load([filename, ...])    run the given Python files inside the current
                             shell.
    print([message, ...])    print the messages to the standard output.
    quit()                   exit the shell with exit code 0 (zero).
    read([message, ...])     print the messages, then read a line from the
                             standard input.
    readFile(name)           return the whole content of a file.
    runCommand(command, [arg, ...] [options])
                             run the command with the given arguments and
                             options as a separate process and return its
                             exit status. See runCommand usage below.
    runCommand(options)      run the command named in the options mapping.

List of basic properties (read-only):
    arguments                arguments given on the command line after the
                             script name.
    availableExtensions      extensions that importExtension can find.
    importedExtensions       extensions imported so far.
    pythonVersion            version of the Python runtime in use.
    srVersion                version of the shell, {version}.

All of them are reachable through sr.engine; with the global policy they are
also plain globals.

runCommand() usage:
    runCommand(command)
    runCommand(command, arg1, ..., argN)
    runCommand(command, arg1, ..., argN, options)
    runCommand(options)

    Every argument except a trailing dict is converted to a string. A trailing
    dict is the options mapping and is updated in place:
    * args     additional command arguments.
    * env      variables added to the child's environment.
    * input    text written to the child's standard input.
    * output   the child's standard output is appended to this value.
    * err      the child's standard error is appended to this value.
    * command  command name, used when none is passed positionally.
    * result   set to the exit status of the child.

    The exit status is -1 when the command could not be started and -2 when
    it crashed or timed out.
"""


@dataclass
class ShellState:
    line_number: int = 1
    initialized: bool = False
    use_global_engine: bool = True
    exit_requested: bool = False
    exit_code: int = 0
    source_name: str = DEFAULT_SOURCE_NAME
    arguments: Tuple[str, ...] = field(default_factory=tuple)


class Shell:
    """Drives one engine over a sentence source in one of five run modes.

    The engine is initialized lazily, on the first run or the first access to
    :attr:`engine`. Output goes through the ``print_*`` hooks, which front
    ends override to redirect it.
    """

    def __init__(
        self,
        engine_factory: Optional[Callable[[], Engine]] = None,
        config: Optional[ShellConfig] = None,
        source: Optional[SentenceSource] = None,
        on_finished: Optional[FinishedCallback] = None,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.config = config or ShellConfig()
        self.state = ShellState(
            use_global_engine=self.config.use_global_engine,
            source_name=self.config.source_name,
            arguments=tuple(self.config.arguments),
        )
        self.source = source
        self.on_finished = on_finished
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr

        self._engine_factory = engine_factory or functools.partial(
            PythonEngine, self.config.extension_group
        )
        self._binding = EngineBinding(self, self.state.use_global_engine)
        self._engine = self._create_engine()
        self._engine.event_throttle = self.config.event_throttle

    def _create_engine(self) -> Engine:
        engine = self._engine_factory()
        engine.process_events = self.process_events
        return engine

    # Engine lifecycle

    @property
    def engine(self) -> Engine:
        """The script engine, initialized on first access."""
        self._ensure_initialized()
        return self._engine

    def _ensure_initialized(self) -> None:
        if self.state.initialized:
            return
        # Set first: installing reads host properties that may reach back here
        self.state.initialized = True
        self._binding.use_global_engine = self.state.use_global_engine
        self._binding.install(self._engine)

    @property
    def is_engine_initialized(self) -> bool:
        return self.state.initialized

    def reset(self) -> None:
        """Replace the engine with a fresh one, keeping the event throttle."""
        throttle = self._engine.event_throttle
        self._engine.close()
        self._engine = self._create_engine()
        self._engine.event_throttle = throttle
        self.state.initialized = False
        self.state.exit_requested = False
        self.state.line_number = 1
        logger.info("Shell reset", event_throttle=throttle)

    def process_events(self) -> None:
        """Called by the engine every ``event_throttle`` steps; does nothing by default."""

    # Running

    def run(self, mode: Union[RunMode, str], source: Optional[SentenceSource] = None) -> int:
        """Run in *mode* over *source* (or the shell's own) and return the exit code."""
        mode = RunMode(mode)
        source = source if source is not None else self.source
        if source is None:
            raise ValueError("Shell has no sentence source")

        self._ensure_initialized()
        self.state.exit_requested = False
        self.state.exit_code = 0
        logger.info("Run started", mode=mode.value, line=self.state.line_number)

        if mode.loops:
            self._run_loop(source, mode)
        else:
            self._run_once(source, mode)

        logger.info(
            "Run finished",
            mode=mode.value,
            exit_code=self.state.exit_code,
            exit_called=self.state.exit_requested,
        )
        return self.state.exit_code

    def _run_loop(self, source: SentenceSource, mode: RunMode) -> None:
        while not self.state.exit_requested:
            sentence = source.read_statement(self.state.line_number)
            if sentence is None:
                self._finish()
                return
            self._evaluate(sentence, mode)

    def _run_once(self, source: SentenceSource, mode: RunMode) -> None:
        read = source.read_all if mode.reads_all else source.read_statement
        sentence = read(self.state.line_number)
        if sentence is None:
            self._finish()
            return
        self._evaluate(sentence, mode)
        if mode.reads_all:
            self._finish()

    def _evaluate(self, sentence: Sentence, mode: RunMode) -> EvaluationOutcome:
        start_line = self.state.line_number
        self.state.line_number = sentence.next_line
        outcome = self._engine.evaluate(sentence.text, self.state.source_name, start_line)
        if outcome.has_uncaught_exception:
            self.print_uncaught_exception(outcome)
        elif mode.prints_results and outcome.result_value is not UNDEFINED:
            self.print_result(outcome.result_value)
        return outcome

    def _finish(self) -> None:
        if not self.state.exit_requested:
            self._notify_finished(0)

    def _notify_finished(self, code: int) -> None:
        if self.on_finished is not None:
            self.on_finished(code)

    def exit(self, code: int = 0) -> None:
        """Request the run to stop once the current evaluation completes."""
        self.state.exit_requested = True
        self.state.exit_code = int(code)
        logger.info("Exit requested", exit_code=self.state.exit_code)
        self._notify_finished(self.state.exit_code)

    def load_file(self, filename: str) -> None:
        """Evaluate *filename* in the current engine, re-raising its uncaught exception."""
        with open(filename, encoding=self.config.encoding) as f:
            text = f.read()
        outcome = self._engine.evaluate(text, filename, 1)
        if outcome.has_uncaught_exception:
            exc = outcome.exception_value
            if isinstance(exc, BaseException):
                raise exc
            raise RuntimeError(f"{filename}:{outcome.exception_line}: {exc!r}")

    # Syntax and completion

    def check_syntax(self, text: str) -> SyntaxState:
        return self._engine.check_syntax(text)

    def is_complete_sentence(self, text: str) -> bool:
        return self._engine.check_syntax(text) is not SyntaxState.INTERMEDIATE

    def complete(self, expression: Union[CompletionRequest, str]) -> CompletionResult:
        engine = self.engine
        resolver = CompletionResolver(engine.enumerate_properties, engine.reserved_literals)
        return resolver.complete(expression, engine.current_context())

    def help_message(self) -> str:
        return HELP_TEMPLATE.format(version=self.version)

    # Output hooks

    def _write(self, stream: TextIO, value: Any, last: bool) -> None:
        stream.write(value if isinstance(value, str) else repr(value))
        if last:
            stream.write("\n")
            stream.flush()
        else:
            stream.write(" ")

    def print_out(self, value: Any, last: bool = True) -> None:
        self._write(self.stdout, value, last)

    def print_err(self, value: Any, last: bool = True) -> None:
        self._write(self.stderr, value, last)

    def print_result(self, value: Any) -> None:
        self.print_out(value)

    def print_uncaught_exception(self, outcome: EvaluationOutcome) -> None:
        exc = outcome.exception_value
        if self.config.show_backtrace and outcome.backtrace:
            self.stderr.write("Traceback (most recent call last):\n")
            self.stderr.writelines(outcome.backtrace)
        elif outcome.exception_line >= 0:
            self.stderr.write(f"{self.state.source_name}:{outcome.exception_line}: ")

        if isinstance(exc, BaseException):
            lines: Iterable[str] = traceback.format_exception_only(type(exc), exc)
            self.print_err("".join(lines).rstrip("\n"))
        else:
            self.print_err(f"Uncaught exception: {exc!r}")

    def print_for_read_command(self, value: Any, last: bool = True) -> None:
        self.stdout.write(value if isinstance(value, str) else repr(value))
        self.stdout.write("" if last else " ")
        if last:
            self.stdout.flush()

    def read_command(self) -> str:
        """Read one line for ``sr.engine.read()``; ``""`` at end of input."""
        return self.stdin.readline().rstrip("\n")

    # Properties

    @property
    def version(self) -> str:
        return SRSHELL_VERSION

    @property
    def exit_code(self) -> int:
        return self.state.exit_code

    @property
    def is_exit_called(self) -> bool:
        return self.state.exit_requested

    @property
    def current_line_number(self) -> int:
        return self.state.line_number

    @current_line_number.setter
    def current_line_number(self, line_number: int) -> None:
        self.state.line_number = line_number

    @property
    def event_throttle(self) -> int:
        return self._engine.event_throttle

    @event_throttle.setter
    def event_throttle(self, interval: int) -> None:
        self._engine.event_throttle = interval

    @property
    def arguments(self) -> Tuple[str, ...]:
        return self.state.arguments

    @arguments.setter
    def arguments(self, arguments: Iterable[Any]) -> None:
        self.state.arguments = tuple(str(arg) for arg in arguments)
        if self.state.initialized:
            self._binding.refresh("arguments")

    @property
    def source_name(self) -> str:
        return self.state.source_name

    @source_name.setter
    def source_name(self, source_name: str) -> None:
        self.state.source_name = source_name

    @property
    def use_global_engine(self) -> bool:
        """Whether every member of ``sr.engine`` is also a global; applies at the next initialization."""
        return self.state.use_global_engine

    @use_global_engine.setter
    def use_global_engine(self, use_global_engine: bool) -> None:
        self.state.use_global_engine = use_global_engine
