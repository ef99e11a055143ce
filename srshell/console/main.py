"""Console entry point: ``srshell [options] [FILE] [ARGS...]``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, Optional, Sequence

import structlog

from ..engine.constants import SRSHELL_VERSION
from ..protocol.messages import RunMode
from ..protocol.transport import BufferSentenceSource, SentenceSource
from ..session.config import ShellConfig
from ..session.shell import Shell
from .source import ConsoleSentenceSource

logger = structlog.get_logger()


def configure_logging(level: str = "WARNING") -> None:
    """Send structured logs to stderr so they never mix with script output."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="srshell",
        description="Interactive Python scripting shell.",
    )
    parser.add_argument("file", nargs="?", help="script to run; '-' reads standard input")
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="arguments exposed to the script")
    modes = parser.add_mutually_exclusive_group()
    modes.add_argument("-q", "--quiet", action="store_true", help="do not print evaluation results")
    modes.add_argument("-b", "--batch", action="store_true", help="evaluate all input at once")
    parser.add_argument("-e", "--eval", dest="code", metavar="CODE", help="evaluate CODE and exit")
    parser.add_argument(
        "-i",
        "--isolate",
        action="store_true",
        help="keep the host API under sr.engine only",
    )
    parser.add_argument(
        "--throttle",
        type=int,
        metavar="N",
        help="yield to the host every N line events",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="log level for diagnostics on stderr",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {SRSHELL_VERSION}")
    return parser


def select_mode(args: argparse.Namespace) -> RunMode:
    if args.batch or args.code is not None:
        return RunMode.BATCH
    if args.quiet:
        return RunMode.QUIET
    if args.file is not None and args.file != "-":
        return RunMode.BATCH
    return RunMode.INTERACTIVE


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    overrides: Dict[str, Any] = {"arguments": tuple(args.arguments)}
    if args.isolate:
        overrides["use_global_engine"] = False
    if args.throttle is not None:
        overrides["event_throttle"] = args.throttle
    if args.file is not None and args.file != "-":
        overrides["source_name"] = args.file
    config = ShellConfig.from_env(**overrides)

    shell = Shell(config=config)
    interactive_input = args.code is None and args.file is None and sys.stdin.isatty()
    mode = select_mode(args)

    source: SentenceSource
    if args.code is not None:
        source = BufferSentenceSource.from_text(args.code, shell.check_syntax)
    elif args.file is not None and args.file != "-":
        try:
            with open(args.file, encoding=config.encoding) as f:
                text = f.read()
        except OSError as e:
            logger.debug("Cannot open script", file=args.file, error=str(e))
            shell.print_err(f"srshell: cannot open {args.file}: {e.strerror}")
            return 2
        source = BufferSentenceSource.from_text(text, shell.check_syntax)
    elif interactive_input:
        source = ConsoleSentenceSource(shell)
        shell.print_out(f"srshell {shell.version}, help() for commands, Ctrl-D to exit")
    else:
        source = BufferSentenceSource.from_stream(sys.stdin, shell.check_syntax)

    while True:
        try:
            return shell.run(mode, source)
        except KeyboardInterrupt:
            shell.print_err("KeyboardInterrupt")
            if not mode.loops:
                return 130


if __name__ == "__main__":
    sys.exit(main())
