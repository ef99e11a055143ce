"""Child process execution behind ``sr.engine.runCommand``."""

from __future__ import annotations

import os
import subprocess
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Tuple

import structlog

from ..engine.constants import COMMAND_CRASHED, COMMAND_FAILED_TO_START

logger = structlog.get_logger()


def split_invocation(
    command_or_options: Any, args: Sequence[Any]
) -> Tuple[Optional[str], List[str], MutableMapping[str, Any]]:
    """Separate command name, argument strings and the options mapping.

    Every positional argument except a trailing mapping is converted to a
    string. Arguments listed under the ``args`` option follow them.
    """
    arguments = list(args)
    options: MutableMapping[str, Any] = {}
    command: Optional[str] = None

    if isinstance(command_or_options, Mapping):
        options = command_or_options  # type: ignore[assignment]
    else:
        command = str(command_or_options)
        if arguments and isinstance(arguments[-1], Mapping):
            options = arguments.pop()

    if command is None and options.get("command") is not None:
        command = str(options["command"])

    argv = [str(arg) for arg in arguments]
    argv.extend(str(arg) for arg in options.get("args") or ())
    return command, argv, options


def _child_environment(options: Mapping[str, Any]) -> Optional[Dict[str, str]]:
    extra = options.get("env")
    if not extra:
        return None
    env = dict(os.environ)
    env.update({str(name): str(value) for name, value in extra.items()})
    return env


def _text(data: Any, encoding: str) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(encoding, errors="replace")
    return data


def run_command(
    command_or_options: Any,
    *args: Any,
    timeout: Optional[float] = None,
    encoding: str = "utf-8",
) -> int:
    """Run a command and return its exit status.

    ``COMMAND_FAILED_TO_START`` means the child never ran and
    ``COMMAND_CRASHED`` means it was killed by a signal or by *timeout*.
    Captured output is appended to the ``output`` and ``err`` options and the
    status is stored in ``result`` when those keys are present.
    """
    command, argv, options = split_invocation(command_or_options, args)
    stdout = stderr = ""

    if not command:
        logger.warning("Command failed to start", reason="no command given")
        status = COMMAND_FAILED_TO_START
    else:
        kwargs: Dict[str, Any] = {
            "capture_output": True,
            "env": _child_environment(options),
            "timeout": timeout,
            "text": True,
            "encoding": encoding,
            "errors": "replace",
        }
        if options.get("input") is not None:
            kwargs["input"] = str(options["input"])
        else:
            kwargs["stdin"] = subprocess.DEVNULL

        logger.debug("Command launched", command=command, args=argv)
        try:
            completed = subprocess.run([command, *argv], **kwargs)
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out", command=command, timeout=timeout)
            status = COMMAND_CRASHED
            stdout, stderr = _text(e.stdout, encoding), _text(e.stderr, encoding)
        except (OSError, ValueError) as e:
            logger.warning("Command failed to start", command=command, error=str(e))
            status = COMMAND_FAILED_TO_START
        else:
            stdout, stderr = completed.stdout or "", completed.stderr or ""
            status = completed.returncode
            if status < 0:
                logger.warning("Command crashed", command=command, signal=-status)
                status = COMMAND_CRASHED

    if "output" in options:
        options["output"] = f"{options['output'] or ''}{stdout}"
    if "err" in options:
        options["err"] = f"{options['err'] or ''}{stderr}"
    if "result" in options:
        options["result"] = status
    return status
