"""Configuration for shell behavior."""

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import structlog

from ..engine.constants import DEFAULT_SOURCE_NAME, EXTENSION_GROUP, THROTTLE_DISABLED

logger = structlog.get_logger()

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_optional_float(raw: str) -> Optional[float]:
    if not raw.strip():
        return None
    return float(raw)


@dataclass
class ShellConfig:
    """Configuration for shell behavior.

    Simple configuration for visibility policy, diagnostics and host commands.
    """

    # Put every member of ``sr.engine`` in the global namespace
    use_global_engine: bool = True

    # Diagnostics
    source_name: str = DEFAULT_SOURCE_NAME
    show_backtrace: bool = True

    # Script arguments, exposed read-only as ``arguments``
    arguments: Tuple[str, ...] = field(default_factory=tuple)

    # Yield to the host every N line events; <= 0 disables
    event_throttle: int = THROTTLE_DISABLED

    # Encoding for readFile, load and command output
    encoding: str = "utf-8"

    # Seconds before runCommand kills its child; None waits forever
    command_timeout: Optional[float] = None

    # Console prompts
    prompt: str = ">>> "
    continuation_prompt: str = "... "

    extension_group: str = EXTENSION_GROUP

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "ShellConfig":
        """Build a config from ``SRSHELL_*`` environment variables.

        Malformed values are logged and the default is kept.
        """
        environ = os.environ if environ is None else environ
        parsers: Dict[str, Tuple[str, Callable[[str], Any]]] = {
            "use_global_engine": ("SRSHELL_USE_GLOBAL_ENGINE", _parse_bool),
            "event_throttle": ("SRSHELL_EVENT_THROTTLE", int),
            "show_backtrace": ("SRSHELL_SHOW_BACKTRACE", _parse_bool),
            "command_timeout": ("SRSHELL_COMMAND_TIMEOUT", _parse_optional_float),
        }

        values: Dict[str, Any] = {}
        for name, (variable, parse) in parsers.items():
            raw = environ.get(variable)
            if raw is None:
                continue
            try:
                values[name] = parse(raw)
            except ValueError as e:
                logger.warning("Ignoring malformed setting", variable=variable, value=raw, error=str(e))

        values.update(overrides)
        return cls(**values)
