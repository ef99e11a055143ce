"""Constants shared across engine and session components."""

# Literals completion offers at the top level of any engine.
RESERVED_LITERALS = ("this", "true", "false", "null")

# Python spelling of the same literals; ``this`` is bound to the global namespace.
PYTHON_RESERVED_LITERALS = ("this", "True", "False", "None")

# Receiver token that denotes the current context in a completion path.
CONTEXT_TOKEN = "this"

# Host functions the shell owns; a pre-existing global of this name is replaced.
PRINT_FUNCTION = "print"

# Root object installed on every global namespace.
ROOT_OBJECT = "sr"
ENGINE_OBJECT = "engine"

# Default name for evaluated text without a file.
DEFAULT_SOURCE_NAME = "<shell>"

# runCommand exit statuses for children that never ran to completion.
COMMAND_FAILED_TO_START = -1
COMMAND_CRASHED = -2

# Entry point group scanned for importable extensions.
EXTENSION_GROUP = "srshell.extensions"

# Throttle value meaning "never yield to the host".
THROTTLE_DISABLED = -1

# Shell version reported by ``sr.engine.version`` and ``help()``.
SRSHELL_VERSION = "0.1.0"
