"""Pytest configuration and shared fixtures for the srshell test suite."""

import io
import logging
import sys
from pathlib import Path
from typing import Callable, Iterator

import pytest
import structlog

# Add the repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from srshell.engine.executor import PythonEngine
from srshell.session.config import ShellConfig
from tests.fixtures.shells import RecordingShell


# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer(colors=False),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)


@pytest.fixture
def make_shell() -> Iterator[Callable[..., RecordingShell]]:
    """Factory for shells; keyword arguments go to :class:`ShellConfig`."""
    shells = []

    def factory(stdin: str = "", **config) -> RecordingShell:
        shell = RecordingShell(config=ShellConfig(**config), stdin=io.StringIO(stdin))
        shells.append(shell)
        return shell

    yield factory

    for shell in shells:
        shell._engine.close()


@pytest.fixture
def shell(make_shell) -> RecordingShell:
    """A merge-policy shell with default configuration."""
    return make_shell()


@pytest.fixture
def engine():
    """A bare Python engine that is closed after the test."""
    engine = PythonEngine()
    yield engine
    engine.close()


MARKER_TIMEOUTS = {"slow": 30, "integration": 15, "unit": 5}
DEFAULT_TIMEOUT = 10


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: in-process tests of one module")
    config.addinivalue_line("markers", "integration: tests that drive a whole Shell over a source")
    config.addinivalue_line("markers", "slow: tests that wait on a child process timeout")


def pytest_collection_modifyitems(config, items):
    """Give every test a pytest-timeout limit from its most expensive marker."""
    for item in items:
        limit = next(
            (seconds for marker, seconds in MARKER_TIMEOUTS.items() if item.get_closest_marker(marker)),
            DEFAULT_TIMEOUT,
        )
        item.add_marker(pytest.mark.timeout(limit))
