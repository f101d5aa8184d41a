import logging
import os
import random

import pytest
from typer.testing import CliRunner

import rpcguard.main
from rpcguard.infrastructure.cli.display import ConsoleDisplay
from rpcguard.infrastructure.clock.manual_clock import ManualClock
from rpcguard.infrastructure.config.settings import clear_test_config, reset_configuration

@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()

@pytest.fixture
def clock():
    """Virtual clock starting at t=0 that advances when slept on."""
    return ManualClock()

@pytest.fixture
def rng():
    """Seeded random source so jitter is reproducible."""
    return random.Random(1234)

@pytest.fixture
def events():
    """Collects every event emitted to it; use ``events.append`` as the sink."""
    return []

@pytest.fixture
def mock_console_display(mocker):
    """ Mocks the ConsoleDisplay to capture output easily.
        Patches the ConsoleDisplay where the composition root builds it.
    """
    mock = mocker.MagicMock(spec=ConsoleDisplay)
    mock.display_output = mocker.MagicMock()
    mock.display_info = mocker.MagicMock()
    mock.display_error = mocker.MagicMock()
    mock.display_table = mocker.MagicMock()

    mocker.patch('rpcguard.main.ConsoleDisplay', return_value=mock)
    return mock

@pytest.fixture(autouse=True)
def isolated_configuration(monkeypatch, tmp_path):
    """Keeps tests away from the user's config file, .env and RPCGUARD_ variables."""
    root_logger = logging.getLogger()
    saved_handlers, saved_level = root_logger.handlers[:], root_logger.level
    for name in list(os.environ):
        if name.startswith("RPCGUARD_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(
        'rpcguard.infrastructure.config.settings.DEFAULT_CONFIG_FILE', tmp_path / "missing.yaml"
    )
    monkeypatch.setattr('rpcguard.infrastructure.config.settings.find_dotenv_path', lambda: None)
    reset_configuration()
    clear_test_config()
    rpcguard.main._dependencies = None
    yield
    reset_configuration()
    clear_test_config()
    rpcguard.main._dependencies = None
    for handler in root_logger.handlers[:]:
        # Only the plain handlers setup_logging installs; pytest swaps its own per phase
        if handler not in saved_handlers and type(handler) in (logging.StreamHandler, logging.FileHandler):
            root_logger.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(saved_level)
