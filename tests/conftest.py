import logging
import os

import pytest

from verilis.logging_config import LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_verilis_logger():
    """Undo handlers installed by setup_logger so tests do not leak log files into each other."""
    logger = logging.getLogger(LOGGER_NAME)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        try:
            handler.close()
        except Exception as e:
            logging.error(f"Failed to close log handler: {e}")
    logger.setLevel(level)
    logger.propagate = True


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """Run the test from an empty project directory without provider credentials."""
    monkeypatch.chdir(tmp_path)
    for name in ('OPENROUTER_API_KEY', 'VERILIS_CONFIG_FILE', 'VERILIS_MODEL_NAME'):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def output_dir(tmp_path):
    path = os.path.join(str(tmp_path), 'resources')
    os.makedirs(path, exist_ok=True)
    return path
