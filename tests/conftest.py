"""
Pytest Configuration

Global pytest configuration, markers and shared fixtures.
"""

import logging
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from quorum_agent.config.settings import LockSettings, ProcessSettings  # noqa: E402
from quorum_agent.coordination.config_store import ConfigStore  # noqa: E402
from quorum_agent.coordination.instance_config import InstanceConfig, IntConfigs, StringConfigs  # noqa: E402
from quorum_agent.observability.logging import ROOT_LOGGER_NAME  # noqa: E402
from quorum_agent.storage.memory import InMemoryBlobStore  # noqa: E402
from tests.fixtures import RecordingMonitor, RecordingRunner, ScriptedProbe  # noqa: E402

BUCKET = "test-bucket"
CONFIG_KEY = "quorum-agent/config.properties"


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def agent_logger_propagates():
    """setup_logging() stops propagation; put it back so caplog sees agent records."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def fast_lock_settings():
    return LockSettings(prefix="test/lock", timeout_ms=2000, polling_ms=50, settling_ms=10)


@pytest.fixture
def config_store(blob_store, fast_lock_settings):
    return ConfigStore(blob_store, BUCKET, CONFIG_KEY, "host-a", lock_settings=fast_lock_settings)


@pytest.fixture
def process_settings():
    return ProcessSettings(kill_backoff_ms=1, command_timeout=5)


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def monitor():
    return RecordingMonitor()


@pytest.fixture
def probe():
    return ScriptedProbe()


@pytest.fixture
def cluster_config(tmp_path):
    """A valid three-member config in which host-a is server 1."""
    return InstanceConfig(
        {
            StringConfigs.INSTALL_DIRECTORY: str(tmp_path / "install"),
            StringConfigs.DATA_DIRECTORY: str(tmp_path / "data"),
            StringConfigs.SERVERS_SPEC: "S:1:host-a,S:2:host-b,O:3:host-c",
            IntConfigs.CLIENT_PORT: 2181,
        }
    )
