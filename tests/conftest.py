import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import kasset`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from kasset.engine.config import KassetConfig  # noqa: E402
from kasset.engine.mock import MockChainService, MockNodeService  # noqa: E402
from kasset.engine.orchestrator import AssetOrchestrator  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep KASSET_* variables from the outer shell out of the tests."""
    for key in list(os.environ):
        if key.startswith('KASSET_'):
            monkeypatch.delenv(key, raising=False)


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def config():
    return KassetConfig()


@pytest.fixture
def chain():
    return MockChainService()


@pytest.fixture
def node():
    return MockNodeService(bid_suggestion=1000)


class PhaseRecorder:
    def __init__(self):
        self.events = []

    def after_phase_completed(self, event):
        self.events.append(event)


@pytest.fixture
def observer():
    return PhaseRecorder()


@pytest.fixture
def orchestrator(chain, node, config, observer, sleeps):
    return AssetOrchestrator(chain, node, config=config, observer=observer, sleep=sleeps)
