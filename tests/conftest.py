"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingSink:
    """Observability sink that keeps every (kind, payload) pair."""

    def __init__(self):
        self.records = []

    def __call__(self, kind, payload):
        self.records.append((kind, payload))

    @property
    def kinds(self):
        return [kind for kind, _ in self.records]

    def payloads(self, kind):
        return [payload for k, payload in self.records if k == kind]


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def sink():
    return RecordingSink()
