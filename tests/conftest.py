"""Shared fixtures for pairchat tests."""

import json
from typing import Any, List, Optional

import pytest

from pairchat.manager import PairingManager
from pairchat.storage import UploadStore


class FakeWebSocket:
    """Records what the manager sends instead of writing to a network."""

    def __init__(self):
        self.accepted = False
        self.closed_with: Optional[int] = None
        self.sent: List[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, data: str):
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.closed_with = code

    def events(self, event_type: str) -> List[Any]:
        return [m["data"] for m in self.sent if m["type"] == event_type]


@pytest.fixture
def store(tmp_path):
    return UploadStore(str(tmp_path / "uploads"))


@pytest.fixture
def manager(store):
    return PairingManager(store=store)


@pytest.fixture
def make_socket():
    return FakeWebSocket
