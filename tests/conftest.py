"""Shared fixtures: fake embedding model, fake platform client and node factory."""

import string
import uuid
from datetime import UTC, datetime, timedelta

import pytest

from agentrecall.ids import string_to_uuid
from agentrecall.models import Author, ThreadNode
from agentrecall.storage import InMemoryStore


class CharEmbedder:
    """Bag-of-letters embedding: one dimension per ASCII letter."""

    dimension = len(string.ascii_lowercase)

    def __init__(self):
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(c)) for c in string.ascii_lowercase]


class FakePlatformClient:
    """Serves ThreadNodes from a dict; ids in ``failing`` raise on fetch."""

    def __init__(self, nodes, failing=()):
        self.nodes = {n.id: n for n in nodes}
        self.failing = set(failing)
        self.calls = []

    async def get(self, native_id):
        self.calls.append(native_id)
        if native_id in self.failing:
            raise ConnectionError(f"network down fetching {native_id}")
        return self.nodes.get(native_id)

    async def get_timeline(self, limit=20):
        return list(self.nodes.values())[:limit]

    async def get_mentions(self, limit=20):
        return [n for n in self.nodes.values() if "@agent" in n.text][:limit]


def _make_node(node_id, in_reply_to=None, username="alice", minutes=0):
    return ThreadNode(
        id=node_id,
        text=f"message {node_id}",
        author=Author(id=f"fid-{username}", username=username, name=username.title()),
        in_reply_to=in_reply_to,
        timestamp=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=minutes),
    )


@pytest.fixture
def agent_id():
    return string_to_uuid("test-agent")


@pytest.fixture
def room_id():
    return uuid.uuid4()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def embedder():
    return CharEmbedder()


@pytest.fixture
def make_node():
    """Factory for ThreadNodes: make_node(id, in_reply_to=None, username="alice", minutes=0)."""
    return _make_node


@pytest.fixture
def platform_client():
    """Factory for a dict-backed platform client: platform_client(nodes, failing=())."""
    return FakePlatformClient


@pytest.fixture
def chain(make_node):
    """A <- B <- C, A being the root."""
    return [
        make_node("A", minutes=0),
        make_node("B", in_reply_to="A", username="bob", minutes=1),
        make_node("C", in_reply_to="B", minutes=2),
    ]
