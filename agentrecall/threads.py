"""
Conversation thread reconstruction.

Walks reply-to links from a leaf node back to the root, persisting every node
not yet stored as a message memory. The walk is iterative with a visited set,
so reply cycles terminate and deep chains do not grow the call stack.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from loguru import logger

from .ids import deterministic_id, string_to_uuid
from .models import Content, Memory, ThreadNode

if TYPE_CHECKING:
    from loguru import Logger

    from .memory import MemoryManager
    from .platform import PlatformClient
    from .storage.base import ConnectionRegistry

__all__ = ["ThreadBuilder", "create_node_memory", "node_memory_id"]


def node_memory_id(native_id: str, agent_id: uuid.UUID) -> uuid.UUID:
    """Memory (and room) id of a platform node as seen by one agent."""
    return deterministic_id(native_id, agent_id)


def create_node_memory(
    node: ThreadNode,
    *,
    agent_id: uuid.UUID,
    room_id: uuid.UUID,
    source: str,
) -> Memory:
    in_reply_to = node_memory_id(node.in_reply_to, agent_id) if node.in_reply_to else None
    return Memory(
        id=node_memory_id(node.id, agent_id),
        agent_id=agent_id,
        user_id=string_to_uuid(node.author.username),
        room_id=room_id,
        content=Content(
            text=node.text,
            source=source,
            url=node.url,
            in_reply_to=in_reply_to,
            native_id=node.id,
        ),
        created_at=node.timestamp,
    )


class ThreadBuilder:
    """Rebuilds a root-first thread and ensures each node is stored once."""

    def __init__(
        self,
        messages: MemoryManager,
        connections: ConnectionRegistry,
        *,
        agent_id: uuid.UUID,
        source: str,
        log: Logger | None = None,
    ) -> None:
        self.messages = messages
        self.connections = connections
        self.agent_id = agent_id
        self.source = source
        self._log = log or logger.bind(component=f"threads.{source}")

    async def _ensure_stored(self, node: ThreadNode) -> None:
        room_id = node_memory_id(node.id, self.agent_id)
        if await self.messages.get_memory_by_id(room_id) is not None:
            return

        self._log.info(f"Creating memory for node {node.id}")
        await self.connections.ensure_connection(
            user_id=string_to_uuid(node.author.username),
            room_id=room_id,
            username=node.author.username,
            name=node.author.name,
            source=self.source,
        )
        await self.messages.create_memory(
            create_node_memory(node, agent_id=self.agent_id, room_id=room_id, source=self.source)
        )

    async def build_thread(self, start: ThreadNode, client: PlatformClient) -> list[ThreadNode]:
        """Return the conversation ending at ``start``, oldest node first.

        A parent that cannot be fetched ends the walk; the nodes resolved so
        far are still returned.
        """
        thread: list[ThreadNode] = []
        visited: set[str] = set()
        current: ThreadNode | None = start

        while current is not None and current.id not in visited:
            visited.add(current.id)
            await self._ensure_stored(current)
            thread.insert(0, current)

            if not current.in_reply_to:
                break
            parent_id = current.in_reply_to
            try:
                current = await client.get(parent_id)
            except Exception as e:
                self._log.warning(f"Failed to fetch parent {parent_id}: {e}")
                break
            if current is None:
                self._log.debug(f"Parent {parent_id} not found, thread ends here")

        return thread
