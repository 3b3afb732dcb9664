"""Deterministic identifiers for memories derived from platform-native ids."""

from __future__ import annotations

import uuid

__all__ = ["RECALL_NAMESPACE", "string_to_uuid", "deterministic_id", "fragment_id"]

RECALL_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "agentrecall")


def string_to_uuid(value: str) -> uuid.UUID:
    """Hash an arbitrary string into a stable UUID."""
    return uuid.uuid5(RECALL_NAMESPACE, value)


def deterministic_id(*parts: object) -> uuid.UUID:
    """Join parts with '-' and hash them, e.g. (native_id, agent_id)."""
    if not parts:
        raise ValueError("deterministic_id requires at least one part")
    return string_to_uuid("-".join(str(p) for p in parts))


def fragment_id(document_id: uuid.UUID | str, chunk: str) -> uuid.UUID:
    # Namespaced by the document id so a fragment never collides with it.
    return string_to_uuid(f"{document_id}{chunk}")
