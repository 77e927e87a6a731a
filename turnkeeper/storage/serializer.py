"""JSON (de)serialization of ThinkingState.

Opaque reasoning bytes are base64-encoded by the ReasoningState model
config, so stored state round-trips byte-identically.
"""

from __future__ import annotations

from turnkeeper.schemas import ThinkingState


def serialize(state: ThinkingState) -> str:
    return state.model_dump_json()


def deserialize(data: str | bytes) -> ThinkingState:
    return ThinkingState.model_validate_json(data)
