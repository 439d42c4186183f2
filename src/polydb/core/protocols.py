"""
Protocols the core depends on but does not implement.

Manifesto:
    The core never talks to an LLM vendor.  An AI-assisted query is a
    passthrough: the adapter gathers schema context, hands it to whatever
    ``ChatProvider`` the caller supplies, and executes the SQL the
    provider suggests.  Keeping the provider a protocol means any object
    with a ``complete()`` method works, including a test double.

Architecture:
    ::

        protocols.py
        ├── ChatRequest   : schema context + question + prior messages
        ├── ChatReply     : one suggested step ("message" or "sql")
        └── ChatProvider  : complete(request) -> list[ChatReply]

Tags:
    polydb, protocols, chat, ai, structural-typing

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from polydb.core.models import ChatMessage, StorageUnit


@dataclass(frozen=True)
class ChatRequest:
    """Everything a provider needs to answer one question.

    Attributes:
        engine: Database type name (e.g. ``"postgresql"``) so the provider
            can pick the right SQL dialect.
        schema: Schema the question is about.
        query: The user's natural-language question.
        storage_units: Tables in ``schema`` with their column attributes.
        previous_conversation: Serialized earlier exchange, passed verbatim.
    """

    engine: str
    schema: str
    query: str
    storage_units: list[StorageUnit] = field(default_factory=list)
    previous_conversation: str = ""


@dataclass(frozen=True)
class ChatReply:
    """One provider step: ``type`` is ``"message"`` (prose) or ``"sql"``."""

    type: str
    text: str


@runtime_checkable
class ChatProvider(Protocol):
    """Anything that turns a :class:`ChatRequest` into replies."""

    def complete(self, request: ChatRequest) -> list[ChatReply]:
        ...


__all__ = [
    "ChatRequest",
    "ChatReply",
    "ChatProvider",
    "ChatMessage",
]
