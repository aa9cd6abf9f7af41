"""cckb core library - capture, extraction and classification."""

from typing import TYPE_CHECKING

from cckb.core.types import (
    ArchitectureItem,
    Entity,
    ExtractionResult,
    KnowledgeItem,
    PlacementDecision,
    ServiceItem,
)

if TYPE_CHECKING:
    from cckb.core.compaction import CompactionEngine
    from cckb.core.discovery import AutoDiscover
    from cckb.core.sessions import SessionStore

__all__ = [
    # Pipelines
    "AutoDiscover",
    "CompactionEngine",
    # Sessions
    "SessionStore",
    # Types
    "ArchitectureItem",
    "Entity",
    "ExtractionResult",
    "KnowledgeItem",
    "PlacementDecision",
    "ServiceItem",
]


def __getattr__(name: str):
    if name == "AutoDiscover":
        from cckb.core.discovery import AutoDiscover

        return AutoDiscover
    if name == "CompactionEngine":
        from cckb.core.compaction import CompactionEngine

        return CompactionEngine
    if name == "SessionStore":
        from cckb.core.sessions import SessionStore

        return SessionStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
