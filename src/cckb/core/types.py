"""Shared types and data structures for cckb."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ActiveSession",
    "Actor",
    "ArchitectureItem",
    "Batch",
    "BatchItem",
    "CollectedFile",
    "ConversationEntry",
    "Entity",
    "EntryKind",
    "ExtractionResult",
    "KnowledgeItem",
    "OnProgress",
    "PlacementDecision",
    "PlacementKind",
    "ProgressEvent",
    "ServiceItem",
    "SessionState",
    "ToolAction",
    "VaultCache",
    "VaultEntry",
]


# --- Session capture ---


class Actor(StrEnum):
    """Who produced a conversation entry."""

    USER = "USER"
    CLAUDE = "CLAUDE"


@dataclass(frozen=True)
class ToolAction:
    """Tool details attached to an agent entry."""

    name: str
    action: str
    target: str | None = None


@dataclass(frozen=True)
class ConversationEntry:
    """One captured event in a session log."""

    actor: Actor
    timestamp: str
    content: str
    tool: ToolAction | None = None

    def render(self) -> str:
        """Format the entry as it is stored in a log segment."""
        header = f"[{self.actor.value}][{self.timestamp}]"
        if self.tool:
            header += f"[TOOL:{self.tool.name}]"
        return f"{header}\n{self.content}\n---\n\n"


class SessionState(BaseModel):
    """Persisted metadata for one session."""

    model_config = ConfigDict(extra="ignore")

    session_id: str
    conversation_path: str
    current_segment: int = 0
    started_at: datetime
    closed_at: datetime | None = None


class ActiveSession(BaseModel):
    """Pointer to the session hook invocations should write to."""

    model_config = ConfigDict(extra="ignore")

    session_id: str
    updated_at: datetime


class VaultCache(BaseModel):
    """Snapshot of vault navigation data used for feedback lookups."""

    model_config = ConfigDict(extra="ignore")

    overview: str = ""
    entities: list[str] = Field(default_factory=list)
    last_updated: datetime


# --- Batching ---


@dataclass(frozen=True)
class CollectedFile:
    """A source file chosen by the collector."""

    path: str  # Relative to project root, "/"-separated
    absolute_path: str
    language: str
    category: str
    size: int
    priority: int


@dataclass(frozen=True)
class BatchItem:
    """A labelled piece of text to be batched for the analyzer."""

    label: str
    content: str


@dataclass
class Batch:
    """A size-bounded bundle of formatted content for one analyzer call."""

    items: list[BatchItem]
    content: str
    estimated_tokens: int
    index: int
    total: int = 0
    truncated: bool = False


# --- Analyzer progress ---


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted while the analyzer runs."""

    type: Literal["started", "heartbeat", "stdout", "complete", "error"]
    elapsed: float = 0.0
    bytes_received: int = 0
    message: str | None = None


class OnProgress(Protocol):
    """Callback signature for progress notifications."""

    def __call__(self, event: ProgressEvent) -> None:
        pass


# --- Extracted records ---


@dataclass(frozen=True)
class Entity:
    """A domain entity (model, type, class)."""

    name: str
    location: str | None = None
    attributes: list[str] = field(default_factory=list)
    relations: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class ArchitectureItem:
    """An architectural pattern or design decision."""

    pattern: str
    description: str = ""
    affected_files: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.pattern.lower()


@dataclass(frozen=True)
class ServiceItem:
    """A service or component."""

    name: str
    location: str | None = None
    purpose: str = ""
    methods: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class KnowledgeItem:
    """A convention, rule or piece of project context."""

    topic: str
    details: str = ""

    @property
    def key(self) -> str:
        return self.topic.lower()


@dataclass
class ExtractionResult:
    """Typed records extracted from one or more analyzer responses."""

    entities: list[Entity] = field(default_factory=list)
    architecture: list[ArchitectureItem] = field(default_factory=list)
    services: list[ServiceItem] = field(default_factory=list)
    knowledge: list[KnowledgeItem] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    raw_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.entities or self.architecture or self.services or self.knowledge)

    def counts(self) -> dict[str, int]:
        return {
            "entities": len(self.entities),
            "architecture": len(self.architecture),
            "services": len(self.services),
            "knowledge": len(self.knowledge),
        }


# --- Vault placement ---


class PlacementKind(StrEnum):
    """Where a record lands in the vault."""

    ENTITY = "entity"
    SERVICE = "service"
    PATTERN = "pattern"
    KNOWLEDGE = "knowledge"


@dataclass(frozen=True)
class PlacementDecision:
    """Classifier output: what to write and where.

    For entities ``vault_path`` is the entity folder; for services it is the
    document path without extension; for patterns and knowledge it is the
    shared document and ``section`` names the section inside it.
    """

    kind: PlacementKind
    name: str
    vault_path: str
    content: str
    description: str = ""
    section: str | None = None
    entity: str | None = None


EntryKind = Literal["file", "folder"]


@dataclass(frozen=True)
class VaultEntry:
    """One row in a folder manifest."""

    name: str
    link: str
    description: str = ""
    kind: EntryKind = "file"
