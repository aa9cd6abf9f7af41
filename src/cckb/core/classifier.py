"""Classifier - decide where each extracted record lands in the vault."""

import logging
import re

from cckb.core.types import (
    ArchitectureItem,
    Entity,
    ExtractionResult,
    KnowledgeItem,
    PlacementDecision,
    PlacementKind,
    ServiceItem,
)

logger = logging.getLogger(__name__)

ARCHITECTURE_DOC = "architecture.md"
KNOWLEDGE_DOC = "general-knowledge.md"
DEFAULT_SERVICE_NAME = "service"

_UNSAFE_RE = re.compile(r"[^\w.-]+")
_DASHES_RE = re.compile(r"-{2,}")
_SERVICE_SEPARATORS = " -_./"


def slugify(name: str) -> str:
    """
    Turn a display name into a single safe path segment.

    Case-folds, collapses whitespace and path-unsafe characters into ``-``,
    and strips leading/trailing ``-`` and ``.``.

    Returns:
        Slug, ``"unnamed"`` if nothing usable remains
    """
    slug = _UNSAFE_RE.sub("-", name.strip().lower())
    slug = _DASHES_RE.sub("-", slug).strip("-.")
    return slug or "unnamed"


def _bullets(items: list[str]) -> str:
    return "".join(f"- {item}\n" for item in items)


def render_entity(entity: Entity) -> str:
    """Entity attributes document."""
    content = f"# {entity.name}\n\n"
    if entity.location:
        content += f"**Location**: {entity.location}\n\n"
    if entity.attributes:
        content += f"## Attributes\n\n{_bullets(entity.attributes)}\n"
    if entity.relations:
        content += f"## Relations\n\n{_bullets(entity.relations)}\n"
    return content.rstrip("\n") + "\n"


def render_service(service: ServiceItem) -> str:
    """Service document."""
    content = f"# {service.name}\n\n"
    if service.location:
        content += f"**Location**: {service.location}\n\n"
    if service.purpose:
        content += f"## Purpose\n\n{service.purpose}\n\n"
    if service.methods:
        content += f"## Methods\n\n{_bullets(service.methods)}\n"
    return content.rstrip("\n") + "\n"


def render_architecture(item: ArchitectureItem) -> str:
    """Body of a pattern section in the architecture document."""
    body = item.description
    if item.affected_files:
        body += f"\n\n### Affected Files\n\n{_bullets(item.affected_files)}"
    return body.strip("\n")


def render_knowledge(item: KnowledgeItem) -> str:
    """Body of a topic section in the general knowledge document."""
    return item.details.strip()


def service_suffix(service_name: str, entity_name: str) -> str:
    """Service name with the entity name removed, e.g. OrderRepository -> Repository."""
    lowered = service_name.lower()
    at = lowered.find(entity_name.lower())
    if at == -1:
        remainder = service_name
    else:
        remainder = service_name[:at] + service_name[at + len(entity_name) :]
    return remainder.strip(_SERVICE_SEPARATORS)


class Classifier:
    """Maps extraction results to placement decisions.

    Keeps the entities it has seen so services from later batches still nest
    under entities found earlier.
    """

    def __init__(self, known_entities: list[str] | None = None):
        self.known_entities: list[str] = []
        for name in known_entities or []:
            self._remember(name)

    def _remember(self, name: str) -> None:
        if name.lower() not in (e.lower() for e in self.known_entities):
            self.known_entities.append(name)

    def match_entity(self, service: ServiceItem) -> str | None:
        """First known entity the service belongs to, by name or location."""
        service_name = service.name.lower()
        location = (service.location or "").lower()
        for entity in self.known_entities:
            key = entity.lower()
            if not key:
                continue
            if key in service_name or service_name in key or key in location:
                return entity
        return None

    def classify(self, result: ExtractionResult) -> list[PlacementDecision]:
        """
        Produce placement decisions for every record in ``result``.

        Entities come first so their services can nest under them.

        Returns:
            Decisions in entity, service, pattern, knowledge order
        """
        decisions: list[PlacementDecision] = []

        for entity in result.entities:
            self._remember(entity.name)
            decisions.append(
                PlacementDecision(
                    kind=PlacementKind.ENTITY,
                    name=entity.name,
                    vault_path=f"entities/{slugify(entity.name)}",
                    content=render_entity(entity),
                    description=f"Documentation for {entity.name} entity",
                )
            )

        for service in result.services:
            decisions.append(self._classify_service(service))

        for item in result.architecture:
            decisions.append(
                PlacementDecision(
                    kind=PlacementKind.PATTERN,
                    name=item.pattern,
                    vault_path=ARCHITECTURE_DOC,
                    content=render_architecture(item),
                    section=item.pattern,
                )
            )

        for item in result.knowledge:
            decisions.append(
                PlacementDecision(
                    kind=PlacementKind.KNOWLEDGE,
                    name=item.topic,
                    vault_path=KNOWLEDGE_DOC,
                    content=render_knowledge(item),
                    section=item.topic,
                )
            )

        logger.debug(f"Classified {len(decisions)} placements")
        return decisions

    def _classify_service(self, service: ServiceItem) -> PlacementDecision:
        description = service.purpose or f"{service.name} service"
        entity = self.match_entity(service)
        if entity is None:
            return PlacementDecision(
                kind=PlacementKind.SERVICE,
                name=service.name,
                vault_path=f"services/{slugify(service.name)}",
                content=render_service(service),
                description=description,
            )

        suffix = service_suffix(service.name, entity)
        file_name = slugify(suffix) if suffix else DEFAULT_SERVICE_NAME
        return PlacementDecision(
            kind=PlacementKind.SERVICE,
            name=service.name,
            vault_path=f"entities/{slugify(entity)}/services/{file_name}",
            content=render_service(service),
            description=description,
            entity=entity,
        )


def classify(
    result: ExtractionResult, known_entities: list[str] | None = None
) -> list[PlacementDecision]:
    """Classify a single result with a fresh classifier."""
    return Classifier(known_entities).classify(result)
