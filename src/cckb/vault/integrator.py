"""Vault integrator - apply placement decisions to the vault store."""

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from cckb.core.classifier import ARCHITECTURE_DOC, KNOWLEDGE_DOC, Classifier
from cckb.core.types import (
    ExtractionResult,
    PlacementDecision,
    PlacementKind,
    VaultEntry,
)
from cckb.vault.manifest import folder_title
from cckb.vault.store import VaultStore

logger = logging.getLogger(__name__)

ATTRIBUTES_DOC = "attributes.md"

SHARED_DOCUMENTS = {
    ARCHITECTURE_DOC: ("Architecture", "Architectural patterns and design decisions"),
    KNOWLEDGE_DOC: ("General Knowledge", "Conventions, rules and project context"),
}

FOLDER_DESCRIPTIONS = {
    "entities": "Domain entities and their services",
    "services": "Standalone services and components",
}
NESTED_SERVICES_DESCRIPTION = "Service layer documentation"


@dataclass
class IntegrationReport:
    """What one integration pass wrote."""

    entities: int = 0
    services: int = 0
    patterns: int = 0
    knowledge: int = 0
    documents: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.entities + self.services + self.patterns + self.knowledge

    def merge(self, other: "IntegrationReport") -> None:
        self.entities += other.entities
        self.services += other.services
        self.patterns += other.patterns
        self.knowledge += other.knowledge
        self.documents.extend(d for d in other.documents if d not in self.documents)


class VaultIntegrator:
    """Writes classified records into the vault and keeps manifests linked."""

    def __init__(self, store: VaultStore, classifier: Classifier | None = None):
        """
        Initialize integrator.

        Args:
            store: Vault store to write to
            classifier: Classifier to use; seeded with the vault's existing
                entities when omitted
        """
        self.store = store
        self.classifier = classifier or Classifier(store.list_entities())

    def integrate(
        self, result: ExtractionResult, touch: bool = True
    ) -> IntegrationReport:
        """
        Classify and apply a result.

        Args:
            result: Unified extraction result
            touch: Update the root timestamp when anything was written

        Returns:
            IntegrationReport

        Raises:
            VaultWriteError: If a document or manifest cannot be written
        """
        return self.apply(self.classifier.classify(result), touch=touch)

    def apply(
        self, decisions: list[PlacementDecision], touch: bool = True
    ) -> IntegrationReport:
        """Apply placement decisions in order, then touch the root once."""
        report = IntegrationReport()
        if not decisions:
            return report

        self.store.ensure_vault_structure()
        for decision in decisions:
            match decision.kind:
                case PlacementKind.ENTITY:
                    self._apply_entity(decision, report)
                case PlacementKind.SERVICE:
                    self._apply_service(decision, report)
                case PlacementKind.PATTERN | PlacementKind.KNOWLEDGE:
                    self._apply_section(decision, report)

        if touch:
            self.store.touch_root_timestamp()

        logger.info(
            f"Integrated {report.total} records: {report.entities} entities, "
            f"{report.services} services, {report.patterns} patterns, "
            f"{report.knowledge} knowledge"
        )
        return report

    def _apply_entity(self, decision: PlacementDecision, report: IntegrationReport) -> None:
        folder = decision.vault_path
        self.store.ensure_folder(folder, title=decision.name)
        document = f"{folder}/{ATTRIBUTES_DOC}"
        self.store.write_document(document, decision.content)
        self.store.upsert_manifest_entry(
            folder,
            VaultEntry(
                name="attributes",
                link=f"./{ATTRIBUTES_DOC}",
                description=f"Attributes of {decision.name}",
            ),
        )
        self.link_upward(folder, description=decision.description)
        report.entities += 1
        report.documents.append(document)

    def _apply_service(self, decision: PlacementDecision, report: IntegrationReport) -> None:
        path = PurePosixPath(decision.vault_path)
        folder = str(path.parent)
        document = f"{decision.vault_path}.md"
        self.store.ensure_folder(folder)
        self.store.write_document(document, decision.content)
        self.store.upsert_manifest_entry(
            folder,
            VaultEntry(
                name=decision.name,
                link=f"./{path.name}.md",
                description=decision.description,
            ),
        )
        self.link_upward(folder)
        report.services += 1
        report.documents.append(document)

    def _apply_section(self, decision: PlacementDecision, report: IntegrationReport) -> None:
        title, description = SHARED_DOCUMENTS.get(
            decision.vault_path,
            (folder_title(PurePosixPath(decision.vault_path).stem), ""),
        )
        self.store.append_named_section(
            decision.vault_path,
            decision.section or decision.name,
            decision.content,
            title=title,
        )
        self.store.upsert_manifest_entry(
            "",
            VaultEntry(
                name=PurePosixPath(decision.vault_path).stem,
                link=f"./{decision.vault_path}",
                description=description,
            ),
        )
        if decision.kind == PlacementKind.PATTERN:
            report.patterns += 1
        else:
            report.knowledge += 1
        report.documents.append(decision.vault_path)

    def link_upward(self, folder: str, description: str | None = None) -> None:
        """
        Link ``folder`` into its parent, then each ancestor into its parent.

        Args:
            folder: Vault-relative folder path
            description: Manifest description for ``folder`` itself
        """
        parts = PurePosixPath(folder).parts
        for depth in range(len(parts), 0, -1):
            current = "/".join(parts[:depth])
            self.store.ensure_folder(current)
            if depth == len(parts) and description:
                entry_description = description
            else:
                entry_description = self._folder_description(parts[:depth])
            self.store.link_parent(
                current,
                description=entry_description,
                overwrite=depth == len(parts),
            )

    @staticmethod
    def _folder_description(parts: tuple[str, ...]) -> str:
        name = parts[-1]
        if name == "services" and len(parts) > 1:
            return NESTED_SERVICES_DESCRIPTION
        if name in FOLDER_DESCRIPTIONS and len(parts) == 1:
            return FOLDER_DESCRIPTIONS[name]
        return f"{folder_title(name)} documentation"
