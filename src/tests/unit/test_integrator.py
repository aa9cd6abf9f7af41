"""Tests for cckb.vault.integrator module."""

import pytest

from cckb.core.classifier import Classifier
from cckb.core.extraction import parse_response
from cckb.core.types import Entity, ExtractionResult, KnowledgeItem, ServiceItem
from cckb.vault.integrator import (
    NESTED_SERVICES_DESCRIPTION,
    IntegrationReport,
    VaultIntegrator,
)
from cckb.vault.store import LAST_UPDATED_SECTION, VaultWriteError


@pytest.fixture
def integrator(vault_store):
    """Integrator over an empty vault."""
    return VaultIntegrator(vault_store)


class TestIntegrate:
    """Tests for VaultIntegrator.integrate."""

    def test_entity_with_nested_service(self, integrator, vault_store):
        """Order gets a folder and OrderRepository nests under it."""
        result = ExtractionResult(
            entities=[Entity(name="Order", attributes=["id"])],
            services=[ServiceItem(name="OrderRepository", purpose="Persists orders")],
        )

        report = integrator.integrate(result)

        assert report.entities == 1
        assert report.services == 1
        assert vault_store.read_document("entities/order/attributes.md") == (
            "# Order\n\n## Attributes\n\n- id\n"
        )
        assert vault_store.read_document("entities/order/services/repository.md")

        assert vault_store.overview() == ["entities"]
        assert vault_store.read_manifest("entities").names() == ["order"]
        order = vault_store.read_manifest("entities/order")
        assert order.prefix.startswith("# Order\n")
        assert order.names() == ["attributes", "services"]
        assert order.get("services").description == NESTED_SERVICES_DESCRIPTION
        services = vault_store.read_manifest("entities/order/services")
        assert services.get("OrderRepository").link == "./repository.md"

    def test_entity_description_not_overwritten_by_services(self, integrator, vault_store):
        """Linking a nested service keeps the entity's own manifest row."""
        result = ExtractionResult(
            entities=[Entity(name="Order")],
            services=[ServiceItem(name="OrderRepository")],
        )

        integrator.integrate(result)

        row = vault_store.read_manifest("entities").get("order")
        assert row.description == "Documentation for Order entity"
        assert row.kind == "folder"

    def test_standalone_service(self, integrator, vault_store):
        """Services without an entity go under services/."""
        integrator.integrate(ExtractionResult(services=[ServiceItem(name="Mailer")]))

        assert vault_store.read_document("services/mailer.md").startswith("# Mailer\n")
        assert vault_store.overview() == ["services"]
        assert vault_store.read_manifest("services").get("Mailer").description == (
            "Mailer service"
        )

    def test_service_case_variants_share_a_row(self, vault_store):
        """A later run naming the service with different case reuses its row."""
        VaultIntegrator(vault_store).integrate(
            ExtractionResult(services=[ServiceItem(name="Mailer", purpose="Sends mail")])
        )

        VaultIntegrator(vault_store).integrate(
            ExtractionResult(services=[ServiceItem(name="MAILER", purpose="Sends mail")])
        )

        assert vault_store.read_manifest("services").names() == ["MAILER"]
        text = vault_store.manifest_path("services").read_text()
        assert text.count("./mailer.md") == 1

    def test_shared_documents(self, integrator, vault_store, sample_response):
        """Patterns and knowledge land in the shared documents."""
        integrator.integrate(parse_response(sample_response))

        architecture = vault_store.read_document("architecture.md")
        assert architecture.startswith("# Architecture\n")
        assert "## Repository\n\nData access goes through repository classes" in architecture
        assert "### Affected Files" in architecture
        knowledge = vault_store.read_document("general-knowledge.md")
        assert knowledge.startswith("# General Knowledge\n")
        assert "## Testing Convention" in knowledge
        assert set(vault_store.overview()) == {
            "entities",
            "services",
            "architecture",
            "general-knowledge",
        }

    def test_repeat_integration_is_idempotent(self, vault_store, sample_response):
        """Integrating the same result twice leaves every document unchanged."""
        result = parse_response(sample_response)
        VaultIntegrator(vault_store).integrate(result, touch=False)
        before = {
            p.relative_to(vault_store.root): p.read_text()
            for p in vault_store.root.rglob("*.md")
        }

        VaultIntegrator(vault_store).integrate(result, touch=False)

        after = {
            p.relative_to(vault_store.root): p.read_text()
            for p in vault_store.root.rglob("*.md")
        }
        assert after == before
        assert vault_store.manifest_path("entities").read_text().count("[order]") == 1

    def test_existing_entities_attract_services(self, vault_store):
        """A fresh integrator nests services under entities already in the vault."""
        VaultIntegrator(vault_store).integrate(
            ExtractionResult(entities=[Entity(name="Invoice")])
        )

        VaultIntegrator(vault_store).integrate(
            ExtractionResult(services=[ServiceItem(name="InvoiceMailer")])
        )

        assert vault_store.read_document("entities/invoice/services/mailer.md")

    def test_touch_records_timestamp(self, integrator, vault_store):
        """A touching integration stamps the root manifest."""
        integrator.integrate(ExtractionResult(knowledge=[KnowledgeItem(topic="A", details="b")]))

        text = vault_store.manifest_path("").read_text()
        assert f"## {LAST_UPDATED_SECTION}" in text

    def test_no_touch(self, integrator, vault_store):
        """touch=False leaves the timestamp alone."""
        integrator.integrate(
            ExtractionResult(knowledge=[KnowledgeItem(topic="A", details="b")]), touch=False
        )

        text = vault_store.manifest_path("").read_text()
        assert LAST_UPDATED_SECTION not in text

    def test_empty_result_writes_nothing(self, integrator, vault_store):
        """An empty result does not create the vault root."""
        report = integrator.integrate(ExtractionResult())

        assert report.total == 0
        assert vault_store.overview() is None

    def test_write_failure_propagates(self, integrator, monkeypatch):
        """Store write failures surface as VaultWriteError."""

        def fail(path, content):
            raise OSError("disk full")

        monkeypatch.setattr("cckb.vault.store.atomic_write_text", fail)

        with pytest.raises(VaultWriteError):
            integrator.integrate(ExtractionResult(entities=[Entity(name="Order")]))

    def test_custom_classifier(self, vault_store):
        """A provided classifier is used as-is."""
        classifier = Classifier(["Ledger"])
        integrator = VaultIntegrator(vault_store, classifier=classifier)

        integrator.integrate(ExtractionResult(services=[ServiceItem(name="LedgerSync")]))

        assert vault_store.read_document("entities/ledger/services/sync.md")


class TestIntegrationReport:
    """Tests for IntegrationReport."""

    def test_merge(self):
        """merge adds counts and unions documents."""
        report = IntegrationReport(entities=1, documents=["a.md"])

        report.merge(IntegrationReport(entities=2, knowledge=1, documents=["a.md", "b.md"]))

        assert report.entities == 3
        assert report.total == 4
        assert report.documents == ["a.md", "b.md"]
