"""Integration tests for the capture, compaction and discovery pipeline.

These tests drive the hooks and engines end to end against a real project
folder with a stub analyzer:
- Hooks capture a session and compact it into the vault
- Discovery adds to the same vault without duplicating entries
- The vault stays navigable from the root manifest down
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

import cckb.core.analyzer as analyzer_module
import cckb.interfaces.hooks as hooks
from cckb.core.discovery import AutoDiscover
from cckb.core.sessions import SessionStore
from cckb.core.settings import CompactionConfig, KnowledgeBaseConfig, save_config
from cckb.vault.store import VaultStore

SESSION_RESPONSE = """## Entities
- **Name**: Order
- **Location**: src/order/model.ts
- **Attributes**: id, total

## Services
- **Name**: OrderRepository
- **Location**: src/order/repo.ts
- **Purpose**: Persists orders

## Knowledge
- **Topic**: Money
- **Details**: Amounts are stored in cents
"""


@pytest.fixture
def stub_analyzer(monkeypatch):
    """Default analyzer replaced by an available stub."""
    analyzer = MagicMock()
    analyzer.is_available.return_value = True
    analyzer.analyze = AsyncMock(return_value=SESSION_RESPONSE)
    monkeypatch.setattr(analyzer_module, "_analyzer", analyzer)
    return analyzer


@pytest.fixture
def foreground_project(source_project):
    """Source project configured to compact inline on stop."""
    save_config(
        source_project,
        KnowledgeBaseConfig(compaction=CompactionConfig(background=False)),
    )
    return source_project


def run_session(project):
    cwd = str(project)
    hooks.session_start({"cwd": cwd, "transcript_path": "/t/session.jsonl"})
    hooks.user_prompt({"cwd": cwd, "prompt": "Add an order repository that stores money in cents"})
    hooks.post_tool_use(
        {
            "cwd": cwd,
            "tool_name": "Write",
            "tool_input": {
                "file_path": "src/order/repo.ts",
                "content": "export class OrderRepository {}",
            },
        }
    )
    hooks.post_tool_use(
        {"cwd": cwd, "tool_name": "Bash", "tool_input": {"command": "npm test"}}
    )
    session_id = SessionStore(project).get_active()
    hooks.stop({"cwd": cwd})
    return session_id


def walk_manifests(vault, folder=""):
    """Every file reachable from ``folder`` by following manifest links."""
    reached = []
    document = vault.read_manifest(folder)
    for entry in document.entries:
        target = entry.link.removeprefix("./")
        path = f"{folder}/{target}" if folder else target
        if entry.kind == "folder":
            child = path.rsplit("/", 1)[0]
            reached.append(child)
            reached.extend(walk_manifests(vault, child))
        else:
            reached.append(path)
    return reached


class TestSessionPipeline:
    """Hooks to vault."""

    def test_session_compacted_into_vault(self, foreground_project, stub_analyzer):
        """A captured session ends up as vault documents."""
        session_id = run_session(foreground_project)

        prompt = stub_analyzer.analyze.call_args.args[0]
        assert "Add an order repository" in prompt
        assert "[TOOL:Write]" in prompt

        vault = VaultStore.for_project(foreground_project)
        assert vault.read_document("entities/order/attributes.md").startswith("# Order\n")
        assert vault.read_document("entities/order/services/repository.md")
        assert "## Money" in vault.read_document("general-knowledge.md")

        store = SessionStore(foreground_project)
        assert store.get_active() is None
        assert store.get_state(session_id).closed_at is not None

    def test_fallback_when_analyzer_fails(self, foreground_project, stub_analyzer):
        """Without analyzer output the log itself is summarized."""
        stub_analyzer.analyze = AsyncMock(
            side_effect=analyzer_module.AnalyzerUnavailable("no cli")
        )

        session_id = run_session(foreground_project)

        knowledge = VaultStore.for_project(foreground_project).read_document(
            "general-knowledge.md"
        )
        assert f"## Session {session_id} Files\n\n- src/order/repo.ts" in knowledge


class TestDiscoveryPipeline:
    """Discovery into a vault that already has session knowledge."""

    def test_discovery_after_session(self, foreground_project, stub_analyzer, sample_response):
        """Discovery merges with session knowledge without duplicate rows."""
        run_session(foreground_project)
        stub_analyzer.analyze = AsyncMock(return_value=sample_response)

        outcome = asyncio.run(
            AutoDiscover(foreground_project, pacing=0).discover(max_batch_size=120)
        )

        assert outcome.integrated is True
        vault = VaultStore.for_project(foreground_project)
        entities = vault.read_manifest("entities")
        assert entities.names() == ["order", "customer"]
        services = vault.read_manifest("entities/order/services")
        assert services.names() == ["OrderRepository"]
        assert vault.read_document("services/mailer.md")

    @pytest.mark.asyncio
    async def test_every_document_reachable_from_root(
        self, foreground_project, stub_analyzer, sample_response
    ):
        """Following manifest links from the root reaches every document."""
        stub_analyzer.analyze = AsyncMock(return_value=sample_response)
        await AutoDiscover(foreground_project, pacing=0).discover()
        vault = VaultStore.for_project(foreground_project)

        reached = set(walk_manifests(vault))

        documents = {
            p.relative_to(vault.root).as_posix()
            for p in vault.root.rglob("*.md")
            if p.name != "INDEX.md"
        }
        assert documents <= reached
