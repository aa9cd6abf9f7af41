"""Shared test fixtures and configuration."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from cckb.core.sessions import SessionStore
from cckb.vault.layout import ensure_kb_structure
from cckb.vault.store import VaultStore

SAMPLE_RESPONSE = """Here is what I found in the code.

## Entities
- **Name**: Order
- **Location**: src/order/model.ts
- **Attributes**: id, total, status
- **Relations**: Customer, LineItem

- **Name**: Customer
- **Location**: src/customer/model.ts
- **Attributes**: id, email

## Architecture
- **Pattern**: Repository
- **Description**: Data access goes through repository classes
- **Affected Files**: src/order/repo.ts, src/customer/repo.ts

## Services
- **Name**: OrderRepository
- **Location**: src/order/repo.ts
- **Purpose**: Persists orders
- **Methods**: save, findById

- **Name**: Mailer
- **Location**: src/mail/mailer.ts
- **Purpose**: Sends transactional email
- **Methods**: send

## Knowledge
- **Topic**: Testing Convention
- **Details**: Tests live next to the code as *.test.ts files
"""


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def project(tmp_path):
    """A project root with an empty knowledge base."""
    root = tmp_path / "project"
    root.mkdir()
    ensure_kb_structure(root)
    return root


@pytest.fixture
def session_store(project):
    """Session store with a small rotation threshold."""
    return SessionStore(project, rotation_threshold_bytes=1024)


@pytest.fixture
def vault_store(project):
    """Vault store for the test project."""
    return VaultStore.for_project(project)


@pytest.fixture
def sample_response():
    """Well-formed analyzer response covering all four sections."""
    return SAMPLE_RESPONSE


@pytest.fixture
def mock_analyzer():
    """Analyzer stub: available, answers with an empty string."""
    analyzer = MagicMock()
    analyzer.is_available.return_value = True
    analyzer.analyze = AsyncMock(return_value="")
    return analyzer


@pytest.fixture
def source_project(project):
    """Project with a small TypeScript source tree."""
    (project / "package.json").write_text('{"devDependencies": {"typescript": "5"}}')
    files = {
        "src/index.ts": "export * from './order/model';\n",
        "src/order/model.ts": "export class Order {\n  id: string;\n}\n",
        "src/order/repo.ts": "export class OrderRepository {}\n",
        "src/services/mailer.ts": "export class Mailer {}\n",
        "src/utils/format.ts": "export const fmt = () => '';\n",
        "src/order/model.test.ts": "test('order', () => {});\n",
        "node_modules/lib/index.js": "module.exports = {};\n",
    }
    for rel, content in files.items():
        path = project / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return project
