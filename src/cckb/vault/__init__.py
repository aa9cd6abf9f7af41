"""Vault module - the project's hierarchical markdown knowledge store.

Every folder carries an INDEX.md manifest listing its children, so an agent
can start at the root and load only the documents it needs.
"""

from cckb.vault.layout import (
    ensure_kb_structure,
    get_conversations_path,
    get_kb_root,
    get_state_path,
    get_vault_root,
)
from cckb.vault.store import VaultPathError, VaultStore, VaultWriteError

__all__ = [
    "ensure_kb_structure",
    "get_conversations_path",
    "get_kb_root",
    "get_state_path",
    "get_vault_root",
    "VaultPathError",
    "VaultStore",
    "VaultWriteError",
]
