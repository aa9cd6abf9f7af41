"""Knowledge base layout and path helpers.

A project's knowledge base lives in a single folder under the project root:

    <project>/cc-knowledge-base/
        cckb-config.yaml
        conversations/<session_id>/<n>.txt
        vault/INDEX.md
        .cckb-state/
"""

from pathlib import Path

from cckb.core.config import KB_DIRNAME

MANIFEST_NAME = "INDEX.md"


def get_kb_root(project_path: Path | str) -> Path:
    """
    Get the knowledge base folder for a project.

    Args:
        project_path: Project root

    Returns:
        Path to the knowledge base folder
    """
    return Path(project_path) / KB_DIRNAME


def get_vault_root(project_path: Path | str) -> Path:
    """
    Get the vault root directory.

    Args:
        project_path: Project root

    Returns:
        Path to vault root
    """
    return get_kb_root(project_path) / "vault"


def get_conversations_path(project_path: Path | str) -> Path:
    """
    Get the folder holding session log segments.

    Args:
        project_path: Project root

    Returns:
        Path to conversations folder
    """
    return get_kb_root(project_path) / "conversations"


def get_state_path(project_path: Path | str) -> Path:
    """
    Get the folder holding small persisted state records.

    Args:
        project_path: Project root

    Returns:
        Path to state folder
    """
    return get_kb_root(project_path) / ".cckb-state"


def is_installed(project_path: Path | str) -> bool:
    """Check whether a project has a knowledge base folder."""
    return get_kb_root(project_path).is_dir()


def ensure_kb_structure(project_path: Path | str) -> Path:
    """
    Ensure the knowledge base directory structure exists.

    Creates the conversations, state and vault folders. Safe to call
    multiple times. Vault manifests are created by the vault store.

    Returns:
        Path to the knowledge base folder
    """
    kb_root = get_kb_root(project_path)
    get_conversations_path(project_path).mkdir(parents=True, exist_ok=True)
    get_state_path(project_path).mkdir(parents=True, exist_ok=True)
    get_vault_root(project_path).mkdir(parents=True, exist_ok=True)
    return kb_root
