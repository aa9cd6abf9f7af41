"""Vault store - hierarchical markdown documents and their manifests.

All paths given to the store are vault-relative and ``/``-separated. Every
write goes through a temporary sibling file that replaces the target, so a
failed write leaves the previous document intact.
"""

import logging
import re
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

from cckb.core.fileio import atomic_write_text, read_text
from cckb.core.types import VaultEntry
from cckb.vault.layout import MANIFEST_NAME, get_vault_root
from cckb.vault.manifest import (
    ManifestDocument,
    folder_title,
    merge_entry,
    new_manifest,
    parse_manifest,
    render_manifest,
)

logger = logging.getLogger(__name__)

LAST_UPDATED_SECTION = "Last Updated"

ROOT_DESCRIPTION = (
    "Project knowledge base. Start here and follow the links to load only "
    "the documents you need."
)

_SECTION_RE = re.compile(r"^## (.+?)\s*$", re.MULTILINE)


class VaultWriteError(Exception):
    """Raised when a vault document cannot be written."""

    def __init__(self, path: Path, cause: OSError):
        super().__init__(f"Failed to write {path}: {cause}")
        self.path = path
        self.cause = cause


class VaultPathError(ValueError):
    """Raised when a relative path escapes the vault root."""


def split_sections(text: str) -> tuple[str, list[tuple[str, str]]]:
    """
    Split a document on level-2 headings.

    Returns:
        (preamble before the first section, [(heading, body), ...])
    """
    matches = list(_SECTION_RE.finditer(text))
    if not matches:
        return text, []
    preamble = text[: matches[0].start()]
    sections = []
    for i, match in enumerate(matches):
        body_end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections.append((match.group(1), text[match.end() : body_end].strip("\n")))
    return preamble, sections


def join_sections(preamble: str, sections: list[tuple[str, str]]) -> str:
    """Render a preamble and sections with single blank lines between blocks."""
    blocks = []
    if preamble.strip():
        blocks.append(preamble.strip("\n"))
    for heading, body in sections:
        body = body.strip("\n")
        blocks.append(f"## {heading}\n\n{body}" if body else f"## {heading}")
    return "\n\n".join(blocks) + "\n"


def upsert_section(text: str, section: str, body: str) -> str:
    """Replace the body of ``section`` (matched case-insensitively) or append it."""
    preamble, sections = split_sections(text)
    wanted = section.strip().lower()
    for i, (heading, _) in enumerate(sections):
        if heading.strip().lower() == wanted:
            sections[i] = (section, body)
            break
    else:
        sections.append((section, body))
    return join_sections(preamble, sections)


class VaultStore:
    """Owns every document under a project's vault root."""

    def __init__(self, vault_root: Path | str):
        self.root = Path(vault_root)

    @classmethod
    def for_project(cls, project_path: Path | str) -> "VaultStore":
        return cls(get_vault_root(project_path))

    # Paths

    def resolve(self, rel_path: str) -> Path:
        """
        Map a vault-relative path to a filesystem path.

        Raises:
            VaultPathError: If the path is absolute or escapes the vault root
        """
        posix = PurePosixPath(rel_path)
        if posix.is_absolute() or ".." in posix.parts:
            raise VaultPathError(f"Path escapes vault root: {rel_path}")
        return self.root.joinpath(*posix.parts)

    def manifest_path(self, folder: str) -> Path:
        return self.resolve(folder) / MANIFEST_NAME

    def _write(self, path: Path, content: str) -> None:
        try:
            atomic_write_text(path, content)
        except OSError as e:
            logger.warning(f"Vault write failed for {path}: {e}")
            raise VaultWriteError(path, e) from e

    def _mkdir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise VaultWriteError(path, e) from e

    # Documents

    def write_document(self, rel_path: str, content: str) -> Path:
        """Create or overwrite a document, creating parent folders."""
        path = self.resolve(rel_path)
        if read_text(path) != content:
            self._write(path, content)
            logger.debug(f"Wrote {rel_path}")
        return path

    def read_document(self, rel_path: str) -> str | None:
        """Read a document, None if it does not exist."""
        return read_text(self.resolve(rel_path))

    def append_named_section(
        self,
        rel_path: str,
        section: str,
        body: str,
        title: str | None = None,
    ) -> Path:
        """
        Insert or replace a ``## section`` inside a shared document.

        Args:
            rel_path: Document path
            section: Section heading text
            body: Section body (without the heading)
            title: Document title used when the document is created

        Returns:
            Path of the document
        """
        path = self.resolve(rel_path)
        existing = read_text(path)
        if existing is None:
            heading = title or PurePosixPath(rel_path).stem
            existing = f"# {heading}\n"
        updated = upsert_section(existing, section, body)
        if updated != existing:
            self._write(path, updated)
        return path

    # Folders and manifests

    def ensure_folder(
        self,
        folder: str,
        title: str | None = None,
        description: str | None = None,
    ) -> Path:
        """
        Create a folder and, if absent, its empty manifest.

        Returns:
            Path of the folder's manifest
        """
        manifest = self.manifest_path(folder)
        self._mkdir(manifest.parent)
        if not manifest.exists():
            document = new_manifest(title or folder_title(folder), description)
            self._write(manifest, render_manifest(document))
            logger.debug(f"Created manifest for {folder or '/'}")
        return manifest

    def read_manifest(self, folder: str) -> ManifestDocument | None:
        """Parse a folder's manifest, None if the folder has none."""
        text = read_text(self.manifest_path(folder))
        if text is None:
            return None
        return parse_manifest(text)

    def upsert_manifest_entry(self, folder: str, entry: VaultEntry) -> bool:
        """
        Merge ``entry`` into a folder's manifest, keyed by display name.

        Returns:
            True if the manifest changed on disk
        """
        manifest = self.ensure_folder(folder)
        text = read_text(manifest) or render_manifest(new_manifest(folder_title(folder)))
        document = parse_manifest(text)
        document.entries, _ = merge_entry(document.entries, entry)
        rendered = render_manifest(document)
        if rendered == text:
            return False
        self._write(manifest, rendered)
        logger.debug(f"Manifest {folder or '/'}: upserted {entry.name}")
        return True

    def link_parent(
        self,
        folder: str,
        name: str | None = None,
        description: str | None = None,
        overwrite: bool = True,
    ) -> bool:
        """
        Make the parent folder's manifest point at ``folder``.

        Only one level is linked; callers walk upward themselves. With
        ``overwrite`` off an existing entry for the folder is left alone.

        Returns:
            True if the parent manifest changed
        """
        posix = PurePosixPath(folder)
        if folder in ("", "."):
            return False
        parent = str(posix.parent) if str(posix.parent) != "." else ""
        entry = VaultEntry(
            name=name or posix.name,
            link=f"./{posix.name}/{MANIFEST_NAME}",
            description=description or f"{folder_title(folder)} documentation",
            kind="folder",
        )
        if not overwrite:
            existing = self.read_manifest(parent)
            if existing is not None and existing.get(entry.name) is not None:
                return False
        return self.upsert_manifest_entry(parent, entry)

    def ensure_vault_structure(self) -> Path:
        """Create the vault root manifest if the vault is empty."""
        return self.ensure_folder("", title="Vault", description=ROOT_DESCRIPTION)

    def touch_root_timestamp(self, now: datetime | None = None) -> None:
        """Update the ``Last Updated`` section of the root manifest."""
        manifest = self.ensure_vault_structure()
        stamp = (now or datetime.now(UTC)).isoformat(timespec="seconds")
        text = read_text(manifest) or ""
        document = parse_manifest(text)
        # Keep the managed table out of the section split
        suffix = upsert_section(document.suffix, LAST_UPDATED_SECTION, stamp)
        document.suffix = "\n\n" + suffix if not suffix.startswith("\n") else suffix
        rendered = render_manifest(document)
        if rendered != text:
            self._write(manifest, rendered)

    # Navigation

    def overview(self) -> list[str] | None:
        """Entry names of the root manifest, None if the vault has no root."""
        document = self.read_manifest("")
        if document is None:
            return None
        return document.names()

    def list_entities(self) -> list[str]:
        """Names of the entity folders."""
        entities_dir = self.resolve("entities")
        if not entities_dir.is_dir():
            return []
        return sorted(p.name for p in entities_dir.iterdir() if p.is_dir())
