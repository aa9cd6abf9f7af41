"""Manifest codec - parse and render folder INDEX documents.

A manifest is a titled markdown document whose entry table sits between two
HTML comment markers under a ``## Contents`` heading:

    # Entities

    ## Contents

    <!-- cckb:contents:start -->
    | Item | Description |
    |------|-------------|
    | [order](./order/INDEX.md) | Documentation for Order entity |
    <!-- cckb:contents:end -->

Only the region between the markers is managed. Everything before and after
it is kept verbatim, so rendering a parsed manifest reproduces the input
byte for byte. Manifests written before the markers existed are read by
locating the table under ``## Contents``; they gain markers on first rewrite.
"""

import re
from dataclasses import dataclass, field, replace
from pathlib import PurePosixPath

from cckb.core.types import EntryKind, VaultEntry

CONTENTS_HEADING = "## Contents"
START_MARKER = "<!-- cckb:contents:start -->"
END_MARKER = "<!-- cckb:contents:end -->"
TABLE_HEADER = "| Item | Description |\n|------|-------------|\n"
EMPTY_PLACEHOLDER = "_No entries yet._"

_ROW_RE = re.compile(
    r"^\|\s*\[(?P<name>(?:\\.|[^\]\\])*)\]\((?P<link>[^)]*)\)\s*"
    r"\|\s*(?P<desc>(?:\\.|[^\\])*?)\s*\|\s*$"
)
_UNESCAPE_RE = re.compile(r"\\(.)")


@dataclass
class ManifestDocument:
    """A manifest split into its managed entry table and the text around it."""

    prefix: str
    entries: list[VaultEntry] = field(default_factory=list)
    suffix: str = "\n"

    def names(self) -> list[str]:
        return [entry.name for entry in self.entries]

    def get(self, name: str) -> VaultEntry | None:
        key = entry_key(name)
        for entry in self.entries:
            if entry_key(entry.name) == key:
                return entry
        return None


def folder_title(folder: str) -> str:
    """Human-readable manifest title derived from a vault folder path."""
    segment = PurePosixPath(folder).name if folder not in ("", ".") else ""
    if not segment:
        return "Vault"
    return segment[:1].upper() + segment[1:]


def infer_kind(link: str) -> EntryKind:
    """Links to a sub-folder point at its manifest or end with a slash."""
    if link.endswith("/"):
        return "folder"
    if PurePosixPath(link).stem == "INDEX":
        return "folder"
    return "file"


def _escape(text: str, specials: str) -> str:
    text = text.replace("\\", "\\\\")
    for char in specials:
        text = text.replace(char, "\\" + char)
    return text


def _unescape(text: str) -> str:
    return _UNESCAPE_RE.sub(r"\1", text)


def _one_line(text: str) -> str:
    return " ".join(text.split())


def entry_key(name: str) -> str:
    """Row identity: whitespace collapsed as rendered, case-folded."""
    return _one_line(name).casefold()


def normalize_entry(entry: VaultEntry) -> VaultEntry:
    """The entry as it reads back after a render and parse."""
    return replace(
        entry,
        name=_one_line(entry.name),
        description=_one_line(entry.description),
        kind=infer_kind(entry.link),
    )


def render_row(entry: VaultEntry) -> str:
    """Render one table row."""
    name = _escape(_one_line(entry.name), "[]|")
    description = _escape(_one_line(entry.description), "|")
    return f"| [{name}]({entry.link}) | {description} |"


def parse_row(line: str) -> VaultEntry | None:
    """Parse one table row, None for anything that is not an entry row."""
    match = _ROW_RE.match(line.strip())
    if not match:
        return None
    link = match.group("link").strip()
    return VaultEntry(
        name=_unescape(match.group("name")),
        link=link,
        description=_unescape(match.group("desc")),
        kind=infer_kind(link),
    )


def render_table(entries: list[VaultEntry]) -> str:
    """Render the managed region, markers included."""
    if entries:
        body = TABLE_HEADER + "".join(render_row(e) + "\n" for e in entries)
    else:
        body = EMPTY_PLACEHOLDER + "\n"
    return f"{START_MARKER}\n{body}{END_MARKER}"


def _parse_rows(block: str) -> list[VaultEntry]:
    entries = []
    for line in block.splitlines():
        entry = parse_row(line)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_manifest(text: str) -> ManifestDocument:
    """
    Split a manifest into prefix, entries and suffix.

    Args:
        text: Manifest document text

    Returns:
        ManifestDocument whose render reproduces ``text`` when it was
        produced by ``render_manifest``
    """
    start = text.find(START_MARKER)
    end = text.find(END_MARKER, start + len(START_MARKER)) if start != -1 else -1
    if start != -1 and end != -1:
        return ManifestDocument(
            prefix=text[:start],
            entries=_parse_rows(text[start + len(START_MARKER) : end]),
            suffix=text[end + len(END_MARKER) :],
        )
    return _parse_legacy(text)


def _parse_legacy(text: str) -> ManifestDocument:
    lines = text.splitlines(keepends=True)
    heading_at = None
    for i, line in enumerate(lines):
        if line.strip().lower() == CONTENTS_HEADING.lower():
            heading_at = i
            break

    if heading_at is None:
        prefix = text.rstrip("\n") + "\n\n" if text.strip() else ""
        return ManifestDocument(prefix=f"{prefix}{CONTENTS_HEADING}\n\n")

    # The table is the run of table/placeholder lines after the heading
    i = heading_at + 1
    while i < len(lines) and not lines[i].strip():
        i += 1
    table_start = i
    while i < len(lines) and (
        lines[i].lstrip().startswith("|") or lines[i].strip() == EMPTY_PLACEHOLDER
    ):
        i += 1

    prefix = "".join(lines[:table_start])
    if not prefix.endswith("\n\n"):
        prefix = prefix.rstrip("\n") + "\n\n"
    return ManifestDocument(
        prefix=prefix,
        entries=_parse_rows("".join(lines[table_start:i])),
        suffix="\n" + "".join(lines[i:]),
    )


def render_manifest(document: ManifestDocument) -> str:
    """Render a manifest, keeping prefix and suffix verbatim."""
    return document.prefix + render_table(document.entries) + document.suffix


def new_manifest(title: str, description: str | None = None) -> ManifestDocument:
    """Build an empty manifest with a title and optional lead paragraph."""
    prefix = f"# {title}\n\n"
    if description:
        prefix += f"{description.strip()}\n\n"
    prefix += f"{CONTENTS_HEADING}\n\n"
    return ManifestDocument(prefix=prefix)


def merge_entry(
    entries: list[VaultEntry], entry: VaultEntry
) -> tuple[list[VaultEntry], bool]:
    """
    Upsert ``entry`` keyed by ``entry_key`` of its display name.

    Existing entries keep their order; an entry with the same key is
    replaced in place and a new key is appended.

    Returns:
        (merged entries, whether anything changed)
    """
    entry = normalize_entry(entry)
    key = entry_key(entry.name)
    merged = list(entries)
    for i, existing in enumerate(merged):
        if entry_key(existing.name) == key:
            if existing == entry:
                return merged, False
            merged[i] = entry
            return merged, True
    merged.append(entry)
    return merged, True
