"""Extraction parser - analyzer markdown to typed records.

The analyzer answers with up to four headed sections (Entities, Architecture,
Services, Knowledge), each holding bullet blocks of bold field labels:

    ## Entities
    - **Name**: Order
    - **Location**: src/order/model.ts
    - **Attributes**: id, total, status

Parsing is tolerant: heading level and case do not matter, labels may be
written ``**Name**:`` or ``**Name:**``, values may continue on following
lines, list values may be comma-separated or sub-bullets. A blank line
followed by unindented prose ends the value, as does plain prose under a
list field. Blocks without their identifying field are dropped and noted in
``diagnostics``.
"""

import logging
import re
from collections.abc import Callable

from cckb.core.types import (
    ArchitectureItem,
    Entity,
    ExtractionResult,
    KnowledgeItem,
    ServiceItem,
)

logger = logging.getLogger(__name__)

SECTION_NAMES = ("entities", "architecture", "services", "knowledge")

LIST_FIELDS = frozenset({"attributes", "relations", "methods", "affected files"})

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.+?)\s*#*\s*$")
_LABEL_RE = re.compile(
    r"^\s*(?:[-*+]|\d+[.)])?\s*\*\*(?P<label>[^*:]+?)\s*"
    r"(?::\s*\*\*|\*\*\s*:)\s*(?P<value>.*)$"
)
_BULLET_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?P<item>.+)$")

Fields = dict[str, str | list[str]]


def _clean(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == "`":
        value = value[1:-1].strip()
    return value


def _split_list(value: str) -> list[str]:
    return [_clean(part) for part in value.split(",") if _clean(part)]


def split_sections(text: str) -> tuple[dict[str, str], list[str]]:
    """
    Split analyzer output into the recognized sections.

    Returns:
        (section name -> body text, names of ignored headed sections)
    """
    sections: dict[str, list[str]] = {}
    ignored: list[str] = []
    current: str | None = None

    for line in text.splitlines():
        heading = _HEADING_RE.match(line)
        if heading:
            title = heading.group("title").strip().rstrip(":").strip().lower()
            if title in SECTION_NAMES:
                current = title
                sections.setdefault(current, [])
            else:
                current = None
                ignored.append(heading.group("title").strip())
            continue
        if current is not None:
            sections[current].append(line)

    return {name: "\n".join(lines) for name, lines in sections.items()}, ignored


def parse_blocks(section: str, primary: str) -> tuple[list[Fields], int]:
    """
    Split a section body into field blocks starting at ``primary`` labels.

    Args:
        section: Section body text
        primary: Lowercase label that opens a block

    Returns:
        (field blocks, number of discarded label groups lacking ``primary``)
    """
    blocks: list[Fields] = []
    current: Fields | None = None
    last_field: str | None = None
    discarded = 0
    in_orphan = False
    after_blank = False

    for line in section.splitlines():
        if not line.strip():
            after_blank = True
            continue
        indented = line[:1].isspace()
        if after_blank and not indented:
            # A flush-left line after a blank line starts new prose
            last_field = None
        after_blank = False

        label_match = _LABEL_RE.match(line)
        if label_match:
            label = " ".join(label_match.group("label").lower().split())
            value = label_match.group("value").strip()

            if label == primary:
                current = {}
                blocks.append(current)
                in_orphan = False
            elif current is None:
                # Fields before any primary label have no record to attach to
                if not in_orphan:
                    discarded += 1
                    in_orphan = True
                continue

            if label in current:
                last_field = None
                continue
            current[label] = _split_list(value) if label in LIST_FIELDS else _clean(value)
            last_field = label
            continue

        if current is None or last_field is None:
            continue

        existing = current[last_field]
        bullet = _BULLET_RE.match(line)
        if isinstance(existing, list):
            if bullet:
                existing.append(_clean(bullet.group("item")))
            elif indented:
                existing.extend(_split_list(line))
            else:
                # Lists only continue on bullets or indented lines
                last_field = None
        elif last_field != primary:
            text = bullet.group("item") if bullet else line
            current[last_field] = f"{existing} {text.strip()}".strip()

    return blocks, discarded


def _text(fields: Fields, name: str) -> str:
    value = fields.get(name, "")
    return value if isinstance(value, str) else ", ".join(value)


def _list(fields: Fields, name: str) -> list[str]:
    value = fields.get(name, [])
    return value if isinstance(value, list) else _split_list(value)


def _optional(fields: Fields, name: str) -> str | None:
    return _text(fields, name) or None


def _entity(fields: Fields) -> Entity:
    return Entity(
        name=_text(fields, "name"),
        location=_optional(fields, "location"),
        attributes=_list(fields, "attributes"),
        relations=_list(fields, "relations"),
    )


def _architecture(fields: Fields) -> ArchitectureItem:
    return ArchitectureItem(
        pattern=_text(fields, "pattern"),
        description=_text(fields, "description"),
        affected_files=_list(fields, "affected files"),
    )


def _service(fields: Fields) -> ServiceItem:
    return ServiceItem(
        name=_text(fields, "name"),
        location=_optional(fields, "location"),
        purpose=_text(fields, "purpose"),
        methods=_list(fields, "methods"),
    )


def _knowledge(fields: Fields) -> KnowledgeItem:
    return KnowledgeItem(topic=_text(fields, "topic"), details=_text(fields, "details"))


_SECTION_PARSERS: dict[str, tuple[str, str, Callable[[Fields], object]]] = {
    "entities": ("name", "entities", _entity),
    "architecture": ("pattern", "architecture", _architecture),
    "services": ("name", "services", _service),
    "knowledge": ("topic", "knowledge", _knowledge),
}


def parse_response(text: str) -> ExtractionResult:
    """
    Parse one analyzer response.

    Never raises on malformed input; missing sections yield empty lists.

    Args:
        text: Analyzer response text

    Returns:
        ExtractionResult with records, diagnostics and the raw text
    """
    result = ExtractionResult(raw_text=text)
    sections, ignored = split_sections(text or "")

    for title in ignored:
        result.diagnostics.append(f"Ignored section: {title}")

    for section_name, (primary, attribute, build) in _SECTION_PARSERS.items():
        body = sections.get(section_name)
        if body is None:
            continue
        blocks, discarded = parse_blocks(body, primary)
        records = getattr(result, attribute)
        for fields in blocks:
            if not _text(fields, primary):
                discarded += 1
                continue
            records.append(build(fields))
        if discarded:
            result.diagnostics.append(
                f"Discarded {discarded} {section_name} block(s) without "
                f"{primary.title()}"
            )

    logger.debug(f"Parsed analyzer response: {result.counts()}")
    return result
