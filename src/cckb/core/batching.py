"""Batcher - pack labelled text items into size-bounded analyzer batches."""

import logging
import math

from cckb.core.types import Batch, BatchItem

logger = logging.getLogger(__name__)

ITEM_SEPARATOR = "\n\n"
TRUNCATION_MARKER = "\n[... TRUNCATED - content too large ...]"
LABEL_ELLIPSIS = "..."


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def begin_marker(label: str) -> str:
    return f"===== FILE: {label} ====="


def end_marker(label: str) -> str:
    return f"===== END: {label} ====="


def format_item(item: BatchItem) -> str:
    """Wrap an item's content in begin/end markers carrying its label."""
    return f"{begin_marker(item.label)}\n{item.content}\n{end_marker(item.label)}"


def _fit_label(label: str, room: int) -> str:
    """Shorten a label to ``room`` characters, keeping its tail."""
    if len(label) <= room:
        return label
    if room <= len(LABEL_ELLIPSIS):
        return label[len(label) - room :] if room > 0 else ""
    return LABEL_ELLIPSIS + label[len(label) - room + len(LABEL_ELLIPSIS) :]


def truncate_item(item: BatchItem, max_size: int) -> str:
    """
    Format an oversized item so it fits in ``max_size`` characters.

    The content is cut at the last line break that keeps the result within
    the bound, so the kept text ends with a complete line, followed by the
    truncation marker. When not even the first line fits, no content is
    kept. A label too long for the bound is shortened in the markers.

    Args:
        item: Item whose formatted content exceeds the bound
        max_size: Batch size bound

    Returns:
        Formatted, truncated item text
    """
    frame = len(begin_marker("")) + len(end_marker("")) + 2 + len(TRUNCATION_MARKER)
    if frame > max_size:
        return TRUNCATION_MARKER.strip()[:max_size]

    label = _fit_label(item.label, (max_size - frame) // 2)
    available = max_size - frame - 2 * len(label)

    cut = item.content.rfind("\n", 0, available + 1)
    kept = item.content[:cut] if cut != -1 else ""

    return f"{begin_marker(label)}\n{kept}{TRUNCATION_MARKER}\n{end_marker(label)}"


def _make_batch(items: list[BatchItem], parts: list[str], index: int) -> Batch:
    content = ITEM_SEPARATOR.join(parts)
    return Batch(
        items=items,
        content=content,
        estimated_tokens=estimate_tokens(content),
        index=index,
    )


def prepare_batches(items: list[BatchItem], max_batch_size: int) -> list[Batch]:
    """
    Pack items, in order, into batches of at most ``max_batch_size`` chars.

    An item that would overflow the current batch closes it and starts the
    next one. An item that exceeds the bound on its own is emitted alone,
    truncated. Every batch reports the total batch count.

    Args:
        items: Items in priority order
        max_batch_size: Maximum length of a batch's content

    Returns:
        Batches in input order
    """
    if max_batch_size <= 0:
        raise ValueError("max_batch_size must be positive")

    batches: list[Batch] = []
    current_items: list[BatchItem] = []
    current_parts: list[str] = []
    current_len = 0

    def flush() -> None:
        nonlocal current_items, current_parts, current_len
        if current_parts:
            batches.append(_make_batch(current_items, current_parts, len(batches)))
        current_items, current_parts, current_len = [], [], 0

    for item in items:
        formatted = format_item(item)

        if len(formatted) > max_batch_size:
            flush()
            truncated = truncate_item(item, max_batch_size)
            batch = _make_batch([item], [truncated], len(batches))
            batch.truncated = True
            batches.append(batch)
            logger.debug(
                f"Truncated {item.label}: {len(formatted)} -> {len(truncated)} chars"
            )
            continue

        added = len(formatted) + (len(ITEM_SEPARATOR) if current_parts else 0)
        if current_len + added > max_batch_size:
            flush()
            added = len(formatted)

        current_items.append(item)
        current_parts.append(formatted)
        current_len += added

    flush()

    for batch in batches:
        batch.total = len(batches)

    return batches


def summarize_batches(batches: list[Batch]) -> str:
    """One-line description of a batching run for logs and progress output."""
    files = sum(len(b.items) for b in batches)
    tokens = sum(b.estimated_tokens for b in batches)
    truncated = sum(1 for b in batches if b.truncated)
    summary = f"{len(batches)} batches, {files} items, ~{tokens} tokens"
    if truncated:
        summary += f" ({truncated} truncated)"
    return summary
