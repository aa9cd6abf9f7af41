"""Aggregator - merge per-batch extraction results, first record wins."""

from cckb.core.types import ExtractionResult

CATEGORIES = ("entities", "architecture", "services", "knowledge")


class Aggregator:
    """Incremental merge of extraction results.

    Records are deduplicated per category by their case-insensitive key.
    The first record seen for a key is kept; later duplicates are dropped
    whole, never merged field by field.
    """

    def __init__(self):
        self._seen: dict[str, set[str]] = {name: set() for name in CATEGORIES}
        self.result = ExtractionResult()

    def add(self, result: ExtractionResult) -> ExtractionResult:
        """
        Fold one result into the running total.

        Returns:
            Only the records from ``result`` that were newly accepted
        """
        accepted = ExtractionResult(raw_text=result.raw_text)
        for name in CATEGORIES:
            seen = self._seen[name]
            for record in getattr(result, name):
                if record.key in seen:
                    continue
                seen.add(record.key)
                getattr(accepted, name).append(record)
                getattr(self.result, name).append(record)

        accepted.diagnostics = list(result.diagnostics)
        self.result.diagnostics.extend(result.diagnostics)
        if result.raw_text:
            self.result.raw_text = (
                f"{self.result.raw_text}\n\n{result.raw_text}"
                if self.result.raw_text
                else result.raw_text
            )
        return accepted


def merge_results(results: list[ExtractionResult]) -> ExtractionResult:
    """
    Merge results in order into one unified result.

    Args:
        results: Per-batch results, in batch order

    Returns:
        Unified result; empty for empty input
    """
    aggregator = Aggregator()
    for result in results:
        aggregator.add(result)
    return aggregator.result
