"""Discovery - build vault knowledge from a project's source tree."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from cckb.core.aggregate import Aggregator
from cckb.core.analyzer import (
    Analyzer,
    AnalyzerFailure,
    AnalyzerUnavailable,
    get_analyzer,
)
from cckb.core.batching import prepare_batches, summarize_batches
from cckb.core.collector import CollectionResult, FileCollector, load_batch_items
from cckb.core.config import ANALYZER_TIMEOUT, BATCH_PACING
from cckb.core.extraction import parse_response
from cckb.core.prompt import build_discovery_prompt
from cckb.core.settings import KnowledgeBaseConfig, load_config_or_default
from cckb.core.types import ExtractionResult, KnowledgeItem, OnProgress
from cckb.vault.integrator import IntegrationReport, VaultIntegrator
from cckb.vault.store import VaultStore, VaultWriteError

logger = logging.getLogger(__name__)

FALLBACK_FILES_PER_CATEGORY = 10
_FALLBACK_SKIP_CATEGORIES = ("other", "test")


@dataclass
class DiscoveryResult:
    """Outcome of one discovery run."""

    result: ExtractionResult
    files_analyzed: int = 0
    batches_processed: int = 0
    duration: float = 0.0
    integrated: bool = False
    used_fallback: bool = False
    warnings: list[str] = field(default_factory=list)
    report: IntegrationReport = field(default_factory=IntegrationReport)


def fallback_knowledge(collection: CollectionResult) -> ExtractionResult:
    """
    Knowledge derived from the file scan alone.

    Used when the analyzer is unavailable or every batch failed.
    """
    result = ExtractionResult()
    result.knowledge.extend(
        [
            KnowledgeItem(
                topic="Project Languages",
                details=", ".join(collection.languages) or "unknown",
            ),
            KnowledgeItem(topic="Project Type", details=collection.project_type),
            KnowledgeItem(
                topic="Source Files Discovered",
                details=f"{len(collection.files)} files categorized by type",
            ),
        ]
    )

    by_category: dict[str, list[str]] = {}
    for collected in collection.files:
        by_category.setdefault(collected.category, []).append(collected.path)

    for category, paths in by_category.items():
        if category in _FALLBACK_SKIP_CATEGORIES:
            continue
        details = ", ".join(paths[:FALLBACK_FILES_PER_CATEGORY])
        if len(paths) > FALLBACK_FILES_PER_CATEGORY:
            details += f" (+{len(paths) - FALLBACK_FILES_PER_CATEGORY} more)"
        result.knowledge.append(
            KnowledgeItem(topic=f"{category.capitalize()} Files", details=details)
        )

    result.diagnostics.append("Analyzer unavailable; used file-scan fallback")
    return result


class AutoDiscover:
    """Runs collector, batcher, analyzer, parser, aggregator and integrator."""

    def __init__(
        self,
        project_path: Path | str,
        analyzer: Analyzer | None = None,
        on_progress: OnProgress | None = None,
        on_message: Callable[[str], None] | None = None,
        config: KnowledgeBaseConfig | None = None,
        pacing: float = BATCH_PACING,
        timeout: float = ANALYZER_TIMEOUT,
    ):
        """
        Initialize discovery.

        Args:
            project_path: Project root
            analyzer: Analyzer to use (default instance if omitted)
            on_progress: Analyzer progress callback
            on_message: Receives human-readable milestone messages
            config: Project configuration (loaded if omitted)
            pacing: Seconds to wait between batches
            timeout: Per-batch analyzer timeout
        """
        self.project_path = Path(project_path)
        self.analyzer = analyzer or get_analyzer()
        self.on_progress = on_progress
        self.on_message = on_message
        self.config = config or load_config_or_default(self.project_path)
        self.pacing = pacing
        self.timeout = timeout
        self.vault = VaultStore.for_project(self.project_path)

    def _say(self, message: str) -> None:
        logger.info(message)
        if self.on_message:
            self.on_message(message)

    async def discover(
        self,
        max_files: int | None = None,
        max_batch_size: int | None = None,
    ) -> DiscoveryResult:
        """
        Discover and integrate project knowledge.

        Args:
            max_files: Override ``discover.max_files``
            max_batch_size: Override ``discover.max_batch_size``

        Returns:
            DiscoveryResult
        """
        started = time.monotonic()
        settings = self.config.discover
        max_batch_size = max_batch_size or settings.max_batch_size

        collection = FileCollector(self.project_path).collect(
            max_files=max_files or settings.max_files,
            exclude_patterns=settings.exclude_patterns,
            supported_languages=settings.supported_languages,
        )
        self._say(
            f"Detected: {', '.join(collection.languages) or 'unknown'} "
            f"({collection.project_type} project)"
        )
        self._say(
            f"Collected: {collection.total_files_scanned} files -> "
            f"{len(collection.files)} prioritized"
        )

        if not collection.files:
            self._say("No source files found to analyze.")
            return DiscoveryResult(
                result=ExtractionResult(), duration=time.monotonic() - started
            )

        if not await asyncio.to_thread(self.analyzer.is_available):
            self._say("Claude CLI not available. Using fallback analysis...")
            return self._fallback(collection, started, [])

        batches = prepare_batches(load_batch_items(collection.files), max_batch_size)
        self._say(f"Grouped into {summarize_batches(batches)}")

        outcome = DiscoveryResult(
            result=ExtractionResult(), files_analyzed=len(collection.files)
        )
        aggregator = Aggregator()
        integrator = VaultIntegrator(self.vault)

        for batch in batches:
            if batch.index > 0 and self.pacing > 0:
                await asyncio.sleep(self.pacing)

            self._say(
                f"[{batch.index + 1}/{batch.total}] Analyzing {len(batch.items)} "
                f"files (~{batch.estimated_tokens} tokens)..."
            )
            prompt = build_discovery_prompt(
                batch.content, collection.languages, collection.project_type
            )
            try:
                response = await self.analyzer.analyze(
                    prompt, timeout=self.timeout, on_progress=self.on_progress
                )
            except AnalyzerUnavailable as e:
                outcome.warnings.append(f"Analyzer unavailable: {e}")
                logger.warning(f"Analyzer unavailable, stopping discovery: {e}")
                break
            except AnalyzerFailure as e:
                message = f"Batch {batch.index + 1} analysis failed: {e}"
                outcome.warnings.append(message)
                logger.warning(message)
                continue

            outcome.batches_processed += 1
            accepted = aggregator.add(parse_response(response))
            if accepted.is_empty:
                continue

            try:
                outcome.report.merge(integrator.integrate(accepted, touch=False))
            except VaultWriteError as e:
                outcome.warnings.append(f"Vault integration failed: {e}")
                outcome.result = aggregator.result
                outcome.duration = time.monotonic() - started
                return outcome

        if outcome.batches_processed == 0:
            self._say("No successful analyses. Using fallback...")
            return self._fallback(collection, started, outcome.warnings)

        outcome.result = aggregator.result
        try:
            if outcome.report.total:
                self.vault.touch_root_timestamp()
            outcome.integrated = True
        except VaultWriteError as e:
            outcome.warnings.append(f"Vault integration failed: {e}")

        outcome.duration = time.monotonic() - started
        counts = outcome.result.counts()
        self._say(
            f"Discovery complete ({outcome.duration:.1f}s): "
            f"{counts['entities']} entities, {counts['architecture']} patterns, "
            f"{counts['services']} services, {counts['knowledge']} knowledge items"
        )
        return outcome

    def _fallback(
        self,
        collection: CollectionResult,
        started: float,
        warnings: list[str],
    ) -> DiscoveryResult:
        result = fallback_knowledge(collection)
        outcome = DiscoveryResult(
            result=result,
            files_analyzed=len(collection.files),
            used_fallback=True,
            warnings=list(warnings),
        )
        try:
            outcome.report = VaultIntegrator(self.vault).integrate(result)
            outcome.integrated = True
            self._say("Fallback discovery integrated into vault")
        except VaultWriteError as e:
            outcome.warnings.append(f"Vault integration failed: {e}")
            self._say("Fallback discovery completed (vault integration failed)")
        outcome.duration = time.monotonic() - started
        return outcome
