"""Compaction engine - turn a finished session log into vault knowledge."""

import gzip
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from cckb.core.aggregate import merge_results
from cckb.core.analyzer import Analyzer, AnalyzerFailure, get_analyzer
from cckb.core.batching import prepare_batches
from cckb.core.config import COMPACTION_TIMEOUT
from cckb.core.extraction import parse_response
from cckb.core.fileio import atomic_write_text
from cckb.core.prompt import build_summarization_prompt
from cckb.core.sessions import SessionStore
from cckb.core.settings import KnowledgeBaseConfig, load_config_or_default
from cckb.core.types import BatchItem, ExtractionResult, KnowledgeItem, OnProgress
from cckb.vault.integrator import IntegrationReport, VaultIntegrator
from cckb.vault.store import VaultStore, VaultWriteError

logger = logging.getLogger(__name__)

SUMMARY_FILE = "summary.md"
ARCHIVE_FILE = "raw.txt.gz"
MAX_FALLBACK_ACTIONS = 20

_FILE_LINE_RE = re.compile(
    r"(?:Created|Modified|Edited)[^:\n]*:\s*(\S+\.[A-Za-z0-9]+)", re.IGNORECASE
)


@dataclass
class CompactionResult:
    """Outcome of compacting one session."""

    session_id: str
    result: ExtractionResult
    summary_path: Path | None = None
    used_fallback: bool = False
    integrated: bool = False
    report: IntegrationReport | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


def fallback_extraction(session_id: str, conversation: str) -> ExtractionResult:
    """
    Minimal extraction from the raw log when the analyzer cannot run.

    File paths from create/modify/edit lines and the tool action headers
    become knowledge records.
    """
    files: list[str] = []
    actions: list[str] = []
    for line in conversation.splitlines():
        match = _FILE_LINE_RE.search(line)
        if match and match.group(1) not in files:
            files.append(match.group(1))
        if "[TOOL:" in line:
            actions.append(line.strip())

    result = ExtractionResult()
    if files:
        result.knowledge.append(
            KnowledgeItem(
                topic=f"Session {session_id} Files",
                details="\n".join(f"- {f}" for f in files),
            )
        )
    if actions:
        result.knowledge.append(
            KnowledgeItem(
                topic=f"Session {session_id} Actions",
                details="\n".join(f"- {a}" for a in actions[:MAX_FALLBACK_ACTIONS]),
            )
        )
    result.diagnostics.append("Analyzer unavailable; used log-based fallback")
    return result


def render_fallback_summary(result: ExtractionResult) -> str:
    """Markdown body for summary.md when no analyzer text exists."""
    sections = [f"## {item.topic}\n\n{item.details}" for item in result.knowledge]
    return "\n\n".join(sections) or "_No activity captured._"


class CompactionEngine:
    """Summarizes a session log and integrates the result into the vault."""

    def __init__(
        self,
        project_path: Path | str,
        store: SessionStore | None = None,
        analyzer: Analyzer | None = None,
        config: KnowledgeBaseConfig | None = None,
    ):
        self.project_path = Path(project_path)
        self.config = config or load_config_or_default(self.project_path)
        self.store = store or SessionStore(
            self.project_path, self.config.rotation_threshold_bytes
        )
        self.analyzer = analyzer or get_analyzer()

    async def compact(
        self,
        session_id: str,
        on_progress: OnProgress | None = None,
    ) -> CompactionResult | None:
        """
        Compact one session.

        Args:
            session_id: Session to compact
            on_progress: Optional analyzer progress callback

        Returns:
            CompactionResult, or None when the log is too short to bother
        """
        conversation = self.store.read_all(session_id)
        if len(conversation.strip()) < self.config.compaction.min_conversation_chars:
            logger.debug(f"Session {session_id} too short to compact")
            return None

        batches = prepare_batches(
            [BatchItem(label=f"session:{session_id}", content=conversation)],
            self.config.discover.max_batch_size,
        )
        outcome = CompactionResult(session_id=session_id, result=ExtractionResult())

        summary_text = ""
        try:
            summary_text = await self.analyzer.analyze(
                build_summarization_prompt(batches[0].content),
                timeout=COMPACTION_TIMEOUT,
                on_progress=on_progress,
            )
        except AnalyzerFailure as e:
            logger.warning(f"Compaction analyzer failed for {session_id}: {e}")
            outcome.warnings.append(str(e))

        if summary_text.strip():
            outcome.result = merge_results([parse_response(summary_text)])
        else:
            outcome.result = fallback_extraction(session_id, conversation)
            outcome.used_fallback = True
            summary_text = render_fallback_summary(outcome.result)

        outcome.summary_path = self._write_summary(session_id, summary_text)
        self._cleanup(session_id)

        if self.config.vault.auto_integrate:
            integrator = VaultIntegrator(VaultStore.for_project(self.project_path))
            try:
                outcome.report = integrator.integrate(outcome.result)
                outcome.integrated = True
            except VaultWriteError as e:
                logger.warning(f"Vault integration failed for {session_id}: {e}")
                outcome.error = str(e)

        self.store.close_session(session_id)
        logger.info(
            f"Compacted session {session_id}: {outcome.result.counts()}, "
            f"fallback={outcome.used_fallback}, integrated={outcome.integrated}"
        )
        return outcome

    def _session_dir(self, session_id: str) -> Path:
        state = self.store.get_state(session_id)
        if state is not None:
            return Path(state.conversation_path)
        return self.store.conversations_path / session_id

    def _write_summary(self, session_id: str, content: str) -> Path:
        path = self._session_dir(session_id) / SUMMARY_FILE
        generated = datetime.now(UTC).isoformat(timespec="seconds")
        atomic_write_text(
            path,
            f"# Session Summary: {session_id}\nGenerated: {generated}\n\n"
            f"{content.strip()}\n",
        )
        return path

    def _cleanup(self, session_id: str) -> None:
        mode = self.config.compaction.cleanup_after_summary
        if mode == "keep":
            return

        segments = self.store.list_segments(session_id)
        if not segments:
            return

        if mode == "archive":
            try:
                combined = "\n\n".join(
                    f"=== {segment.name} ===\n{segment.read_text(encoding='utf-8')}"
                    for segment in segments
                )
                archive = self._session_dir(session_id) / ARCHIVE_FILE
                archive.write_bytes(gzip.compress(combined.encode("utf-8")))
            except OSError as e:
                logger.warning(f"Failed to archive session {session_id}: {e}")
                return

        for segment in segments:
            try:
                segment.unlink()
            except OSError:
                logger.debug(f"Could not delete {segment}", exc_info=True)
