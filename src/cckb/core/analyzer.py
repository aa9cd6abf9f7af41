"""Analyzer gateway - submit a prompt to Claude, get text back."""

import asyncio
import contextlib
import logging
import subprocess
import time
from pathlib import Path
from typing import Protocol

from claude_agent_sdk import (
    ClaudeAgentOptions,
    ClaudeSDKClient,
    CLIConnectionError,
    CLINotFoundError,
    ProcessError,
)
from claude_agent_sdk.types import AssistantMessage, ResultMessage, TextBlock

from cckb.core.config import ANALYZER_MODEL, ANALYZER_TIMEOUT, HEARTBEAT_INTERVAL
from cckb.core.types import OnProgress, ProgressEvent

logger = logging.getLogger(__name__)

ANALYZER_SYSTEM_PROMPT = (
    "You analyze source code and conversation logs and report structured "
    "findings in markdown. Answer only with the requested sections."
)


class AnalyzerFailure(Exception):
    """Base class for analyzer failures. Callers fall back on any of these."""


class AnalyzerUnavailable(AnalyzerFailure):
    """The claude CLI is not installed or cannot be found."""


class AnalyzerTimeout(AnalyzerFailure):
    """The analyzer did not answer within the timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"Analyzer timed out after {timeout:.0f}s")
        self.timeout = timeout


class AnalyzerError(AnalyzerFailure):
    """The analyzer ran but failed."""

    def __init__(self, exit_status: int | None, diagnostics: str = ""):
        super().__init__(f"Analyzer failed (exit {exit_status}): {diagnostics}")
        self.exit_status = exit_status
        self.diagnostics = diagnostics


class Analyzer(Protocol):
    """What the compaction and discovery pipelines need from an analyzer."""

    def is_available(self) -> bool: ...

    async def analyze(
        self,
        prompt: str,
        timeout: float | None = None,
        on_progress: OnProgress | None = None,
    ) -> str: ...


class ClaudeAnalyzer:
    """Analyzer backed by the claude CLI through the agent SDK."""

    def __init__(
        self,
        cwd: Path | str | None = None,
        model: str | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ):
        """
        Initialize analyzer.

        Args:
            cwd: Working directory for the claude process
            model: Model override (defaults to CCKB_MODEL)
            heartbeat_interval: Seconds between liveness heartbeats
        """
        self.cwd = str(cwd) if cwd else None
        self.model = model or ANALYZER_MODEL
        self.heartbeat_interval = heartbeat_interval
        self._active_client: ClaudeSDKClient | None = None

    def is_available(self) -> bool:
        """Check that the claude CLI can be executed."""
        try:
            result = subprocess.run(
                ["claude", "--version"], capture_output=True, text=True, timeout=10
            )
        except (FileNotFoundError, OSError, subprocess.TimeoutExpired):
            logger.debug("claude CLI not available", exc_info=True)
            return False
        return result.returncode == 0

    async def interrupt(self) -> bool:
        """
        Interrupt the running analysis.

        Returns:
            True if interrupt was sent, False if nothing is running
        """
        if self._active_client:
            await self._active_client.interrupt()
            return True
        return False

    def _build_options(self) -> ClaudeAgentOptions:
        return ClaudeAgentOptions(
            system_prompt=ANALYZER_SYSTEM_PROMPT,
            cwd=self.cwd,
            max_turns=1,
            model=self.model,
        )

    async def analyze(
        self,
        prompt: str,
        timeout: float | None = None,
        on_progress: OnProgress | None = None,
    ) -> str:
        """
        Run one analysis.

        Args:
            prompt: Full prompt text
            timeout: Seconds before the call is cancelled
            on_progress: Optional progress callback

        Returns:
            Analyzer response text

        Raises:
            AnalyzerUnavailable: claude CLI not found
            AnalyzerTimeout: No answer within ``timeout``
            AnalyzerError: The process failed or reported an error
        """
        timeout = timeout or ANALYZER_TIMEOUT
        started = time.monotonic()
        received = 0

        def emit(event_type: str, message: str | None = None) -> None:
            if on_progress is None:
                return
            try:
                on_progress(
                    ProgressEvent(
                        type=event_type,  # type: ignore[arg-type]
                        elapsed=time.monotonic() - started,
                        bytes_received=received,
                        message=message,
                    )
                )
            except Exception:
                logger.warning("on_progress callback failed", exc_info=True)

        async def heartbeat() -> None:
            while True:
                await asyncio.sleep(self.heartbeat_interval)
                emit("heartbeat")

        async def run() -> str:
            nonlocal received
            result_text = ""
            async with ClaudeSDKClient(options=self._build_options()) as client:
                self._active_client = client
                try:
                    await client.query(prompt)
                    async for message in client.receive_response():
                        if isinstance(message, AssistantMessage):
                            for block in message.content:
                                if isinstance(block, TextBlock):
                                    result_text += block.text
                                    received += len(block.text.encode("utf-8"))
                                    emit("stdout")
                        elif isinstance(message, ResultMessage):
                            if message.is_error:
                                raise AnalyzerError(None, message.result or "")
                            if message.result:
                                result_text = message.result
                finally:
                    self._active_client = None
            return result_text

        logger.debug(f"Analyzer starting: {len(prompt)} chars, timeout={timeout}s")
        emit("started")
        ticker = asyncio.create_task(heartbeat())
        try:
            text = await asyncio.wait_for(run(), timeout=timeout)
        except TimeoutError:
            emit("error", f"timed out after {timeout:.0f}s")
            raise AnalyzerTimeout(timeout) from None
        except CLINotFoundError as e:
            emit("error", "claude CLI not found")
            raise AnalyzerUnavailable(str(e)) from e
        except CLIConnectionError as e:
            emit("error", str(e))
            raise AnalyzerError(None, str(e)) from e
        except ProcessError as e:
            emit("error", f"exit {e.exit_code}")
            raise AnalyzerError(e.exit_code, e.stderr or str(e)) from e
        except AnalyzerError as e:
            emit("error", e.diagnostics)
            raise
        except Exception as e:
            # Any other SDK or parse failure; CancelledError is not an Exception
            logger.warning(f"Unexpected analyzer error: {e}", exc_info=True)
            emit("error", str(e))
            raise AnalyzerError(None, str(e)) from e
        finally:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker

        emit("complete")
        logger.debug(
            f"Analyzer complete: {len(text)} chars in {time.monotonic() - started:.1f}s"
        )
        return text


_analyzer: ClaudeAnalyzer | None = None


def get_analyzer() -> ClaudeAnalyzer:
    """Get or create the default analyzer instance."""
    global _analyzer
    if _analyzer is None:
        _analyzer = ClaudeAnalyzer()
    return _analyzer


def set_analyzer(analyzer: ClaudeAnalyzer) -> None:
    """Set the default analyzer instance (for testing)."""
    global _analyzer
    _analyzer = analyzer
