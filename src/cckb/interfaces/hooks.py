"""Capture hooks - agent lifecycle events in, hook protocol JSON out.

Each handler receives the decoded event payload and returns the mapping to
print on stdout. Handlers never raise and never produce visible output; any
failure is logged at debug level and the silent continue response is
returned.
"""

import asyncio
import functools
import logging
import os
import re
import subprocess
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cckb.core.compaction import CompactionEngine
from cckb.core.fileio import read_model, write_model
from cckb.core.sessions import SessionStore
from cckb.core.settings import KnowledgeBaseConfig, load_config_or_default
from cckb.core.types import VaultCache
from cckb.vault.layout import ensure_kb_structure, get_state_path
from cckb.vault.store import VaultStore

logger = logging.getLogger(__name__)

HookOutput = dict[str, Any]
HookHandler = Callable[[dict[str, Any]], HookOutput]

VAULT_CACHE_FILE = "vault-cache.json"
CONTENT_SCAN_CHARS = 500

_PASCAL_RE = re.compile(r"[A-Z][a-z]+(?:[A-Z][a-z]+)*")
_SOURCE_PATH_RE = re.compile(
    r"[\w./-]+\.(?:tsx?|jsx?|mjs|cjs|py|go|rs|java|cs|rb|php)\b"
)


def silent_output(**extra: Any) -> HookOutput:
    """The hook response that lets the agent continue without output."""
    return {"continue": True, "suppressOutput": True, **extra}


def _never_raise(handler: HookHandler) -> HookHandler:
    @functools.wraps(handler)
    def wrapper(payload: dict[str, Any]) -> HookOutput:
        try:
            return handler(payload)
        except Exception:
            logger.debug(f"Hook {handler.__name__} failed", exc_info=True)
            return silent_output()

    return wrapper


def _project(payload: dict[str, Any]) -> Path:
    return Path(payload.get("cwd") or os.getcwd())


def _session_store(project: Path, config: KnowledgeBaseConfig) -> SessionStore:
    return SessionStore(project, config.rotation_threshold_bytes)


def _truncate(text: str, max_length: int) -> str:
    return text[:max_length] + "..." if len(text) > max_length else text


def format_tool_action(
    tool_name: str, tool_input: dict[str, Any], max_length: int
) -> tuple[str, str | None]:
    """
    Describe a tool call for the session log.

    Returns:
        (action text, target path if any)
    """
    file_path = tool_input.get("file_path")
    match tool_name:
        case "Write":
            return f"Created file: {file_path}", file_path
        case "Edit" | "MultiEdit":
            return f"Modified file: {file_path}", file_path
        case "Bash":
            return f"Executed: {_truncate(tool_input.get('command') or '', max_length)}", None
        case "Task":
            prompt = tool_input.get("prompt") or ""
            return f"Spawned agent: {_truncate(prompt, max_length)}", None
        case _:
            return f"Used tool: {tool_name}", None


@_never_raise
def session_start(payload: dict[str, Any]) -> HookOutput:
    """Resolve the session for this transcript and offer the vault overview."""
    project = _project(payload)
    config = load_config_or_default(project)

    ensure_kb_structure(project)
    store = _session_store(project, config)
    session_id = store.resolve_session(payload.get("transcript_path"))
    store.mark_active(session_id)

    vault = VaultStore.for_project(project)
    vault.ensure_vault_structure()
    names = vault.overview()
    if names is None:
        return silent_output()

    contents = ", ".join(names) if names else "empty"
    return silent_output(
        additionalContext=f"[CCKB] Knowledge Base available. Vault contents: {contents}"
    )


@_never_raise
def user_prompt(payload: dict[str, Any]) -> HookOutput:
    """Record the user's prompt in the active session."""
    project = _project(payload)
    prompt = payload.get("prompt")
    if not prompt:
        return silent_output()

    store = _session_store(project, load_config_or_default(project))
    session_id = store.get_active()
    if session_id:
        store.append_user_input(session_id, prompt)
        store.check_rotation(session_id)
    return silent_output()


@_never_raise
def post_tool_use(payload: dict[str, Any]) -> HookOutput:
    """Record a captured tool action in the active session."""
    project = _project(payload)
    config = load_config_or_default(project)

    tool_name = payload.get("tool_name") or ""
    tool_input = payload.get("tool_input")
    if tool_name not in config.capture.tools or not isinstance(tool_input, dict):
        return silent_output()

    store = _session_store(project, config)
    session_id = store.get_active()
    if session_id:
        action, target = format_tool_action(
            tool_name, tool_input, config.capture.max_content_length
        )
        store.append_tool_action(session_id, tool_name, action, target)
        store.check_rotation(session_id)
    return silent_output()


def launch_background_compaction(project: Path, session_id: str) -> None:
    """Start compaction in a detached process so the agent can exit."""
    subprocess.Popen(
        [
            sys.executable,
            "-m",
            "cckb",
            "compact",
            "--project",
            str(project),
            "--session",
            session_id,
        ],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


@_never_raise
def stop(payload: dict[str, Any]) -> HookOutput:
    """Compact the active session when the agent stops."""
    project = _project(payload)
    config = load_config_or_default(project)
    if config.compaction.trigger != "session_end":
        logger.debug(f"Skipping compaction, trigger is {config.compaction.trigger}")
        return silent_output()

    store = _session_store(project, config)
    session_id = store.get_active()
    if not session_id:
        return silent_output()

    if config.compaction.background:
        launch_background_compaction(project, session_id)
    else:
        asyncio.run(CompactionEngine(project, store=store, config=config).compact(session_id))
    return silent_output()


def extract_keywords(tool_input: dict[str, Any]) -> list[str]:
    """Candidate entity names from a tool call, in first-seen order."""
    keywords: list[str] = []

    file_path = tool_input.get("file_path")
    if isinstance(file_path, str):
        keywords.extend(part for part in file_path.split("/") if len(part) > 2)

    content = tool_input.get("content")
    if isinstance(content, str):
        keywords.extend(_PASCAL_RE.findall(content[:CONTENT_SCAN_CHARS]))

    command = tool_input.get("command")
    if isinstance(command, str):
        keywords.extend(_SOURCE_PATH_RE.findall(command))

    return list(dict.fromkeys(keywords))


def load_vault_cache(project: Path, ttl_seconds: int) -> VaultCache:
    """Vault snapshot from the state folder, refreshed when older than the TTL."""
    cache_path = get_state_path(project) / VAULT_CACHE_FILE
    cache = read_model(cache_path, VaultCache)
    now = datetime.now(UTC)
    if cache is not None:
        last = cache.last_updated
        if last.tzinfo is None:
            last = last.replace(tzinfo=UTC)
        if (now - last).total_seconds() < ttl_seconds:
            return cache

    vault = VaultStore.for_project(project)
    cache = VaultCache(
        overview=", ".join(vault.overview() or []),
        entities=vault.list_entities(),
        last_updated=now,
    )
    write_model(cache_path, cache)
    return cache


@_never_raise
def notification(payload: dict[str, Any]) -> HookOutput:
    """Point the agent at vault entities related to the current tool call."""
    project = _project(payload)
    config = load_config_or_default(project)
    tool_input = payload.get("tool_input")
    if not config.feedback.enabled or not isinstance(tool_input, dict):
        return silent_output()

    keywords = [k.lower() for k in extract_keywords(tool_input)]
    if not keywords:
        return silent_output()

    cache = load_vault_cache(project, config.feedback.cache_ttl_seconds)
    matches = [
        entity
        for entity in cache.entities
        if any(entity.lower() in k or k in entity.lower() for k in keywords)
    ]
    if not matches:
        return silent_output()

    return silent_output(
        additionalContext=(
            f"[CCKB] Related vault knowledge: {', '.join(matches)}. "
            "Check vault/entities/ for details."
        )
    )


HANDLERS: dict[str, HookHandler] = {
    "session-start": session_start,
    "user-prompt": user_prompt,
    "post-tool-use": post_tool_use,
    "stop": stop,
    "notification": notification,
}


def run_hook(name: str, payload: dict[str, Any]) -> HookOutput:
    """Dispatch a hook by name; unknown names get the silent response."""
    handler = HANDLERS.get(name)
    if handler is None:
        logger.debug(f"Unknown hook: {name}")
        return silent_output()
    return handler(payload)
