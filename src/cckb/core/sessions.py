"""Session store - conversation log segments and session identity.

Each session owns a folder of append-only text segments named by their
rotation index (``0.txt``, ``1.txt``, ...). Two small JSON records under the
state directory make the store usable from short-lived hook processes:

- ``session-map.json`` maps an external transcript reference (or, for
  sessions created without one, the conversation folder) to session metadata.
- ``active-session.json`` points at the session new capture events go to.
"""

import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from cckb.core.fileio import atomic_write_text, read_model, read_text, write_model
from cckb.core.settings import load_config_or_default
from cckb.core.types import (
    ActiveSession,
    Actor,
    ConversationEntry,
    SessionState,
    ToolAction,
)
from cckb.vault.layout import get_conversations_path, get_state_path

logger = logging.getLogger(__name__)

SESSION_MAP_FILE = "session-map.json"
ACTIVE_SESSION_FILE = "active-session.json"

# Separates segments in read_all output; entries use "---" so this must differ
SEGMENT_BOUNDARY = "\n\n=== segment boundary ===\n\n"

_SEGMENT_RE = re.compile(r"^(\d+)\.txt$")
_SessionMap = TypeAdapter(dict[str, SessionState])


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat(timespec="milliseconds")


def generate_session_id() -> str:
    """Allocate a new opaque session id."""
    return str(uuid4())


class SessionNotFound(Exception):
    """Raised when writing to a session the store does not know."""

    def __init__(self, session_id: str):
        super().__init__(f"No session found for: {session_id}")
        self.session_id = session_id


class SessionStore:
    """File-backed store for session logs and session identity."""

    def __init__(
        self,
        project_path: Path | str,
        rotation_threshold_bytes: int | None = None,
    ):
        """
        Initialize session store.

        Args:
            project_path: Project root containing the knowledge base
            rotation_threshold_bytes: Segment size that triggers rotation
                (defaults to the project's compaction.size_threshold_kb)
        """
        self.project_path = Path(project_path)
        self.conversations_path = get_conversations_path(self.project_path)
        self.state_path = get_state_path(self.project_path)
        if rotation_threshold_bytes is None:
            config = load_config_or_default(self.project_path)
            rotation_threshold_bytes = config.rotation_threshold_bytes
        self.rotation_threshold_bytes = rotation_threshold_bytes

    # Session identity

    def resolve_session(self, external_ref: str | None = None) -> str:
        """
        Return the session bound to ``external_ref``, creating one if needed.

        Args:
            external_ref: Stable external reference (e.g. transcript path)

        Returns:
            Session ID
        """
        if external_ref:
            session_map = self._load_session_map()
            existing = session_map.get(external_ref)
            if existing:
                if existing.closed_at is not None:
                    session_map[external_ref] = existing.model_copy(
                        update={"closed_at": None}
                    )
                    self._save_session_map(session_map)
                logger.debug(f"Resumed session {existing.session_id}")
                return existing.session_id

        session_id = generate_session_id()
        state = self._create_conversation(session_id)

        session_map = self._load_session_map()
        key = external_ref or state.conversation_path
        session_map[key] = state
        self._save_session_map(session_map)

        logger.debug(f"Created session {session_id} (ref={external_ref})")
        return session_id

    def get_state(self, session_id: str) -> SessionState | None:
        """Look up session metadata, reconstructing it from disk if unmapped."""
        for state in self._load_session_map().values():
            if state.session_id == session_id:
                return state

        conversation_path = self.conversations_path / session_id
        indexes = self._segment_indexes(conversation_path)
        if not indexes:
            return None
        return SessionState(
            session_id=session_id,
            conversation_path=str(conversation_path),
            current_segment=max(indexes),
            started_at=datetime.now(UTC),
        )

    def close_session(self, session_id: str) -> None:
        """Mark a session closed and drop it as the active session."""
        state = self.get_state(session_id)
        if state is not None:
            self._update_state(state.model_copy(update={"closed_at": datetime.now(UTC)}))
        if self.get_active() == session_id:
            (self.state_path / ACTIVE_SESSION_FILE).unlink(missing_ok=True)

    # Active session pointer

    def mark_active(self, session_id: str) -> None:
        """Persist ``session_id`` as the active session."""
        write_model(
            self.state_path / ACTIVE_SESSION_FILE,
            ActiveSession(session_id=session_id, updated_at=datetime.now(UTC)),
        )

    def get_active(self) -> str | None:
        """Return the active session id, if any."""
        active = read_model(self.state_path / ACTIVE_SESSION_FILE, ActiveSession)
        return active.session_id if active else None

    # Log segments

    def append_entry(self, session_id: str, entry: ConversationEntry) -> None:
        """
        Append an entry to the session's current segment.

        Raises:
            SessionNotFound: If the session is unknown
        """
        state = self.get_state(session_id)
        if state is None:
            raise SessionNotFound(session_id)

        segment = self._segment_path(state, state.current_segment)
        segment.parent.mkdir(parents=True, exist_ok=True)
        with open(segment, "a", encoding="utf-8") as f:
            f.write(entry.render())

    def append_user_input(self, session_id: str, prompt: str) -> None:
        """Append a user prompt entry."""
        self.append_entry(
            session_id,
            ConversationEntry(actor=Actor.USER, timestamp=now_iso(), content=prompt),
        )

    def append_tool_action(
        self,
        session_id: str,
        tool_name: str,
        action: str,
        target: str | None = None,
    ) -> None:
        """Append an agent tool action entry."""
        self.append_entry(
            session_id,
            ConversationEntry(
                actor=Actor.CLAUDE,
                timestamp=now_iso(),
                content=action,
                tool=ToolAction(name=tool_name, action=action, target=target),
            ),
        )

    def check_rotation(self, session_id: str) -> bool:
        """
        Rotate the current segment if it reached the size threshold.

        Returns:
            True if a new segment was opened
        """
        state = self.get_state(session_id)
        if state is None:
            return False

        segment = self._segment_path(state, state.current_segment)
        try:
            size = segment.stat().st_size
        except FileNotFoundError:
            return False

        if size >= self.rotation_threshold_bytes:
            self.rotate(session_id)
            return True
        return False

    def rotate(self, session_id: str) -> int:
        """
        Open a new segment and make it current.

        Returns:
            Index of the new segment

        Raises:
            SessionNotFound: If the session is unknown
        """
        state = self.get_state(session_id)
        if state is None:
            raise SessionNotFound(session_id)

        new_index = state.current_segment + 1
        atomic_write_text(
            self._segment_path(state, new_index),
            f"# Conversation: {session_id} (continued)\n"
            f"# Segment: {new_index}\n"
            f"# Time: {now_iso()}\n\n",
        )
        self._update_state(state.model_copy(update={"current_segment": new_index}))
        logger.debug(f"Rotated session {session_id} to segment {new_index}")
        return new_index

    def list_segments(self, session_id: str) -> list[Path]:
        """Segment files of a session in rotation order."""
        state = self.get_state(session_id)
        if state is None:
            return []
        conversation_path = Path(state.conversation_path)
        return [
            conversation_path / f"{index}.txt"
            for index in self._segment_indexes(conversation_path)
        ]

    def read_all(self, session_id: str) -> str:
        """
        Concatenate all segments in index order.

        Returns:
            Full log text, empty string if the session has no segments
        """
        contents = []
        for segment in self.list_segments(session_id):
            content = read_text(segment)
            if content:
                contents.append(content)
        return SEGMENT_BOUNDARY.join(contents)

    # Internals

    def _create_conversation(self, session_id: str) -> SessionState:
        conversation_path = self.conversations_path / session_id
        conversation_path.mkdir(parents=True, exist_ok=True)
        started = datetime.now(UTC)
        atomic_write_text(
            conversation_path / "0.txt",
            f"# Conversation: {session_id}\n"
            f"# Started: {started.isoformat(timespec='milliseconds')}\n\n",
        )
        return SessionState(
            session_id=session_id,
            conversation_path=str(conversation_path),
            current_segment=0,
            started_at=started,
        )

    def _segment_path(self, state: SessionState, index: int) -> Path:
        return Path(state.conversation_path) / f"{index}.txt"

    @staticmethod
    def _segment_indexes(conversation_path: Path) -> list[int]:
        if not conversation_path.is_dir():
            return []
        indexes = []
        for child in conversation_path.iterdir():
            match = _SEGMENT_RE.match(child.name)
            if match and child.is_file():
                indexes.append(int(match.group(1)))
        return sorted(indexes)

    def _update_state(self, state: SessionState) -> None:
        session_map = self._load_session_map()
        for key, existing in session_map.items():
            if existing.session_id == state.session_id:
                session_map[key] = state
                break
        else:
            session_map[state.conversation_path] = state
        self._save_session_map(session_map)

    def _load_session_map(self) -> dict[str, SessionState]:
        raw = read_text(self.state_path / SESSION_MAP_FILE)
        if not raw:
            return {}
        try:
            return _SessionMap.validate_json(raw)
        except ValidationError:
            logger.debug("Ignoring unreadable session map", exc_info=True)
            return {}

    def _save_session_map(self, session_map: dict[str, SessionState]) -> None:
        atomic_write_text(
            self.state_path / SESSION_MAP_FILE,
            _SessionMap.dump_json(session_map, indent=2).decode("utf-8"),
        )
