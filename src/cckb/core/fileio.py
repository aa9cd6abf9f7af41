"""Small scoped file helpers shared by the session and vault stores."""

import logging
import os
import tempfile
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def read_text(path: Path) -> str | None:
    """Read a UTF-8 text file, returning None when it is missing or unreadable."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError):
        logger.debug(f"Could not read {path}", exc_info=True)
        return None


def atomic_write_text(path: Path, content: str) -> None:
    """Write a file by writing a sibling temp file and swapping it in.

    Readers either see the previous content or the new content, never a
    partially written file. Raises OSError on failure; the previous file is
    left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_model(path: Path, model: type[ModelT]) -> ModelT | None:
    """Load a pydantic model from a JSON file, None if missing or invalid."""
    raw = read_text(path)
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError:
        logger.debug(f"Ignoring invalid state file {path}", exc_info=True)
        return None


def write_model(path: Path, value: BaseModel) -> None:
    """Persist a pydantic model as indented JSON."""
    atomic_write_text(path, value.model_dump_json(indent=2))
