"""Project configuration - loader for cckb-config.yaml.

Each project carries its own knowledge-base configuration next to the vault.
The file is optional; a missing or empty file yields the defaults.
"""

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cckb.core.config import KB_DIRNAME

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "cckb-config.yaml"


# --- Typed Configuration Models ---


class CompactionConfig(BaseModel):
    """When and how session logs are compacted into the vault."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    trigger: Literal["session_end", "size", "messages", "manual"] = "session_end"
    size_threshold_kb: int = Field(default=50, gt=0)
    message_threshold: int = 100
    cleanup_after_summary: Literal["keep", "archive", "delete"] = "keep"
    min_conversation_chars: int = 100
    background: bool = True


class CaptureConfig(BaseModel):
    """Which tool events get written to the session log."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tools: list[str] = Field(
        default_factory=lambda: ["Write", "Edit", "MultiEdit", "Bash", "Task"]
    )
    max_content_length: int = 500


class VaultSettings(BaseModel):
    """Vault integration behaviour."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    auto_integrate: bool = True
    max_depth: int = 5


class FeedbackConfig(BaseModel):
    """Vault context fed back into running sessions."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    context_depth: int = 2
    cache_ttl_seconds: int = 300


class DiscoverConfig(BaseModel):
    """Codebase discovery limits."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_files: int = Field(default=100, gt=0)
    max_batch_size: int = Field(default=50000, gt=0)
    exclude_patterns: list[str] = Field(default_factory=list)
    supported_languages: list[str] = Field(
        default_factory=lambda: [
            "typescript",
            "javascript",
            "python",
            "go",
            "rust",
            "java",
            "csharp",
            "ruby",
            "php",
        ]
    )


class KnowledgeBaseConfig(BaseModel):
    """Typed configuration loaded from cckb-config.yaml.

    All sections are optional to allow partial configs.
    Frozen to prevent accidental mutation.
    Extra fields are forbidden to catch typos in config.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    compaction: CompactionConfig = Field(default_factory=CompactionConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    vault: VaultSettings = Field(default_factory=VaultSettings)
    feedback: FeedbackConfig = Field(default_factory=FeedbackConfig)
    discover: DiscoverConfig = Field(default_factory=DiscoverConfig)

    @property
    def rotation_threshold_bytes(self) -> int:
        return self.compaction.size_threshold_kb * 1024


DEFAULT_CONFIG = KnowledgeBaseConfig()


class ConfigError(Exception):
    """Raised when the project configuration is invalid."""

    pass


def get_config_path(project_path: Path | str) -> Path:
    """Location of the config file for a project."""
    return Path(project_path) / KB_DIRNAME / CONFIG_FILENAME


def load_config(project_path: Path | str) -> KnowledgeBaseConfig:
    """Load project configuration, falling back to defaults.

    Args:
        project_path: Project root containing the knowledge base folder

    Returns:
        KnowledgeBaseConfig. Defaults if no config file exists.

    Raises:
        ConfigError: If the config file exists but is invalid.
    """
    config_file = get_config_path(project_path)

    if not config_file.exists():
        logger.debug(f"No config file at {config_file}")
        return DEFAULT_CONFIG

    try:
        with open(config_file, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {config_file}: {e}")
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read {config_file}: {e}") from e

    if raw is None:
        logger.debug("Config file is empty or null")
        return DEFAULT_CONFIG

    if not isinstance(raw, dict):
        raise ConfigError(
            f"{CONFIG_FILENAME} must be a mapping, got {type(raw).__name__}"
        )

    try:
        config = KnowledgeBaseConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e

    logger.debug(
        f"Config loaded: trigger={config.compaction.trigger}, "
        f"max_batch_size={config.discover.max_batch_size}"
    )
    return config


def load_config_or_default(project_path: Path | str) -> KnowledgeBaseConfig:
    """Load configuration for side-channel callers that must never fail."""
    try:
        return load_config(project_path)
    except ConfigError:
        logger.debug("Falling back to default config", exc_info=True)
        return DEFAULT_CONFIG


def save_config(project_path: Path | str, config: KnowledgeBaseConfig) -> Path:
    """Write configuration back to cckb-config.yaml."""
    config_file = get_config_path(project_path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(
        yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False),
        encoding="utf-8",
    )
    return config_file
