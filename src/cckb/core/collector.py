"""Source scanner - find, categorize and prioritize project source files."""

import fnmatch
import json
import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from cckb.core.config import KB_DIRNAME
from cckb.core.fileio import read_text
from cckb.core.settings import load_config_or_default
from cckb.core.types import BatchItem, CollectedFile

logger = logging.getLogger(__name__)

# Manifest file -> (language, project type)
MANIFEST_LANGUAGES: dict[str, tuple[str, str]] = {
    "package.json": ("typescript", "node"),
    "tsconfig.json": ("typescript", "node"),
    "Cargo.toml": ("rust", "rust"),
    "go.mod": ("go", "go"),
    "requirements.txt": ("python", "python"),
    "pyproject.toml": ("python", "python"),
    "setup.py": ("python", "python"),
    "pom.xml": ("java", "java"),
    "build.gradle": ("java", "java"),
    "Gemfile": ("ruby", "ruby"),
    "composer.json": ("php", "php"),
}

EXTENSION_LANGUAGES: dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
}

SKIP_DIRS = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        "__pycache__",
        "target",
        "vendor",
        ".venv",
        "venv",
        KB_DIRNAME,
    }
)

DEFAULT_IGNORES = [
    "node_modules/**",
    ".git/**",
    "dist/**",
    "build/**",
    "coverage/**",
    "*.log",
    ".env*",
    "__pycache__/**",
    "*.pyc",
    "target/**",
    "vendor/**",
    ".venv/**",
    "venv/**",
]

CATEGORY_SCORES = {
    "entry": 100,
    "model": 80,
    "service": 70,
    "util": 30,
    "config": 20,
    "other": 10,
    "test": -50,
}

_CATEGORY_RULES: list[tuple[str, list[re.Pattern[str]]]] = [
    (
        "test",
        [
            re.compile(r"\.(test|spec)\.[^/]+$"),
            re.compile(r"/__tests__/"),
            re.compile(r"/tests?/"),
            re.compile(r"/test_[^/]+\.py$"),
        ],
    ),
    (
        "entry",
        [
            re.compile(r"/(index|main|app|server)\.[^/]+$"),
            re.compile(r"/__main__\.py$"),
        ],
    ),
    (
        "model",
        [
            re.compile(r"/(models?|entities|domain|types|schemas?)/"),
            re.compile(r"\.(model|entity|type)\.[^/]+$"),
        ],
    ),
    (
        "service",
        [
            re.compile(r"/(services?|controllers?|handlers?|api|routes?)/"),
            re.compile(r"\.(service|controller|handler)\.[^/]+$"),
        ],
    ),
    (
        "config",
        [
            re.compile(r"\.(config|conf)\.[^/]+$"),
            re.compile(r"/config/"),
            re.compile(r"/\.[^/]+$"),
        ],
    ),
    (
        "util",
        [
            re.compile(r"/(utils?|helpers?|lib|common|shared)/"),
            re.compile(r"\.(util|helper)\.[^/]+$"),
        ],
    ),
]


@dataclass
class CollectionResult:
    """Files chosen for discovery plus project facts found on the way."""

    files: list[CollectedFile] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    project_type: str = "unknown"
    total_files_scanned: int = 0


def matches_pattern(rel_path: str, pattern: str) -> bool:
    """
    Check a ``/``-separated relative path against one ignore pattern.

    fnmatch semantics, where ``*`` also spans directories. Patterns without
    a leading ``/`` may match at any depth; a trailing ``/`` restricts the
    pattern to directories. Negations and comments never match.
    """
    pattern = pattern.strip().replace("\\", "/")
    if not pattern or pattern.startswith(("#", "!")):
        return False

    anchored = pattern.startswith("/")
    directory_only = pattern.endswith("/")
    pattern = pattern.strip("/").replace("**", "*")
    if not pattern:
        return False
    alternatives = [pattern]
    if pattern.startswith("*/"):
        alternatives.append(pattern[2:])

    parts = rel_path.split("/")
    starts = [0] if anchored else range(len(parts))
    for start in starts:
        for end in range(start + 1, len(parts) + 1):
            if directory_only and end == len(parts):
                continue
            candidate = "/".join(parts[start:end])
            if any(fnmatch.fnmatchcase(candidate, alt) for alt in alternatives):
                return True
    return False


def categorize(rel_path: str) -> str:
    """File category from its path."""
    lowered = "/" + rel_path.lower()
    for category, patterns in _CATEGORY_RULES:
        if any(p.search(lowered) for p in patterns):
            return category
    return "other"


def score_priority(rel_path: str, category: str, size: int) -> int:
    """
    Discovery priority; higher is analyzed first.

    Category weight, minus two per path level, a bonus for small files,
    penalties for very large ones and a bonus for files under ``src/``.
    """
    score = CATEGORY_SCORES.get(category, 0)
    score -= len(rel_path.split("/")) * 2
    if size < 5000:
        score += 10
    if size > 50000:
        score -= 20
    if size > 100000:
        score -= 30
    if rel_path.startswith("src/"):
        score += 15
    return score


class FileCollector:
    """Walks a project and picks the source files worth analyzing."""

    def __init__(self, project_path: Path | str):
        self.project_path = Path(project_path)

    def collect(
        self,
        max_files: int | None = None,
        exclude_patterns: list[str] | None = None,
        supported_languages: list[str] | None = None,
    ) -> CollectionResult:
        """
        Scan the project.

        Args:
            max_files: Keep at most this many files (config default)
            exclude_patterns: Extra ignore patterns (config default)
            supported_languages: Languages to keep (config default)

        Returns:
            CollectionResult sorted by descending priority
        """
        config = load_config_or_default(self.project_path).discover
        max_files = max_files or config.max_files
        exclude_patterns = (
            config.exclude_patterns if exclude_patterns is None else exclude_patterns
        )
        supported = set(supported_languages or config.supported_languages)

        languages, project_type = self.detect_languages()
        ignore_patterns = self.load_ignore_patterns(exclude_patterns)

        candidates: list[CollectedFile] = []
        scanned = 0
        for abs_path, size in self._walk():
            scanned += 1
            rel_path = abs_path.relative_to(self.project_path).as_posix()
            if any(matches_pattern(rel_path, p) for p in ignore_patterns):
                continue
            language = EXTENSION_LANGUAGES.get(abs_path.suffix)
            if language is None or language not in supported:
                continue
            category = categorize(rel_path)
            candidates.append(
                CollectedFile(
                    path=rel_path,
                    absolute_path=str(abs_path),
                    language=language,
                    category=category,
                    size=size,
                    priority=score_priority(rel_path, category, size),
                )
            )

        candidates.sort(key=lambda f: (-f.priority, f.path))

        if not languages:
            counts = Counter(f.language for f in candidates)
            languages = [language for language, _ in counts.most_common()]

        logger.info(
            f"Collected {min(len(candidates), max_files)} of {scanned} files "
            f"({', '.join(languages) or 'no languages'})"
        )
        return CollectionResult(
            files=candidates[:max_files],
            languages=languages,
            project_type=project_type,
            total_files_scanned=scanned,
        )

    def detect_languages(self) -> tuple[list[str], str]:
        """
        Detect languages and project type from manifest files.

        Returns:
            (languages in detection order, project type or "unknown")
        """
        detected: list[str] = []
        project_type = "unknown"

        for manifest, (language, kind) in MANIFEST_LANGUAGES.items():
            if manifest == "package.json":
                continue
            if (self.project_path / manifest).is_file():
                if language not in detected:
                    detected.append(language)
                if project_type == "unknown":
                    project_type = kind

        package_json = read_text(self.project_path / "package.json")
        if package_json is not None:
            if project_type == "unknown":
                project_type = "node"
            language = "javascript"
            try:
                package = json.loads(package_json)
                deps = {
                    **(package.get("dependencies") or {}),
                    **(package.get("devDependencies") or {}),
                }
                if "typescript" in deps:
                    language = "typescript"
            except (json.JSONDecodeError, AttributeError):
                logger.debug("Unreadable package.json", exc_info=True)
            if language not in detected:
                detected.insert(0, language)

        return detected, project_type

    def load_ignore_patterns(self, extra: list[str]) -> list[str]:
        """Default ignores, then ``.gitignore`` lines, then configured excludes."""
        patterns = list(DEFAULT_IGNORES)
        gitignore = read_text(self.project_path / ".gitignore")
        if gitignore:
            patterns.extend(
                line.strip()
                for line in gitignore.splitlines()
                if line.strip() and not line.strip().startswith("#")
            )
        patterns.extend(extra)
        return patterns

    def _walk(self):
        for root, dirs, files in os.walk(self.project_path):
            dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
            for name in sorted(files):
                path = Path(root) / name
                try:
                    size = path.stat().st_size
                except OSError:
                    continue
                yield path, size


def load_batch_items(files: list[CollectedFile]) -> list[BatchItem]:
    """
    Read collected files as batch items, in order.

    Unreadable and empty files are skipped.
    """
    items = []
    for collected in files:
        try:
            content = Path(collected.absolute_path).read_text(
                encoding="utf-8", errors="replace"
            )
        except OSError:
            logger.debug(f"Skipping unreadable file {collected.path}", exc_info=True)
            continue
        if content.strip():
            items.append(BatchItem(label=collected.path, content=content))
    return items
