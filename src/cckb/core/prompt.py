"""Analyzer prompt building."""

_SECTIONS_TEMPLATE = """## Entities
For each domain entity ({entity_kinds}):
- **Name**: Entity name
- **Location**: File path
- **Attributes**: Key fields/properties
- **Relations**: Related entities

## Architecture
For each architectural pattern or design decision:
- **Pattern**: {pattern_hint}
- **Description**: {description_hint}
- **Affected Files**: Relevant file paths

## Services
For each service or component{service_suffix}:
- **Name**: Service name
- **Location**: File path
- **Purpose**: Brief description
- **Methods**: Key methods/functions

## Knowledge
For each convention, rule, or important context{knowledge_suffix}:
- **Topic**: What it's about
- **Details**: The actual information"""

SUMMARIZATION_PROMPT = (
    "You are a technical knowledge extractor. Analyze this conversation log "
    "and extract key information for a project knowledge base.\n\n"
    "Extract and format the following:\n\n"
    + _SECTIONS_TEMPLATE.format(
        entity_kinds="data model, type, class",
        pattern_hint="Name of pattern",
        description_hint="Brief explanation",
        service_suffix=" created",
        knowledge_suffix="",
    )
    + "\n\nOnly include sections that have content. Be concise but complete.\n"
    "Use file paths exactly as shown in the conversation.\n\n"
    "CONVERSATION LOG:\n"
)

DISCOVERY_PROMPT = (
    "You are a technical knowledge extractor analyzing a codebase. Extract "
    "information for a project knowledge base.\n\n"
    "PROJECT CONTEXT:\n"
    "- Language(s): {languages}\n"
    "- Project Type: {project_type}\n\n"
    "ANALYZE THESE SOURCE FILES:\n\n"
    "{file_contents}\n\n"
    "Extract and format the following:\n\n"
    + _SECTIONS_TEMPLATE.format(
        entity_kinds="data model, type, class, interface",
        pattern_hint="Name of pattern (e.g., MVC, Repository, Factory, Singleton, etc.)",
        description_hint="Brief explanation of how it's used",
        service_suffix="",
        knowledge_suffix=" discovered",
    )
    + "\n\nGuidelines:\n"
    "- Only include sections that have content\n"
    "- Be concise but complete\n"
    "- Use exact file paths as shown\n"
    "- Focus on domain logic, not framework boilerplate\n"
    "- Identify patterns from code structure, not just naming\n"
)


def build_summarization_prompt(conversation: str) -> str:
    """Prompt asking the analyzer to summarize a session log."""
    return SUMMARIZATION_PROMPT + conversation


def build_discovery_prompt(
    file_contents: str,
    languages: list[str],
    project_type: str,
) -> str:
    """
    Prompt asking the analyzer to extract knowledge from source files.

    Args:
        file_contents: One batch of formatted source files
        languages: Detected project languages
        project_type: Detected project type

    Returns:
        Prompt text
    """
    return DISCOVERY_PROMPT.format(
        languages=", ".join(languages) or "unknown",
        project_type=project_type or "unknown",
        file_contents=file_contents,
    )
