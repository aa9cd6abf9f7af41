"""Tests for cckb.core.extraction module."""

import pytest

from cckb.core.extraction import parse_blocks, parse_response, split_sections
from cckb.core.types import Entity, ServiceItem


class TestSplitSections:
    """Tests for section detection."""

    @pytest.mark.parametrize(
        "heading",
        ["## Entities", "# entities", "### ENTITIES", "## Entities:", "## Entities ##"],
    )
    def test_heading_variants(self, heading):
        """Heading level, case and trailing punctuation do not matter."""
        sections, ignored = split_sections(f"{heading}\n- **Name**: Order\n")

        assert "entities" in sections
        assert ignored == []

    def test_unknown_sections_ignored(self):
        """Unrecognized headed sections are reported and skipped."""
        sections, ignored = split_sections(
            "## Summary\nstuff\n## Services\n- **Name**: Mailer\n"
        )

        assert list(sections) == ["services"]
        assert "stuff" not in sections["services"]
        assert ignored == ["Summary"]


class TestParseBlocks:
    """Tests for field block parsing."""

    def test_label_styles(self):
        """Both **Name**: and **Name:** label styles are read."""
        blocks, discarded = parse_blocks(
            "- **Name**: Order\n- **Location:** src/order.ts\n", "name"
        )

        assert blocks == [{"name": "Order", "location": "src/order.ts"}]
        assert discarded == 0

    def test_list_field_sub_bullets(self):
        """List values may be given as indented sub-bullets."""
        blocks, _ = parse_blocks(
            "- **Name**: Order\n- **Attributes**:\n  - id\n  - total\n", "name"
        )

        assert blocks[0]["attributes"] == ["id", "total"]

    def test_list_field_commas(self):
        """List values may be comma-separated and wrapped in backticks."""
        blocks, _ = parse_blocks("- **Name**: Order\n- **Attributes**: `id`, total ,\n", "name")

        assert blocks[0]["attributes"] == ["id", "total"]

    def test_text_continuation(self):
        """Text values continue onto following plain lines."""
        blocks, _ = parse_blocks(
            "- **Topic**: Style\n- **Details**: Use tabs\n  and short lines\n", "topic"
        )

        assert blocks[0]["details"] == "Use tabs and short lines"

    def test_prose_after_blank_line_ends_list(self):
        """A closing sentence after the fields is not read as a value."""
        blocks, _ = parse_blocks(
            "- **Name**: Order\n- **Attributes**: id, total\n\n"
            "These are the main entities I found in the code.\n",
            "name",
        )

        assert blocks[0]["attributes"] == ["id", "total"]

    def test_plain_line_under_list_ends_it(self):
        """Unindented prose directly under a list field is not a list item."""
        blocks, _ = parse_blocks(
            "- **Name**: Order\n- **Relations**: Customer\nSee also the billing docs.\n",
            "name",
        )

        assert blocks[0]["relations"] == ["Customer"]

    def test_prose_after_blank_line_ends_text(self):
        """Text values stop at a blank line followed by prose."""
        blocks, _ = parse_blocks(
            "- **Topic**: Style\n- **Details**: Use tabs\n\nThat is all.\n", "topic"
        )

        assert blocks[0]["details"] == "Use tabs"

    def test_sub_bullets_after_blank_line(self):
        """Indented sub-bullets still belong to the list after a blank line."""
        blocks, _ = parse_blocks(
            "- **Name**: Order\n- **Attributes**:\n\n  - id\n  - total\n", "name"
        )

        assert blocks[0]["attributes"] == ["id", "total"]

    def test_duplicate_label_first_wins(self):
        """A repeated label inside one block keeps the first value."""
        blocks, _ = parse_blocks(
            "- **Name**: Order\n- **Location**: a.ts\n- **Location**: b.ts\n", "name"
        )

        assert blocks[0]["location"] == "a.ts"

    def test_fields_before_primary_are_discarded(self):
        """Label groups without a leading primary label count as discarded."""
        blocks, discarded = parse_blocks(
            "- **Location**: a.ts\n- **Purpose**: nothing\n\n- **Name**: Mailer\n", "name"
        )

        assert blocks == [{"name": "Mailer"}]
        assert discarded == 1


class TestParseResponse:
    """Tests for whole-response parsing."""

    def test_sample_response(self, sample_response):
        """All four sections parse into typed records."""
        result = parse_response(sample_response)

        assert result.counts() == {
            "entities": 2,
            "architecture": 1,
            "services": 2,
            "knowledge": 1,
        }
        assert result.entities[0] == Entity(
            name="Order",
            location="src/order/model.ts",
            attributes=["id", "total", "status"],
            relations=["Customer", "LineItem"],
        )
        assert result.services[0] == ServiceItem(
            name="OrderRepository",
            location="src/order/repo.ts",
            purpose="Persists orders",
            methods=["save", "findById"],
        )
        assert result.architecture[0].affected_files == [
            "src/order/repo.ts",
            "src/customer/repo.ts",
        ]
        assert result.knowledge[0].topic == "Testing Convention"
        assert result.diagnostics == []
        assert result.raw_text == sample_response

    def test_missing_sections_are_empty(self):
        """A response with only one section yields empty other lists."""
        result = parse_response("## Knowledge\n- **Topic**: A\n- **Details**: B\n")

        assert result.counts() == {
            "entities": 0,
            "architecture": 0,
            "services": 0,
            "knowledge": 1,
        }

    @pytest.mark.parametrize("text", ["", "no headings at all", "## \n\n- **", "```\n"])
    def test_malformed_input_never_raises(self, text):
        """Garbage input gives an empty result."""
        result = parse_response(text)

        assert result.is_empty

    def test_block_without_primary_is_diagnosed(self):
        """Blocks missing their identifying field are dropped with a note."""
        result = parse_response(
            "## Services\n- **Name**:\n- **Purpose**: nameless\n\n- **Name**: Mailer\n"
        )

        assert [s.name for s in result.services] == ["Mailer"]
        assert result.diagnostics == ["Discarded 1 services block(s) without Name"]

    def test_ignored_section_diagnostic(self):
        """Unknown headings are recorded in diagnostics."""
        result = parse_response("## Notes\nx\n## Entities\n- **Name**: Order\n")

        assert result.diagnostics == ["Ignored section: Notes"]
        assert [e.name for e in result.entities] == ["Order"]

    def test_numbered_bullets(self):
        """Numbered list markers are accepted."""
        result = parse_response("## Entities\n1. **Name**: Order\n2. **Name**: User\n")

        assert [e.name for e in result.entities] == ["Order", "User"]
