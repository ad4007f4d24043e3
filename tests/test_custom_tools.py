"""Tests for custom tools and markdown conversion."""

from integration_gateway.custom_tools import (
    NOTION_CREATE_PAGE,
    RICH_TEXT_LIMIT,
    get_custom_tools,
    markdown_to_blocks,
    notion_create_page,
)
from integration_gateway.models import ToolKind


def _types(blocks):
    return [block["type"] for block in blocks]


def _text(block):
    return "".join(part["text"]["content"] for part in block[block["type"]]["rich_text"])


class TestMarkdownToBlocks:
    def test_headings_and_paragraphs(self):
        blocks = markdown_to_blocks("# Title\n\nFirst line\nsecond line\n\n## Section\n### Sub")

        assert _types(blocks) == ["heading_1", "paragraph", "heading_2", "heading_3"]
        assert _text(blocks[0]) == "Title"
        assert _text(blocks[1]) == "First line second line"

    def test_lists_and_todos(self):
        blocks = markdown_to_blocks("- one\n* two\n1. first\n2) second\n- [ ] open\n- [x] done")

        assert _types(blocks) == [
            "bulleted_list_item",
            "bulleted_list_item",
            "numbered_list_item",
            "numbered_list_item",
            "to_do",
            "to_do",
        ]
        assert blocks[4]["to_do"]["checked"] is False
        assert blocks[5]["to_do"]["checked"] is True
        assert _text(blocks[5]) == "done"

    def test_code_quote_divider(self):
        blocks = markdown_to_blocks("> quoted\n---\n```python\nprint('hi')\n\nx = 1\n```\nafter")

        assert _types(blocks) == ["quote", "divider", "code", "paragraph"]
        assert blocks[2]["code"]["language"] == "python"
        assert _text(blocks[2]) == "print('hi')\n\nx = 1"
        assert _text(blocks[3]) == "after"

    def test_long_text_is_chunked(self):
        blocks = markdown_to_blocks("a" * (RICH_TEXT_LIMIT + 10))

        rich_text = blocks[0]["paragraph"]["rich_text"]
        assert len(rich_text) == 2
        assert len(rich_text[0]["text"]["content"]) == RICH_TEXT_LIMIT

    def test_blocks_are_notion_objects(self):
        blocks = markdown_to_blocks("hello")

        assert blocks == [
            {
                "object": "block",
                "type": "paragraph",
                "paragraph": {"rich_text": [{"type": "text", "text": {"content": "hello"}}]},
            }
        ]

    def test_empty_document(self):
        assert markdown_to_blocks("") == []


class TestNotionCreatePage:
    def test_descriptor(self):
        (tool,) = get_custom_tools()

        assert tool.descriptor.name == NOTION_CREATE_PAGE
        assert tool.descriptor.kind is ToolKind.CUSTOM
        assert tool.descriptor.required_fields == ["parent", "title", "content"]

    async def test_runs_notion_create_page_action(self, client, platform, bearer):
        await notion_create_page(
            client, bearer, {"parent": "page-1", "title": "Notes", "content": "# Hi\n- item"}
        )

        (posted,) = platform.posted_actions()
        assert posted["action"] == "NOTION_CREATE_PAGE"
        parameters = posted["parameters"]
        assert parameters["parent"] == {"page_id": "page-1"}
        assert parameters["properties"] == {"title": [{"text": {"content": "Notes"}}]}
        assert _types(parameters["children"]) == ["heading_1", "bulleted_list_item"]
