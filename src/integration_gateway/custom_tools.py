"""Statically defined tools that wrap registry actions with extra logic."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List

from .logging import redact_payload
from .models import ToolDescriptor, ToolKind
from .platform_client import PlatformClient
from .schema import ToolSchema

logger = logging.getLogger(__name__)

CustomHandler = Callable[[PlatformClient, str, Dict[str, Any]], Awaitable[Any]]

NOTION_CREATE_PAGE = "CUSTOM_NOTION_CREATE_PAGE"
RICH_TEXT_LIMIT = 2000

_HEADING = re.compile(r"^(#{1,3})\s+(.*)$")
_TODO = re.compile(r"^[-*+]\s+\[( |x|X)\]\s+(.*)$")
_BULLET = re.compile(r"^[-*+]\s+(.*)$")
_NUMBERED = re.compile(r"^\d+[.)]\s+(.*)$")
_DIVIDER = re.compile(r"^(-{3,}|\*{3,}|_{3,})$")


@dataclass(frozen=True)
class CustomTool:
    descriptor: ToolDescriptor
    handler: CustomHandler


def rich_text(content: str) -> List[Dict[str, Any]]:
    chunks = [content[i : i + RICH_TEXT_LIMIT] for i in range(0, len(content), RICH_TEXT_LIMIT)]
    return [{"type": "text", "text": {"content": chunk}} for chunk in chunks or [""]]


def _block(block_type: str, **body: Any) -> Dict[str, Any]:
    return {"object": "block", "type": block_type, block_type: body}


def markdown_to_blocks(markdown: str) -> List[Dict[str, Any]]:
    """Convert a markdown document into a list of Notion blocks."""
    blocks: List[Dict[str, Any]] = []
    paragraph: List[str] = []
    lines = markdown.splitlines()

    def flush_paragraph() -> None:
        if paragraph:
            blocks.append(_block("paragraph", rich_text=rich_text(" ".join(paragraph))))
            paragraph.clear()

    index = 0
    while index < len(lines):
        line = lines[index].rstrip()
        stripped = line.strip()
        index += 1

        if stripped.startswith("```"):
            flush_paragraph()
            language = stripped[3:].strip() or "plain text"
            code: List[str] = []
            while index < len(lines) and not lines[index].strip().startswith("```"):
                code.append(lines[index])
                index += 1
            index += 1
            blocks.append(_block("code", rich_text=rich_text("\n".join(code)), language=language))
            continue

        if not stripped:
            flush_paragraph()
            continue

        if _DIVIDER.match(stripped):
            flush_paragraph()
            blocks.append(_block("divider"))
            continue

        heading = _HEADING.match(stripped)
        todo = _TODO.match(stripped)
        bullet = _BULLET.match(stripped)
        numbered = _NUMBERED.match(stripped)
        if heading:
            flush_paragraph()
            level = len(heading.group(1))
            blocks.append(_block(f"heading_{level}", rich_text=rich_text(heading.group(2))))
        elif todo:
            flush_paragraph()
            blocks.append(
                _block(
                    "to_do",
                    rich_text=rich_text(todo.group(2)),
                    checked=todo.group(1).lower() == "x",
                )
            )
        elif bullet:
            flush_paragraph()
            blocks.append(_block("bulleted_list_item", rich_text=rich_text(bullet.group(1))))
        elif numbered:
            flush_paragraph()
            blocks.append(_block("numbered_list_item", rich_text=rich_text(numbered.group(1))))
        elif stripped.startswith(">"):
            flush_paragraph()
            blocks.append(_block("quote", rich_text=rich_text(stripped.lstrip(">").strip())))
        else:
            paragraph.append(stripped)

    flush_paragraph()
    return blocks


async def notion_create_page(client: PlatformClient, bearer: str, args: Dict[str, Any]) -> Any:
    logger.debug("Running custom notion action payload=%s", redact_payload(args))
    parameters = {
        "parent": {"page_id": args["parent"]},
        "properties": {"title": [{"text": {"content": args["title"]}}]},
        "children": markdown_to_blocks(args.get("content") or ""),
    }
    return await client.run_action(bearer, "NOTION_CREATE_PAGE", parameters)


def get_custom_tools() -> List[CustomTool]:
    notion = ToolDescriptor(
        name=NOTION_CREATE_PAGE,
        description="Use this tool to create a page in Notion",
        schema=ToolSchema(
            {
                "type": "object",
                "properties": {
                    "parent": {"type": "string", "description": "The parent page id"},
                    "title": {"type": "string", "description": "Title of the Notion page"},
                    "content": {
                        "type": "string",
                        "description": "Contents of the Notion page in markdown format",
                    },
                },
                "required": ["parent", "title", "content"],
            }
        ),
        integration_name="notion",
        kind=ToolKind.CUSTOM,
    )
    return [CustomTool(descriptor=notion, handler=notion_create_page)]
