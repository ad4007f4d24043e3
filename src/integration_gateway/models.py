"""Internal models for tool definitions and results."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from mcp import types
from pydantic import BaseModel, ConfigDict, Field

from .schema import ToolSchema


_PATH_TEMPLATE = re.compile(r"\{(\w+)\}")


class ToolKind(str, Enum):
    REGISTRY_ACTION = "registry_action"
    OPENAPI = "openapi"
    RAW_PROXY = "raw_proxy"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    schema: ToolSchema
    integration_name: str
    kind: ToolKind
    integration_id: Optional[str] = None

    @property
    def required_fields(self) -> List[str]:
        return self.schema.required

    def to_mcp_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.schema.json_schema(),
        )


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    path: str
    parameters: List[Dict[str, Any]] = field(default_factory=list)
    base_url: Optional[str] = None

    def query_parameter_names(self) -> List[str]:
        return [p["name"] for p in self.parameters if p.get("in") == "query" and p.get("name")]

    def resolve_path(self, params: Dict[str, Any]) -> str:
        def substitute(match: re.Match) -> str:
            value = params.get(match.group(1))
            if value is None:
                return match.group(0)
            return quote(str(value), safe="")

        return f"{self.base_url or ''}{_PATH_TEMPLATE.sub(substitute, self.path)}"


@dataclass(frozen=True)
class Integration:
    id: str
    type: str
    custom_name: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Integration":
        custom = data.get("customIntegration") or {}
        return cls(
            id=str(data.get("id", "")),
            type=str(data.get("type", "")),
            custom_name=custom.get("name"),
        )

    @property
    def is_custom(self) -> bool:
        return self.type == "custom"

    def spec_file_matches(self, filename: str) -> bool:
        if self.is_custom:
            if not self.custom_name:
                return False
            slug = "".join(self.custom_name.split(" ")).lower()
            return f"custom.{slug}" in filename
        return filename.split(".")[0] == self.type


class ProxyRequestArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    integration: str
    url: str
    http_method: str = Field(alias="httpMethod")
    query_params: Optional[Dict[str, Any]] = Field(default=None, alias="queryParams")
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None


@dataclass
class ToolResult:
    content: List[Dict[str, str]]
    is_error: bool = False

    @classmethod
    def text(cls, *texts: str, is_error: bool = False) -> "ToolResult":
        return cls([{"type": "text", "text": text} for text in texts], is_error=is_error)

    @classmethod
    def from_response(cls, response: Any) -> "ToolResult":
        if isinstance(response, str):
            return cls.text(response)
        return cls.text(json.dumps(response))

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls.text(json.dumps({"error": message}), is_error=True)

    @classmethod
    def validation_error(cls, errors: List[Dict[str, Any]]) -> "ToolResult":
        return cls.text(
            json.dumps({"error": "Validation error", "details": errors}),
            is_error=True,
        )

    @property
    def texts(self) -> List[str]:
        return [item["text"] for item in self.content]

    def to_mcp(self) -> types.CallToolResult:
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=text) for text in self.texts],
            isError=self.is_error,
        )
