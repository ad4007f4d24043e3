"""OpenAPI spec loader and operation parser."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .models import Integration, RequestDescriptor, ToolDescriptor, ToolKind
from .schema import ToolSchema, lower_parameter, lower_schema


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
_WHITESPACE = re.compile(r"\s+")
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class OpenAPILoader:
    def __init__(self, spec_dir: str | Path) -> None:
        self.spec_dir = Path(spec_dir)

    def load_tools(
        self, integrations: Iterable[Integration]
    ) -> Tuple[List[ToolDescriptor], Dict[str, RequestDescriptor]]:
        integrations = list(integrations)
        if not self.spec_dir.is_dir():
            logger.error(
                "Custom OpenAPI tools are enabled, but %s was not found", self.spec_dir
            )
            return [], {}

        tools: List[ToolDescriptor] = []
        requests: Dict[str, RequestDescriptor] = {}
        for path in sorted(self.spec_dir.iterdir()):
            if not path.is_file():
                continue
            integration = self._match_integration(path.name, integrations)
            if not integration:
                logger.debug("No integration matches OpenAPI file %s", path.name)
                continue

            document = dereference(self.parse_file(path))
            integration_name = path.name[: path.name.rfind(".")] if "." in path.name else path.name
            for tool, request in self.extract_operations(document, integration_name, integration.id):
                if tool.name in requests:
                    raise ConfigurationError(f"Duplicate OpenAPI tool name: {tool.name}")
                tools.append(tool)
                requests[tool.name] = request
            logger.info("Loaded OpenAPI file %s for integration %s", path.name, integration_name)

        return tools, requests

    def parse_file(self, path: Path) -> Dict[str, Any]:
        try:
            content = path.read_text(encoding="utf-8")
            if path.suffix in (".yml", ".yaml"):
                document = yaml.safe_load(content)
            else:
                document = json.loads(content)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Malformed OpenAPI file {path.name}: {exc}") from exc
        if not isinstance(document, dict):
            raise ConfigurationError(f"Malformed OpenAPI file {path.name}: not a mapping")
        return document

    def extract_operations(
        self,
        spec: Dict[str, Any],
        integration_name: str,
        integration_id: Optional[str] = None,
    ) -> List[Tuple[ToolDescriptor, RequestDescriptor]]:
        operations: List[Tuple[ToolDescriptor, RequestDescriptor]] = []
        base_url = self._extract_server_url(spec)
        paths = spec.get("paths") or {}

        for path, methods in paths.items():
            methods = methods or {}
            shared_parameters = methods.get("parameters") or []
            for method, operation in methods.items():
                if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                    continue
                parameters = self._merge_parameters(shared_parameters, operation.get("parameters") or [])
                request_name = operation.get("summary") or f"{method} {path}"
                tool_name = self._format_tool_name(integration_name, request_name)
                description = request_name
                if operation.get("description"):
                    description = f"{request_name} - {operation['description']}"

                tool = ToolDescriptor(
                    name=tool_name,
                    description=description,
                    schema=self._build_input_schema(operation, parameters),
                    integration_name=integration_name,
                    integration_id=integration_id,
                    kind=ToolKind.OPENAPI,
                )
                request = RequestDescriptor(
                    method=method.upper(),
                    path=path,
                    parameters=parameters,
                    base_url=base_url,
                )
                operations.append((tool, request))

        return operations

    def _build_input_schema(
        self, operation: Dict[str, Any], parameters: List[Dict[str, Any]]
    ) -> ToolSchema:
        properties: Dict[str, Any] = {}
        required: List[str] = []

        if parameters:
            params_schema = {
                "type": "object",
                "properties": {p["name"]: lower_parameter(p) for p in parameters},
                "required": [
                    p["name"] for p in parameters if p.get("required") or p.get("in") == "path"
                ],
            }
            properties["params"] = params_schema
            if params_schema["properties"]:
                required.append("params")

        body_schema = self._extract_body_schema(operation.get("requestBody") or {})
        if body_schema is not None:
            lowered = lower_schema(body_schema)
            properties["body"] = lowered
            if lowered.get("properties"):
                required.append("body")

        return ToolSchema({"type": "object", "properties": properties, "required": required})

    def _merge_parameters(
        self, shared: List[Dict[str, Any]], own: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for parameter in [*shared, *own]:
            if not isinstance(parameter, dict) or not parameter.get("name"):
                continue
            merged[(parameter["name"], parameter.get("in", "query"))] = parameter
        return list(merged.values())

    def _extract_body_schema(self, request_body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        content = request_body.get("content") or {}
        json_body = content.get("application/json")
        if not isinstance(json_body, dict):
            return None
        return json_body.get("schema") or {}

    def _match_integration(
        self, filename: str, integrations: List[Integration]
    ) -> Optional[Integration]:
        for integration in integrations:
            if integration.spec_file_matches(filename):
                return integration
        return None

    def _format_tool_name(self, integration_name: str, request_name: str) -> str:
        prefix = "_".join(integration_name.split(".")).upper()
        suffix = _WHITESPACE.sub("_", request_name.strip()).upper()
        return _UNSAFE_NAME_CHARS.sub("_", f"{prefix}_{suffix}")

    def _extract_server_url(self, spec: Dict[str, Any]) -> Optional[str]:
        servers = spec.get("servers") or []
        if not servers:
            return None
        server = servers[0]
        if isinstance(server, dict):
            return server.get("url")
        return None


def dereference(document: Dict[str, Any]) -> Dict[str, Any]:
    """Inline every internal ``#/...`` reference of ``document``.

    A reference back into its own expansion becomes an open schema holding
    only its sibling keys.
    """

    def resolve_pointer(ref: str) -> Any:
        if not ref.startswith("#"):
            raise ConfigurationError(f"External $ref is not supported: {ref}")
        node: Any = document
        for part in ref[1:].split("/")[1:]:
            part = part.replace("~1", "/").replace("~0", "~")
            if isinstance(node, dict) and part in node:
                node = node[part]
            elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
                node = node[int(part)]
            else:
                raise ConfigurationError(f"Unresolvable $ref: {ref}")
        return node

    def walk(node: Any, active: Tuple[str, ...]) -> Any:
        if isinstance(node, list):
            return [walk(item, active) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str):
            if ref in active:
                return {k: walk(v, active) for k, v in node.items() if k != "$ref"}
            resolved = walk(resolve_pointer(ref), (*active, ref))
            siblings = {k: walk(v, active) for k, v in node.items() if k != "$ref"}
            if siblings and isinstance(resolved, dict):
                return {**resolved, **siblings}
            return resolved

        return {key: walk(value, active) for key, value in node.items()}

    return walk(document, ())
