"""Tests for OpenAPI ingestion."""

import json

import pytest

from integration_gateway.errors import ConfigurationError
from integration_gateway.models import Integration, ToolKind
from integration_gateway.openapi import OpenAPILoader, dereference


GITHUB_SPEC = """
openapi: 3.0.0
servers:
  - url: https://api.github.com
paths:
  /repos/{owner}/{repo}/issues:
    parameters:
      - $ref: '#/components/parameters/owner'
    get:
      summary: |-
        List issues
        for   repository
      description: Lists issues.
      parameters:
        - name: repo
          in: path
          schema:
            type: string
        - name: state
          in: query
          schema:
            type: string
            enum: [open, closed]
    post:
      summary: Create issue
      parameters:
        - name: repo
          in: path
          required: true
          schema:
            type: string
      requestBody:
        content:
          application/json:
            schema:
              $ref: '#/components/schemas/Issue'
  /meta:
    get:
      description: Server metadata.
components:
  parameters:
    owner:
      name: owner
      in: path
      description: Repository owner
      schema:
        type: string
  schemas:
    Issue:
      type: object
      required: [title]
      properties:
        title:
          type: string
        body:
          type: string
          nullable: true
"""

CUSTOM_SPEC = {
    "openapi": "3.1.0",
    "paths": {
        "/items": {
            "post": {
                "summary": "Create item",
                "requestBody": {"content": {"text/plain": {"schema": {"type": "string"}}}},
            }
        }
    },
}


@pytest.fixture
def integrations():
    return [
        Integration(id="int-github", type="github"),
        Integration(id="int-custom", type="custom", custom_name="My Api"),
    ]


@pytest.fixture
def spec_dir(tmp_path):
    (tmp_path / "github.yaml").write_text(GITHUB_SPEC)
    (tmp_path / "custom.myapi.json").write_text(json.dumps(CUSTOM_SPEC))
    (tmp_path / "jira.json").write_text("{}")
    return tmp_path


class TestOpenAPILoader:
    def test_loads_matching_files(self, spec_dir, integrations):
        tools, requests = OpenAPILoader(spec_dir).load_tools(integrations)

        names = [tool.name for tool in tools]
        assert sorted(names) == sorted(
            [
                "CUSTOM_MYAPI_CREATE_ITEM",
                "GITHUB_LIST_ISSUES_FOR_REPOSITORY",
                "GITHUB_CREATE_ISSUE",
                "GITHUB_GET__META",
            ]
        )
        assert set(requests) == set(names)
        assert all(tool.kind is ToolKind.OPENAPI for tool in tools)

    def test_tool_names_are_unique_and_single_line(self, spec_dir, integrations):
        tools, _ = OpenAPILoader(spec_dir).load_tools(integrations)

        names = [tool.name for tool in tools]
        assert len(names) == len(set(names))
        assert not any("\n" in name or " " in name for name in names)

    def test_path_parameters_always_required(self, spec_dir, integrations):
        tools, _ = OpenAPILoader(spec_dir).load_tools(integrations)
        list_issues = next(t for t in tools if t.name == "GITHUB_LIST_ISSUES_FOR_REPOSITORY")

        params = list_issues.schema.properties["params"]
        assert set(params["properties"]) == {"owner", "repo", "state"}
        assert sorted(params["required"]) == ["owner", "repo"]
        assert params["properties"]["owner"]["description"] == "Repository owner"
        assert list_issues.required_fields == ["params"]
        assert "body" not in list_issues.schema.properties

    def test_json_body_schema_is_dereferenced(self, spec_dir, integrations):
        tools, _ = OpenAPILoader(spec_dir).load_tools(integrations)
        create = next(t for t in tools if t.name == "GITHUB_CREATE_ISSUE")

        body = create.schema.properties["body"]
        assert body["required"] == ["title"]
        assert body["properties"]["body"]["type"] == ["string", "null"]
        assert create.required_fields == ["params", "body"]

    def test_non_json_body_ignored(self, spec_dir, integrations):
        tools, _ = OpenAPILoader(spec_dir).load_tools(integrations)
        create_item = next(t for t in tools if t.name == "CUSTOM_MYAPI_CREATE_ITEM")

        assert create_item.schema.properties == {}
        assert create_item.required_fields == []
        assert create_item.integration_name == "custom.myapi"
        assert create_item.integration_id == "int-custom"

    def test_request_descriptor(self, spec_dir, integrations):
        _, requests = OpenAPILoader(spec_dir).load_tools(integrations)
        request = requests["GITHUB_LIST_ISSUES_FOR_REPOSITORY"]

        assert request.method == "GET"
        assert request.path == "/repos/{owner}/{repo}/issues"
        assert request.base_url == "https://api.github.com"
        assert request.query_parameter_names() == ["state"]

    def test_description_combines_summary(self, spec_dir, integrations):
        tools, _ = OpenAPILoader(spec_dir).load_tools(integrations)
        meta = next(t for t in tools if t.name == "GITHUB_GET__META")

        assert meta.description == "get /meta - Server metadata."

    def test_fallback_names_are_wire_safe(self, tmp_path):
        spec = {"paths": {"/users/{id}": {"delete": {}}}}
        (tmp_path / "acme.json").write_text(json.dumps(spec))

        tools, _ = OpenAPILoader(tmp_path).load_tools([Integration(id="1", type="acme")])

        assert [tool.name for tool in tools] == ["ACME_DELETE__USERS__ID_"]

    def test_missing_directory_returns_nothing(self, tmp_path, integrations):
        tools, requests = OpenAPILoader(tmp_path / "missing").load_tools(integrations)

        assert tools == []
        assert requests == {}

    def test_malformed_file_aborts_ingestion(self, spec_dir, integrations):
        (spec_dir / "slack.json").write_text("{not json")
        integrations.append(Integration(id="int-slack", type="slack"))

        with pytest.raises(ConfigurationError):
            OpenAPILoader(spec_dir).load_tools(integrations)

    def test_duplicate_names_rejected(self, tmp_path):
        spec = {
            "paths": {
                "/a": {"get": {"summary": "Fetch"}},
                "/b": {"get": {"summary": "Fetch"}},
            }
        }
        (tmp_path / "github.json").write_text(json.dumps(spec))

        with pytest.raises(ConfigurationError):
            OpenAPILoader(tmp_path).load_tools([Integration(id="1", type="github")])


class TestIntegrationMatching:
    def test_standard_integration(self):
        integration = Integration(id="1", type="github")

        assert integration.spec_file_matches("github.yaml")
        assert not integration.spec_file_matches("githubx.yaml")

    def test_custom_integration_slug(self):
        integration = Integration(id="1", type="custom", custom_name="My Api")

        assert integration.spec_file_matches("custom.myapi.yml")
        assert not integration.spec_file_matches("custom.other.yml")

    def test_from_api(self):
        integration = Integration.from_api(
            {"id": "abc", "type": "custom", "customIntegration": {"name": "My Api"}}
        )

        assert integration == Integration(id="abc", type="custom", custom_name="My Api")


class TestDereference:
    def test_resolves_nested_refs(self):
        document = {
            "a": {"$ref": "#/defs/b"},
            "defs": {"b": {"items": {"$ref": "#/defs/c"}}, "c": {"type": "string"}},
        }

        assert dereference(document)["a"] == {"items": {"type": "string"}}

    def test_escaped_pointer(self):
        document = {"a": {"$ref": "#/paths/~1items"}, "paths": {"/items": {"x": 1}}}

        assert dereference(document)["a"] == {"x": 1}

    def test_cyclic_ref_becomes_open_schema(self):
        document = {"node": {"$ref": "#/defs/node"}, "defs": {"node": {"child": {"$ref": "#/defs/node"}}}}

        assert dereference(document)["node"] == {"child": {}}

    def test_cyclic_ref_keeps_siblings(self):
        document = {
            "node": {"$ref": "#/defs/node"},
            "defs": {"node": {"child": {"$ref": "#/defs/node", "description": "Nested node"}}},
        }

        assert dereference(document)["node"] == {"child": {"description": "Nested node"}}

    def test_unresolvable_ref(self):
        with pytest.raises(ConfigurationError):
            dereference({"a": {"$ref": "#/missing"}})
