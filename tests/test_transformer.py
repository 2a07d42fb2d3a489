"""Tests for OpenAPI to MCP tool transformation."""

import json
from pathlib import Path

import httpx
import pytest

from mcp_swagger.exceptions import TransformError
from mcp_swagger.models import (
    AuthConfig,
    BearerConfig,
    OperationFilter,
    PatternRule,
    ToolDescriptor,
    ToolMetadata,
    TransformOptions,
)
from mcp_swagger.transformer import Transformer

PETSTORE = Path(__file__).parent / "fixtures" / "petstore" / "input.yaml"


def make_spec(paths):
    return {"openapi": "3.0.0", "info": {"title": "Test API", "version": "2.1.0"}, "paths": paths}


def recording_transport():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    return requests, httpx.MockTransport(handler)


def test_path_parameter_tool():
    """A single GET with a path parameter becomes one tool."""
    spec = make_spec(
        {"/pets/{id}": {"get": {"operationId": "getPet", "parameters": [{"name": "id", "in": "path", "required": True}]}}}
    )

    tools = Transformer().transform(spec)

    assert len(tools) == 1
    assert tools[0].name == "getPet"
    assert tools[0].id == "getPet"
    assert tools[0].input_schema == {
        "type": "object",
        "properties": {"id": {"type": "string"}},
        "required": ["id"],
    }


def test_descriptions():
    spec = make_spec(
        {
            "/pets": {
                "get": {"operationId": "listPets", "summary": "List pets", "description": "Returns all pets"},
                "post": {"operationId": "createPet", "description": "Adds a pet"},
            },
            "/api/stores/{storeId}/orders": {"delete": {"operationId": "deleteOrders"}},
        }
    )

    tools = {tool.name: tool for tool in Transformer().transform(spec)}

    assert tools["listPets"].description == "List pets: Returns all pets"
    assert tools["createPet"].description == "Adds a pet"
    assert tools["deleteOrders"].description == "Delete stores orders via DELETE /api/stores/{storeId}/orders"


def test_name_fallback_without_operation_id():
    spec = make_spec({"/api/v1/Users/{id}/posts": {"get": {}}, "/": {"post": {}}})

    names = [tool.name for tool in Transformer().transform(spec)]

    assert names == ["get_api_v1_users_posts", "post"]


def test_operation_id_sanitized():
    spec = make_spec({"/pets": {"get": {"operationId": "pets.list all"}}})

    assert Transformer().transform(spec)[0].name == "pets_list_all"


def test_parameters_and_request_body():
    spec = make_spec(
        {
            "/pets/{petId}": {
                "put": {
                    "operationId": "updatePet",
                    "parameters": [
                        {"name": "petId", "in": "path", "required": True, "description": "Pet id"},
                        {"name": "dryRun", "in": "query", "schema": {"type": "boolean"}},
                        {"name": "X-Trace", "in": "header", "required": True, "schema": {"type": "string"}},
                    ],
                    "requestBody": {
                        "required": True,
                        "content": {
                            "application/json": {
                                "schema": {"type": "object", "properties": {"name": {"type": "string"}}}
                            }
                        },
                    },
                }
            }
        }
    )

    schema = Transformer().transform(spec)[0].input_schema

    assert list(schema["properties"]) == ["petId", "dryRun", "X-Trace", "requestBody"]
    assert schema["properties"]["petId"] == {"type": "string", "description": "Pet id"}
    assert schema["properties"]["dryRun"] == {"type": "boolean", "description": "query parameter: dryRun"}
    assert schema["properties"]["requestBody"]["properties"] == {"name": {"type": "string"}}
    assert schema["required"] == ["petId", "X-Trace", "requestBody"]


def test_deprecated_operations():
    """Deprecated operations are skipped unless explicitly included."""
    spec = make_spec(
        {
            "/old": {"get": {"operationId": "oldEndpoint", "deprecated": True}},
            "/new": {"get": {"operationId": "newEndpoint"}},
        }
    )
    transformer = Transformer()

    default_names = [tool.name for tool in transformer.transform(spec)]
    included = transformer.transform(spec, TransformOptions(include_deprecated=True))

    assert default_names == ["newEndpoint"]
    old = next(tool for tool in included if tool.name == "oldEndpoint")
    assert old.metadata.deprecated is True
    assert transformer.last_validation.warnings[0].code == "DEPRECATED"


def test_metadata():
    spec = make_spec({"/pets": {"get": {"operationId": "listPets", "tags": ["pets", "pets", "read"]}}})

    metadata = Transformer().transform(spec)[0].metadata

    assert metadata.tags == ["pets", "read"]
    assert metadata.http_method == "GET"
    assert metadata.endpoint == "/pets"
    assert metadata.version == "2.1.0"
    assert metadata.operation_id == "listPets"


def test_default_tag_is_api():
    spec = make_spec({"/pets": {"get": {"operationId": "listPets"}}})

    assert Transformer().transform(spec)[0].metadata.tags == ["api"]


def test_operation_filter_applied():
    spec = make_spec({"/pets": {"get": {"operationId": "listPets"}, "post": {"operationId": "createPet"}}})
    options = TransformOptions(operation_filter=OperationFilter(methods=PatternRule(include=["GET"])))

    assert [tool.name for tool in Transformer().transform(spec, options)] == ["listPets"]


def test_tag_filter_and_prefix():
    spec = make_spec(
        {
            "/pets": {"get": {"operationId": "listPets", "tags": ["pets"]}},
            "/users": {"get": {"operationId": "listUsers", "tags": ["users"]}},
        }
    )
    options = TransformOptions(tag_filter=["pets"], operation_id_prefix="store_")

    tools = Transformer().transform(spec, options)

    assert [(tool.id, tool.name) for tool in tools] == [("store_listPets", "store_listPets")]


def test_validate_tools_reports_each_duplicate():
    async def handler(arguments=None, headers=None):
        return None

    tool = ToolDescriptor(id="dup", name="dup", description="Duplicate", handler=handler)
    other = ToolDescriptor(id="other", name="dup", description="Same name", handler=handler)

    result = Transformer().validate_tools([tool, tool, tool, other])

    codes = [issue.code for issue in result.errors]
    assert not result.valid
    assert codes.count("DUPLICATE_ID") == 2
    assert codes.count("DUPLICATE_NAME") == 3


def test_validate_tools_shape_errors():
    result = Transformer().validate_tools([ToolDescriptor(id="bad id!")])

    codes = {issue.code for issue in result.errors}
    assert codes == {"INVALID_NAME", "INVALID_DESCRIPTION", "INVALID_HANDLER"}
    assert [issue.code for issue in result.warnings] == ["ID_FORMAT"]


def test_normalize_tools():
    tool = ToolDescriptor(id="a b", name="  spaced  ", description=" text ")

    normalized = Transformer().normalize_tools([tool])[0]

    assert normalized.id == "a_b"
    assert normalized.name == "spaced"
    assert normalized.description == "text"
    assert normalized.metadata == ToolMetadata()


def test_analyze_tools():
    tools = [
        ToolDescriptor(id="a", metadata=ToolMetadata(tags=["pets"], deprecated=True)),
        ToolDescriptor(id="b", metadata=ToolMetadata(tags=["pets", "store"])),
        ToolDescriptor(id="c"),
    ]

    analysis = Transformer().analyze_tools(tools)

    assert analysis.total_tools == 3
    assert analysis.deprecated_count == 1
    assert analysis.tag_distribution == {"pets": 2, "store": 1, "uncategorized": 1}
    assert analysis.unique_tags == 3


def test_describe_excludes_handler():
    spec = make_spec({"/pets": {"get": {"operationId": "listPets"}}})

    described = Transformer().transform(spec)[0].describe()

    assert "handler" not in described
    json.dumps(described)


@pytest.mark.asyncio
async def test_transform_from_file():
    requests, transport = recording_transport()

    tools = await Transformer().transform_from_file(PETSTORE, TransformOptions(http_transport=transport))

    assert [tool.name for tool in tools] == ["listPets", "createPet", "showPetById", "healthCheck"]
    assert tools[0].metadata.version == "1.2.0"

    show = tools[2]
    assert show.input_schema["properties"]["petId"]["description"] == "The id of the pet to retrieve"
    result = await show.handler({"petId": "a/b"})
    assert not result.isError
    assert str(requests[0].url) == "https://petstore.example.com/v1/pets/a%2Fb"


@pytest.mark.asyncio
async def test_transform_from_missing_file():
    with pytest.raises(TransformError) as excinfo:
        await Transformer().transform_from_file("does-not-exist.yaml")

    assert "does-not-exist.yaml" in str(excinfo.value)


@pytest.mark.asyncio
async def test_transform_from_url_failure():
    with pytest.raises(TransformError):
        await Transformer().transform_from_url("http://127.0.0.1:9/openapi.json")


@pytest.mark.asyncio
async def test_base_url_and_path_prefix_options():
    requests, transport = recording_transport()
    spec = make_spec({"/api/pets": {"get": {"operationId": "listPets"}}})
    options = TransformOptions(
        base_url="https://override.example.com",
        strip_path_prefix="/api",
        path_prefix="/v2",
        http_transport=transport,
    )

    tool = Transformer().transform(spec, options)[0]
    await tool.handler({})

    assert str(requests[0].url) == "https://override.example.com/v2/pets"


@pytest.mark.asyncio
async def test_bearer_auth_option():
    requests, transport = recording_transport()
    spec = make_spec({"/pets": {"get": {"operationId": "listPets"}}})
    options = TransformOptions(
        auth=AuthConfig(type="bearer", bearer=BearerConfig(token="secret")),
        http_transport=transport,
    )

    await Transformer().transform(spec, options)[0].handler({})

    assert requests[0].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_enable_auth_wraps_handlers():
    requests, transport = recording_transport()
    spec = make_spec({"/pets": {"get": {"operationId": "listPets"}}})
    options = TransformOptions(enable_auth=True, auth_headers={"X-Api-Key": "k1"}, http_transport=transport)

    await Transformer().transform(spec, options)[0].handler({})

    assert requests[0].headers["X-Api-Key"] == "k1"


def test_invalid_bearer_config_raises():
    spec = make_spec({"/pets": {"get": {"operationId": "listPets"}}})
    options = TransformOptions(auth=AuthConfig(type="bearer"))

    with pytest.raises(TransformError):
        Transformer().transform(spec, options)
