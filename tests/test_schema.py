"""Tests for schema parsing and input model generation."""

import pytest
from pydantic import ValidationError

from mcp_swagger.exceptions import SchemaConversionError
from mcp_swagger.schema import (
    AnyNode,
    ArrayNode,
    ObjectNode,
    StringNode,
    build_input_model,
    input_schema_from_model,
    openapi_to_json_schema,
    parse_schema,
    to_json_schema,
)

INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Pet name"},
        "status": {"type": "string", "enum": ["available", "pending", "sold"]},
        "weight": {"type": "number"},
        "age": {"type": "integer"},
        "vaccinated": {"type": "boolean"},
        "tags": {"type": "array"},
    },
    "required": ["name", "status"],
}


def test_parse_schema_kinds():
    node = parse_schema(INPUT_SCHEMA)

    assert isinstance(node, ObjectNode)
    assert node.required == ["name", "status"]
    assert [child.kind for child in node.properties.values()] == [
        "string",
        "string",
        "number",
        "integer",
        "boolean",
        "array",
    ]
    assert node.properties["status"].enum == ["available", "pending", "sold"]


def test_parse_schema_unwraps_nullable():
    node = parse_schema({"anyOf": [{"type": "integer"}, {"type": "null"}], "description": "Count"})

    assert node.kind == "integer"
    assert node.description == "Count"
    assert parse_schema({"type": ["string", "null"]}).kind == "string"


def test_parse_schema_unknown_type_is_any():
    assert isinstance(parse_schema({}), AnyNode)
    assert isinstance(parse_schema(None), AnyNode)


def test_parse_schema_nested_array():
    node = parse_schema({"type": "array", "items": {"type": "string", "enum": ["a", "b"]}})

    assert isinstance(node, ArrayNode)
    assert isinstance(node.items, StringNode)
    assert to_json_schema(node) == {"type": "array", "items": {"type": "string", "enum": ["a", "b"]}}


def test_parse_schema_rejects_invalid():
    with pytest.raises(SchemaConversionError):
        parse_schema({"type": "string", "enum": []})
    with pytest.raises(SchemaConversionError):
        parse_schema({"type": "object", "properties": ["a"]})
    with pytest.raises(SchemaConversionError):
        parse_schema("string")


def test_input_model_round_trip():
    """A generated model reads back into the schema it was built from."""
    model = build_input_model("createPet", INPUT_SCHEMA)

    assert input_schema_from_model(model) == to_json_schema(parse_schema(INPUT_SCHEMA))


def test_input_model_validation():
    model = build_input_model("createPet", INPUT_SCHEMA)

    valid = model.model_validate({"name": "Rex", "status": "available", "age": 3})
    assert valid.model_dump(by_alias=True, exclude_none=True) == {"name": "Rex", "status": "available", "age": 3}

    with pytest.raises(ValidationError):
        model.model_validate({"name": "Rex"})
    with pytest.raises(ValidationError):
        model.model_validate({"name": "Rex", "status": "lost"})
    with pytest.raises(ValidationError):
        model.model_validate({"name": "Rex", "status": "sold", "vaccinated": "not sure"})


def test_input_model_aliases_non_identifier_names():
    model = build_input_model(
        "get-item",
        {
            "type": "object",
            "properties": {"X-Request-Id": {"type": "string"}, "class": {"type": "string"}},
            "required": ["X-Request-Id"],
        },
    )

    instance = model.model_validate({"X-Request-Id": "abc", "class": "b"})

    assert model.__name__ == "GetItemInput"
    assert instance.model_dump(by_alias=True, exclude_none=True) == {"X-Request-Id": "abc", "class": "b"}


def test_input_model_ignores_extra_arguments():
    model = build_input_model("ping", {"type": "object", "properties": {}, "required": []})

    assert model.model_validate({"unexpected": 1}).model_dump(exclude_none=True) == {}


def test_input_model_requires_object_schema():
    with pytest.raises(SchemaConversionError):
        build_input_model("bad", {"type": "array"})


def test_openapi_to_json_schema():
    converted = openapi_to_json_schema(
        {
            "type": "object",
            "required": ["id"],
            "properties": {
                "id": {"type": "integer", "format": "int64", "x-internal": True},
                "owner": {"$ref": "#/components/schemas/Owner"},
                "parent": {"$$circular_ref": "#/components/schemas/Pet"},
                "photos": {"type": "array", "items": {"type": "string"}},
            },
        }
    )

    assert converted["required"] == ["id"]
    assert converted["properties"]["id"] == {"type": "integer", "format": "int64"}
    assert converted["properties"]["owner"]["type"] == "object"
    assert converted["properties"]["parent"]["type"] == "object"
    assert converted["properties"]["photos"] == {"type": "array", "items": {"type": "string"}}
    assert openapi_to_json_schema({}) == {"type": "string"}


def test_number_fields_keep_integers():
    model = build_input_model("listItems", {"type": "object", "properties": {"price": {"type": "number"}}})

    assert model.model_validate({"price": 5}).model_dump(by_alias=True) == {"price": 5}
    assert isinstance(model.model_validate({"price": 5}).price, int)
    assert model.model_validate({"price": 4.5}).price == 4.5
    assert input_schema_from_model(model)["properties"]["price"] == {"type": "number"}
