"""
Schema conversion between JSON Schema, typed schema nodes and pydantic models.

Tool input schemas travel as JSON-Schema-shaped dictionaries. When a tool is
bound to a live server the schema is parsed into a small tagged union of
schema nodes and then turned into a pydantic model that validates incoming
invocation arguments. ``input_schema_from_model`` reads a generated model back
into the JSON Schema subset the nodes cover.
"""

import keyword
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, WithJsonSchema, create_model

from .exceptions import SchemaConversionError


class StringNode(BaseModel):
    kind: Literal["string"] = "string"
    enum: Optional[List[str]] = None
    description: Optional[str] = None


class NumberNode(BaseModel):
    kind: Literal["number"] = "number"
    description: Optional[str] = None


class IntegerNode(BaseModel):
    kind: Literal["integer"] = "integer"
    description: Optional[str] = None


class BooleanNode(BaseModel):
    kind: Literal["boolean"] = "boolean"
    description: Optional[str] = None


class ArrayNode(BaseModel):
    kind: Literal["array"] = "array"
    items: Optional["SchemaNode"] = None
    description: Optional[str] = None


class ObjectNode(BaseModel):
    kind: Literal["object"] = "object"
    properties: Dict[str, "SchemaNode"] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)
    description: Optional[str] = None


class AnyNode(BaseModel):
    kind: Literal["any"] = "any"
    description: Optional[str] = None


SchemaNode = Annotated[
    Union[StringNode, NumberNode, IntegerNode, BooleanNode, ArrayNode, ObjectNode, AnyNode],
    Field(discriminator="kind"),
]

ArrayNode.model_rebuild()
ObjectNode.model_rebuild()


def _schema_type(schema: Dict[str, Any]) -> Optional[str]:
    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        # ["string", "null"] style nullable types
        non_null = [t for t in schema_type if t != "null"]
        return non_null[0] if non_null else None
    if schema_type is None:
        for combiner in ("anyOf", "oneOf"):
            variants = [v for v in schema.get(combiner, []) if v.get("type") != "null"]
            if len(variants) == 1:
                return _schema_type(variants[0])
        if "enum" in schema and all(isinstance(v, str) for v in schema["enum"]):
            return "string"
        if "properties" in schema:
            return "object"
    return schema_type


def parse_schema(schema: Optional[Dict[str, Any]]) -> SchemaNode:
    """Parse a JSON Schema dictionary into a schema node.

    Unknown or absent types become ``AnyNode``.

    Raises:
        SchemaConversionError: If the schema is structurally invalid
    """
    if schema is None:
        return AnyNode()
    if not isinstance(schema, dict):
        raise SchemaConversionError(f"Schema must be an object, got {type(schema).__name__}")

    # Unwrap single-variant anyOf/oneOf produced by nullable fields
    for combiner in ("anyOf", "oneOf"):
        if "type" not in schema and combiner in schema:
            variants = [v for v in schema[combiner] if v.get("type") != "null"]
            if len(variants) == 1:
                merged = dict(variants[0])
                if "description" in schema:
                    merged.setdefault("description", schema["description"])
                return parse_schema(merged)

    description = schema.get("description")
    schema_type = _schema_type(schema)

    if schema_type == "string":
        enum = schema.get("enum")
        if enum is not None:
            if not isinstance(enum, list) or not enum:
                raise SchemaConversionError("String enum must be a non-empty list")
            enum = [str(value) for value in enum]
        return StringNode(enum=enum, description=description)
    if schema_type == "number":
        return NumberNode(description=description)
    if schema_type == "integer":
        return IntegerNode(description=description)
    if schema_type == "boolean":
        return BooleanNode(description=description)
    if schema_type == "array":
        items = schema.get("items")
        return ArrayNode(items=parse_schema(items) if items else None, description=description)
    if schema_type == "object":
        properties = schema.get("properties", {})
        if not isinstance(properties, dict):
            raise SchemaConversionError("Object properties must be a mapping")
        return ObjectNode(
            properties={name: parse_schema(prop) for name, prop in properties.items()},
            required=list(schema.get("required", [])),
            description=description,
        )
    return AnyNode(description=description)


def to_json_schema(node: SchemaNode) -> Dict[str, Any]:
    """Render a schema node back into a JSON Schema dictionary."""
    if isinstance(node, AnyNode):
        result: Dict[str, Any] = {}
    elif isinstance(node, StringNode):
        result = {"type": "string"}
        if node.enum is not None:
            result["enum"] = list(node.enum)
    elif isinstance(node, ArrayNode):
        result = {"type": "array"}
        if node.items is not None:
            result["items"] = to_json_schema(node.items)
    elif isinstance(node, ObjectNode):
        result = {
            "type": "object",
            "properties": {name: to_json_schema(prop) for name, prop in node.properties.items()},
            "required": list(node.required),
        }
    else:
        result = {"type": node.kind}
    if node.description:
        result["description"] = node.description
    return result


def to_annotation(node: SchemaNode) -> Any:
    """Return the Python type used to validate values of a schema node."""
    if isinstance(node, StringNode):
        if node.enum:
            return Literal[tuple(node.enum)]
        return str
    if isinstance(node, NumberNode):
        # Integral values stay integers through validation
        return Annotated[Union[int, float], WithJsonSchema({"type": "number"})]
    if isinstance(node, IntegerNode):
        return int
    if isinstance(node, BooleanNode):
        return bool
    if isinstance(node, ArrayNode):
        return List[Any]
    if isinstance(node, ObjectNode):
        return Dict[str, Any]
    return Any


def _field_name(prop_name: str, taken: set) -> str:
    name = re.sub(r"\W", "_", prop_name)
    if not name or name[0].isdigit() or keyword.iskeyword(name) or name.startswith("_"):
        name = f"field_{name.lstrip('_')}"
    while name in taken or hasattr(BaseModel, name):
        name = f"{name}_"
    taken.add(name)
    return name


def _model_name(tool_name: str) -> str:
    parts = re.split(r"[^a-zA-Z0-9]+", tool_name)
    return "".join(part[:1].upper() + part[1:] for part in parts if part) + "Input"


def build_input_model(tool_name: str, input_schema: Optional[Dict[str, Any]]) -> Type[BaseModel]:
    """Build a pydantic model that validates a tool's invocation arguments.

    Required properties become required fields; everything else is optional
    with a ``None`` default. Properties whose names are not valid Python
    identifiers (``X-Request-Id``) are kept through field aliases.

    Args:
        tool_name: Tool name, used to derive the model name
        input_schema: JSON-Schema-shaped object schema

    Returns:
        A pydantic model class

    Raises:
        SchemaConversionError: If the schema cannot be converted
    """
    root = parse_schema(input_schema or {"type": "object"})
    if isinstance(root, AnyNode):
        root = ObjectNode()
    if not isinstance(root, ObjectNode):
        raise SchemaConversionError(f"Input schema for {tool_name} must be an object schema")

    fields: Dict[str, Tuple[Any, Any]] = {}
    taken: set = set()
    for prop_name, node in root.properties.items():
        annotation = to_annotation(node)
        field_name = _field_name(prop_name, taken)
        if prop_name in root.required:
            fields[field_name] = (
                annotation,
                Field(..., alias=prop_name, description=node.description),
            )
        else:
            fields[field_name] = (
                Optional[annotation],
                Field(None, alias=prop_name, description=node.description),
            )

    return create_model(
        _model_name(tool_name),
        __config__=ConfigDict(populate_by_name=True, extra="ignore"),
        **fields,
    )


def input_schema_from_model(model: Type[BaseModel]) -> Dict[str, Any]:
    """Read a generated input model back into a JSON Schema object."""
    schema = model.model_json_schema(by_alias=True)
    node = parse_schema(
        {
            "type": "object",
            "properties": schema.get("properties", {}),
            "required": schema.get("required", []),
        }
    )
    return to_json_schema(node)


def openapi_to_json_schema(schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Convert an OpenAPI schema object into a plain JSON Schema dictionary.

    Keeps the keywords tool clients understand and recurses into object
    properties and array items. Unresolved ``$ref`` entries become generic
    objects.
    """
    if not schema:
        return {"type": "string"}
    if "$ref" in schema:
        return {"type": "object", "description": f"Reference to {schema['$ref']}"}
    if "$$circular_ref" in schema:
        return {"type": "object", "description": f"Circular reference to {schema['$$circular_ref']}"}

    result: Dict[str, Any] = {}
    for key in (
        "type",
        "description",
        "format",
        "enum",
        "default",
        "example",
        "minimum",
        "maximum",
        "minLength",
        "maxLength",
        "pattern",
        "nullable",
    ):
        if key in schema:
            result[key] = schema[key]

    if schema.get("type") == "object" or "properties" in schema:
        if "properties" in schema:
            result["type"] = "object"
            result["properties"] = {
                name: openapi_to_json_schema(prop) for name, prop in schema["properties"].items()
            }
        if "required" in schema:
            result["required"] = list(schema["required"])
        if "additionalProperties" in schema:
            additional = schema["additionalProperties"]
            result["additionalProperties"] = (
                openapi_to_json_schema(additional) if isinstance(additional, dict) else additional
            )

    if schema.get("type") == "array" and "items" in schema:
        result["items"] = openapi_to_json_schema(schema["items"])

    for combiner in ("allOf", "anyOf", "oneOf"):
        if combiner in schema:
            result[combiner] = [openapi_to_json_schema(s) for s in schema[combiner]]

    return result
