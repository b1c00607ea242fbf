"""
Tool schemas as tagged variants.

A tool's parameter and response schemas are JSON-schema-like documents.  They
are parsed once, at registry load, into a closed set of node kinds
(``string``, ``number``, ``integer``, ``boolean``, ``array``, ``object``)
discriminated on ``type``, and validated structurally:

* ``validate_arguments`` checks model-supplied arguments without coercing
  anything and returns every offending field path.
* ``shape_response`` checks a provider response and, for ``strict`` schemas,
  keeps exactly the declared fields at every object level.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Node(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    description: Optional[str] = None

    def to_json_schema(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StringSchema(_Node):
    type: Literal["string"] = "string"
    enum: Optional[List[str]] = None
    default: Optional[str] = None


class NumberSchema(_Node):
    type: Literal["number"] = "number"
    default: Optional[float] = None


class IntegerSchema(_Node):
    type: Literal["integer"] = "integer"
    default: Optional[int] = None


class BooleanSchema(_Node):
    type: Literal["boolean"] = "boolean"
    default: Optional[bool] = None


class ArraySchema(_Node):
    type: Literal["array"] = "array"
    items: Optional["SchemaNode"] = None


class ObjectSchema(_Node):
    type: Literal["object"] = "object"
    properties: Dict[str, "SchemaNode"] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)
    additional_properties: Optional[bool] = Field(None, alias="additionalProperties")

    @property
    def allows_extra(self) -> bool:
        return self.additional_properties is not False


SchemaNode = Annotated[
    Union[StringSchema, NumberSchema, IntegerSchema, BooleanSchema, ArraySchema, ObjectSchema],
    Field(discriminator="type"),
]

ArraySchema.model_rebuild()
ObjectSchema.model_rebuild()

_node_adapter: TypeAdapter = TypeAdapter(SchemaNode)


def parse_schema(raw: Dict[str, Any]) -> _Node:
    """Parse a JSON-schema-like dict.  A dict without ``type`` is an open object."""
    if not raw:
        return ObjectSchema()
    if "type" not in raw:
        raw = {**raw, "type": "object"}
    return _node_adapter.validate_python(raw)


def parse_object_schema(raw: Dict[str, Any]) -> ObjectSchema:
    node = parse_schema(raw)
    if not isinstance(node, ObjectSchema):
        raise ValueError(f"Expected an object schema, got '{node.type}'")
    return node


# ── Validation ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SchemaIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _type_issue(node: _Node, value: Any, path: str) -> Optional[SchemaIssue]:
    if isinstance(node, StringSchema):
        if not isinstance(value, str):
            return SchemaIssue(path, "expected string")
        if node.enum is not None and value not in node.enum:
            return SchemaIssue(path, f"expected one of {node.enum}")
    elif isinstance(node, BooleanSchema):
        if not isinstance(value, bool):
            return SchemaIssue(path, "expected boolean")
    elif isinstance(node, IntegerSchema):
        if isinstance(value, bool) or not isinstance(value, int):
            return SchemaIssue(path, "expected integer")
    elif isinstance(node, NumberSchema):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return SchemaIssue(path, "expected number")
    elif isinstance(node, ArraySchema):
        if not isinstance(value, list):
            return SchemaIssue(path, "expected array")
    elif isinstance(node, ObjectSchema):
        if not isinstance(value, dict):
            return SchemaIssue(path, "expected object")
    return None


def _validate(node: _Node, value: Any, path: str, issues: List[SchemaIssue]) -> None:
    issue = _type_issue(node, value, path)
    if issue is not None:
        issues.append(issue)
        return

    if isinstance(node, ArraySchema) and node.items is not None:
        for i, item in enumerate(value):
            _validate(node.items, item, f"{path}[{i}]", issues)
    elif isinstance(node, ObjectSchema):
        for name in node.required:
            if name not in value:
                issues.append(SchemaIssue(_join(path, name), "missing required field"))
        for name, item in value.items():
            prop = node.properties.get(name)
            if prop is None:
                if not node.allows_extra:
                    issues.append(SchemaIssue(_join(path, name), "unexpected field"))
                continue
            _validate(prop, item, _join(path, name), issues)


def validate_arguments(schema: ObjectSchema, arguments: Any) -> List[SchemaIssue]:
    """Return every violation of ``schema`` in ``arguments`` (empty list = valid)."""
    issues: List[SchemaIssue] = []
    _validate(schema, arguments, "", issues)
    return issues


def _shape(node: _Node, value: Any, path: str, strict: bool, issues: List[SchemaIssue]) -> Any:
    issue = _type_issue(node, value, path)
    if issue is not None:
        issues.append(issue)
        return value

    if isinstance(node, ArraySchema) and node.items is not None:
        return [_shape(node.items, item, f"{path}[{i}]", strict, issues) for i, item in enumerate(value)]

    if isinstance(node, ObjectSchema):
        for name in node.required:
            if name not in value:
                issues.append(SchemaIssue(_join(path, name), "missing required field"))
        if not node.properties:
            return value
        shaped: Dict[str, Any] = {}
        for name, item in value.items():
            prop = node.properties.get(name)
            if prop is None:
                if not strict:
                    shaped[name] = item
                continue
            shaped[name] = _shape(prop, item, _join(path, name), strict, issues)
        return shaped

    return value


def shape_response(schema: ObjectSchema, value: Any, *, strict: bool) -> tuple[Any, List[SchemaIssue]]:
    """Check a provider response against ``schema``.

    Strict schemas drop undeclared fields at every object level that declares
    properties.  Returns the shaped value plus any violations.
    """
    issues: List[SchemaIssue] = []
    shaped = _shape(schema, value, "", strict, issues)
    return shaped, issues


# ── Tool definitions ────────────────────────────────────────────────────


class ResponseSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    schema_: ObjectSchema = Field(default_factory=ObjectSchema, alias="schema")
    strict: bool = False


class ToolDefinition(BaseModel):
    """A single function a model may call on one connector."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    function_name: str = Field(..., alias="name")
    description: str
    parameters: ObjectSchema = Field(default_factory=ObjectSchema)
    response_schema: ResponseSchema = Field(..., alias="responseSchema")
    idempotent: bool = False

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ToolDefinition":
        """Build from the function-schema shape the model-facing API publishes::

            {name, description, parameters,
             responseSchema: {type: "json_schema", json_schema: {name, schema, strict}}}
        """
        response = raw.get("responseSchema", {})
        body = response.get("json_schema", response)
        return cls(
            name=raw["name"],
            description=raw.get("description", ""),
            parameters=parse_object_schema(raw.get("parameters") or {}),
            responseSchema=ResponseSchema(
                name=body.get("name", f"{raw['name']}_response"),
                schema=parse_object_schema(body.get("schema") or {}),
                strict=bool(body.get("strict", False)),
            ),
            idempotent=bool(raw.get("idempotent", False)),
        )

    def to_function_schema(self) -> Dict[str, Any]:
        return {
            "name": self.function_name,
            "description": self.description,
            "parameters": self.parameters.to_json_schema(),
            "responseSchema": {
                "type": "json_schema",
                "json_schema": {
                    "name": self.response_schema.name,
                    "schema": self.response_schema.schema_.to_json_schema(),
                    "strict": self.response_schema.strict,
                },
            },
        }
