"""Parameter schema node kinds for capabilities.

A capability's parameters are described by a tree of schema nodes. The set of
node kinds is closed: object, string, number, boolean, array, enum and
optional. Every kind knows how to render itself as JSON Schema and how to
coerce an already-validated JSON value into the Python value handed to the
implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union


@dataclass(frozen=True)
class StringSchema:
    description: str = ""
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    def to_json_schema(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": "string"}
        if self.min_length is not None:
            out["minLength"] = self.min_length
        if self.max_length is not None:
            out["maxLength"] = self.max_length
        if self.pattern is not None:
            out["pattern"] = self.pattern
        return _describe(out, self.description)

    def coerce(self, value: Any) -> Any:
        return value


@dataclass(frozen=True)
class NumberSchema:
    description: str = ""
    integer: bool = False
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def to_json_schema(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": "integer" if self.integer else "number"}
        if self.minimum is not None:
            out["minimum"] = self.minimum
        if self.maximum is not None:
            out["maximum"] = self.maximum
        return _describe(out, self.description)

    def coerce(self, value: Any) -> Any:
        if self.integer:
            return int(value)
        return value


@dataclass(frozen=True)
class BooleanSchema:
    description: str = ""

    def to_json_schema(self) -> Dict[str, Any]:
        return _describe({"type": "boolean"}, self.description)

    def coerce(self, value: Any) -> Any:
        return value


@dataclass(frozen=True)
class EnumSchema:
    values: Sequence[Any] = ()
    description: str = ""

    def to_json_schema(self) -> Dict[str, Any]:
        values = list(self.values)
        out: Dict[str, Any] = {"enum": values}
        if values and all(isinstance(v, str) for v in values):
            out["type"] = "string"
        return _describe(out, self.description)

    def coerce(self, value: Any) -> Any:
        return value


@dataclass(frozen=True)
class ArraySchema:
    items: "SchemaNode" = field(default_factory=StringSchema)
    description: str = ""
    min_items: Optional[int] = None
    max_items: Optional[int] = None

    def to_json_schema(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": "array", "items": self.items.to_json_schema()}
        if self.min_items is not None:
            out["minItems"] = self.min_items
        if self.max_items is not None:
            out["maxItems"] = self.max_items
        return _describe(out, self.description)

    def coerce(self, value: Any) -> Any:
        return [self.items.coerce(item) for item in value]


@dataclass(frozen=True)
class OptionalSchema:
    """Marks an object property as not required.

    Renders as the inner kind; ``default`` is filled in when the property is
    absent.
    """

    inner: "SchemaNode" = field(default_factory=StringSchema)
    default: Any = None

    def to_json_schema(self) -> Dict[str, Any]:
        return self.inner.to_json_schema()

    def coerce(self, value: Any) -> Any:
        if value is None:
            return self.default
        return self.inner.coerce(value)


@dataclass(frozen=True)
class ObjectSchema:
    properties: Dict[str, "SchemaNode"] = field(default_factory=dict)
    description: str = ""

    @property
    def required(self) -> List[str]:
        return [name for name, node in self.properties.items() if not isinstance(node, OptionalSchema)]

    def to_json_schema(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "type": "object",
            "properties": {name: node.to_json_schema() for name, node in self.properties.items()},
        }
        required = self.required
        if required:
            out["required"] = required
        out["additionalProperties"] = False
        return _describe(out, self.description)

    def coerce(self, value: Any) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name, node in self.properties.items():
            if name in value:
                result[name] = node.coerce(value[name])
            elif isinstance(node, OptionalSchema) and node.default is not None:
                result[name] = node.default
        return result


SchemaNode = Union[StringSchema, NumberSchema, BooleanSchema, EnumSchema, ArraySchema, OptionalSchema, ObjectSchema]

SCHEMA_NODE_KINDS = (StringSchema, NumberSchema, BooleanSchema, EnumSchema, ArraySchema, OptionalSchema, ObjectSchema)


def _describe(schema: Dict[str, Any], description: str) -> Dict[str, Any]:
    if description:
        schema["description"] = description
    return schema


# Short constructors, so parameter trees read like declarations.


def string(description: str = "", **kwargs: Any) -> StringSchema:
    return StringSchema(description=description, **kwargs)


def number(description: str = "", **kwargs: Any) -> NumberSchema:
    return NumberSchema(description=description, **kwargs)


def integer(description: str = "", **kwargs: Any) -> NumberSchema:
    return NumberSchema(description=description, integer=True, **kwargs)


def boolean(description: str = "") -> BooleanSchema:
    return BooleanSchema(description=description)


def enum(*values: Any, description: str = "") -> EnumSchema:
    return EnumSchema(values=tuple(values), description=description)


def array(items: SchemaNode, description: str = "", **kwargs: Any) -> ArraySchema:
    return ArraySchema(items=items, description=description, **kwargs)


def optional(inner: SchemaNode, default: Any = None) -> OptionalSchema:
    return OptionalSchema(inner=inner, default=default)


def obj(properties: Optional[Dict[str, SchemaNode]] = None, description: str = "", **more: SchemaNode) -> ObjectSchema:
    merged = dict(properties or {})
    merged.update(more)
    return ObjectSchema(properties=merged, description=description)
