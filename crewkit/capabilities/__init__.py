"""Capabilities: typed functions agents can call."""

from .registry import Capability, CapabilityRegistry, format_validation_errors
from .schema import (
    ArraySchema,
    BooleanSchema,
    EnumSchema,
    NumberSchema,
    ObjectSchema,
    OptionalSchema,
    SchemaNode,
    StringSchema,
    array,
    boolean,
    enum,
    integer,
    number,
    obj,
    optional,
    string,
)

__all__ = [
    "ArraySchema",
    "BooleanSchema",
    "Capability",
    "CapabilityRegistry",
    "EnumSchema",
    "NumberSchema",
    "ObjectSchema",
    "OptionalSchema",
    "SchemaNode",
    "StringSchema",
    "array",
    "boolean",
    "enum",
    "format_validation_errors",
    "integer",
    "number",
    "obj",
    "optional",
    "string",
]
