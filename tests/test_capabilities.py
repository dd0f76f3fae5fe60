"""Tests for capability schemas and the capability registry."""

from __future__ import annotations

import pytest

from crewkit.capabilities import (
    Capability,
    CapabilityRegistry,
    array,
    boolean,
    enum,
    integer,
    number,
    obj,
    optional,
    string,
)
from crewkit.errors import (
    CapabilityExecutionError,
    CapabilityNotFoundError,
    CapabilityValidationError,
    ValidationError,
)


def _add_capability(calls: list[dict]) -> Capability:
    def add(a: int, b: int) -> int:
        calls.append({"a": a, "b": b})
        return a + b

    return Capability(
        name="add",
        description="Add two integers",
        parameters=obj(a=integer("First addend"), b=integer("Second addend")),
        func=add,
    )


class TestSchema:
    def test_object_schema_lists_required_and_forbids_extra_properties(self):
        schema = obj(
            query=string("Search text"),
            limit=optional(integer(minimum=1), default=10),
            description="Search arguments",
        ).to_json_schema()

        assert schema == {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search text"},
                "limit": {"type": "integer", "minimum": 1},
            },
            "required": ["query"],
            "additionalProperties": False,
            "description": "Search arguments",
        }

    def test_required_key_omitted_when_every_property_is_optional(self):
        schema = obj(flag=optional(boolean())).to_json_schema()

        assert "required" not in schema
        assert schema["properties"]["flag"] == {"type": "boolean"}

    def test_enum_of_strings_is_typed_as_string(self):
        assert enum("low", "high").to_json_schema() == {"enum": ["low", "high"], "type": "string"}
        assert enum(1, 2).to_json_schema() == {"enum": [1, 2]}

    def test_array_and_nested_object(self):
        schema = array(obj(name=string()), min_items=1).to_json_schema()

        assert schema["type"] == "array"
        assert schema["minItems"] == 1
        assert schema["items"]["required"] == ["name"]

    def test_coerce_fills_optional_defaults_and_integers(self):
        schema = obj(count=integer(), ratio=number(), tags=optional(array(string()), default=["none"]))

        assert schema.coerce({"count": 3.0, "ratio": 0.5}) == {"count": 3, "ratio": 0.5, "tags": ["none"]}

    def test_property_named_description_does_not_collide(self):
        schema = obj({"description": string("Free text")}, description="Notes")

        assert schema.required == ["description"]
        assert schema.description == "Notes"


class TestCapabilityRegistry:
    def test_register_get_and_names(self):
        registry = CapabilityRegistry()
        registry.register(_add_capability([]))

        assert "add" in registry
        assert len(registry) == 1
        assert registry.names() == ["add"]
        assert registry.get("add").description == "Add two integers"

    def test_get_unknown_raises(self):
        with pytest.raises(CapabilityNotFoundError, match="No capability found: nope"):
            CapabilityRegistry().get("nope")

    def test_reregistering_overwrites(self, caplog: pytest.LogCaptureFixture):
        registry = CapabilityRegistry([_add_capability([])])
        replacement = Capability(name="add", description="v2", parameters=obj(), func=lambda: 0)

        registry.register(replacement)

        assert registry.get("add").description == "v2"
        assert "already registered" in caplog.text

    def test_register_function_decorator(self):
        registry = CapabilityRegistry()

        @registry.register_function("echo", "Echo text back", obj(text=string()))
        def echo(text: str) -> str:
            return text

        assert echo("x") == "x"
        assert registry.tool_schemas()[0].name == "echo"
        assert registry.schema("echo")["required"] == ["text"]

    def test_merged_returns_new_registry(self):
        first = CapabilityRegistry([_add_capability([])])
        second = CapabilityRegistry([Capability(name="noop", description="", parameters=obj(), func=lambda: None)])

        combined = first.merged(second)

        assert combined.names() == ["add", "noop"]
        assert first.names() == ["add"]

    def test_validate_reports_path_and_message(self):
        registry = CapabilityRegistry([_add_capability([])])

        with pytest.raises(CapabilityValidationError) as exc_info:
            registry.validate("add", {"a": "two"})

        message = str(exc_info.value)
        assert message.startswith("Parameter validation failed: ")
        assert "a: 'two' is not of type 'integer'" in message
        assert "root: 'b' is a required property" in message

    def test_validation_error_alias(self):
        assert ValidationError is CapabilityValidationError

    @pytest.mark.asyncio
    async def test_invoke_with_invalid_arguments_never_calls_implementation(self):
        calls: list[dict] = []
        registry = CapabilityRegistry([_add_capability(calls)])

        with pytest.raises(CapabilityValidationError):
            await registry.invoke("add", {"a": 1, "b": 2, "c": 3})
        with pytest.raises(CapabilityValidationError):
            await registry.invoke("add", "not an object")

        assert calls == []

    @pytest.mark.asyncio
    async def test_invoke_passes_coerced_arguments(self):
        calls: list[dict] = []
        registry = CapabilityRegistry([_add_capability(calls)])

        assert await registry.invoke("add", {"a": 2, "b": 2}) == 4
        assert calls == [{"a": 2, "b": 2}]

    @pytest.mark.asyncio
    async def test_invoke_awaits_async_implementations(self):
        async def shout(text: str) -> str:
            return text.upper()

        registry = CapabilityRegistry([Capability("shout", "", obj(text=string()), shout)])

        assert await registry.invoke("shout", {"text": "hi"}) == "HI"

    @pytest.mark.asyncio
    async def test_invoke_wraps_implementation_errors(self):
        def broken() -> None:
            raise RuntimeError("disk full")

        registry = CapabilityRegistry([Capability("broken", "", obj(), broken)])

        with pytest.raises(CapabilityExecutionError, match="Capability execution failed: disk full"):
            await registry.invoke("broken", {})

    @pytest.mark.asyncio
    async def test_invoke_raw_parses_json_arguments(self):
        calls: list[dict] = []
        registry = CapabilityRegistry([_add_capability(calls)])

        assert await registry.invoke_raw("add", '{"a": 1, "b": 5}') == 6
        with pytest.raises(CapabilityValidationError, match="invalid JSON"):
            await registry.invoke_raw("add", "{not json")
        assert calls == [{"a": 1, "b": 5}]
