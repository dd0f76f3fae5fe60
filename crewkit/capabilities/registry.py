"""Capability registry: named, schema-validated functions an agent may call."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from jsonschema import Draft7Validator

from ..errors import CapabilityExecutionError, CapabilityNotFoundError, CapabilityValidationError
from ..providers.types import ToolSchema
from .schema import ObjectSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capability:
    """A named function with a typed parameter schema.

    ``func`` receives the coerced arguments as keyword arguments and may be a
    plain function or a coroutine function. ``timeout`` is an advisory hint in
    seconds and is not enforced.
    """

    name: str
    description: str
    parameters: ObjectSchema
    func: Callable[..., Any]
    timeout: Optional[float] = None

    def json_schema(self) -> Dict[str, Any]:
        return self.parameters.to_json_schema()

    def to_tool_schema(self) -> ToolSchema:
        return ToolSchema(name=self.name, description=self.description, parameters=self.json_schema())


CapabilityRef = Union[str, Capability]


def format_validation_errors(schema: Dict[str, Any], value: Any) -> List[str]:
    """Return ``"path: message"`` strings for every schema violation in ``value``."""
    validator = Draft7Validator(schema)
    issues: List[str] = []
    for error in sorted(validator.iter_errors(value), key=lambda e: list(e.absolute_path)):
        path = ".".join(str(p) for p in error.absolute_path) or "root"
        issues.append(f"{path}: {error.message}")
    return issues


class CapabilityRegistry:
    """
    Name-indexed set of capabilities.

    Registering a name that already exists replaces the earlier capability.
    Lookups happen on every call, so capabilities should not be re-registered
    while engines that share the registry are running.
    """

    def __init__(self, capabilities: Optional[Iterable[Capability]] = None):
        self._capabilities: Dict[str, Capability] = {}
        for capability in capabilities or ():
            self.register(capability)

    def register(self, capability: Capability) -> Capability:
        if capability.name in self._capabilities:
            logger.warning(f"Capability {capability.name!r} is already registered; overwriting it")
        self._capabilities[capability.name] = capability
        logger.debug(f"Registered capability: {capability.name}")
        return capability

    def register_function(
        self,
        name: str,
        description: str,
        parameters: ObjectSchema,
        timeout: Optional[float] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of ``register``; the decorated function is returned unchanged."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(Capability(name=name, description=description, parameters=parameters, func=func, timeout=timeout))
            return func

        return decorator

    def unregister(self, name: str) -> bool:
        return self._capabilities.pop(name, None) is not None

    def get(self, name: str) -> Capability:
        try:
            return self._capabilities[name]
        except KeyError:
            raise CapabilityNotFoundError(name) from None

    def names(self) -> List[str]:
        return list(self._capabilities)

    def all(self) -> List[Capability]:
        return list(self._capabilities.values())

    def merged(self, other: "CapabilityRegistry") -> "CapabilityRegistry":
        """New registry holding this registry's capabilities, then ``other``'s."""
        combined = CapabilityRegistry()
        combined._capabilities = {**self._capabilities, **other._capabilities}
        return combined

    def _resolve(self, capability: CapabilityRef) -> Capability:
        if isinstance(capability, Capability):
            return capability
        return self.get(capability)

    def schema(self, capability: CapabilityRef) -> Dict[str, Any]:
        """JSON Schema for the capability's parameters."""
        return self._resolve(capability).json_schema()

    def tool_schemas(self) -> List[ToolSchema]:
        return [c.to_tool_schema() for c in self._capabilities.values()]

    def validate(self, capability: CapabilityRef, raw_args: Any) -> Dict[str, Any]:
        """
        Check ``raw_args`` against the capability's schema.

        Returns:
            The coerced arguments

        Raises:
            CapabilityValidationError: If the arguments violate the schema
        """
        resolved = self._resolve(capability)
        issues = format_validation_errors(resolved.json_schema(), raw_args)
        if issues:
            raise CapabilityValidationError(resolved.name, issues)
        return resolved.parameters.coerce(raw_args)

    async def invoke(self, capability: CapabilityRef, args: Any) -> Any:
        """
        Validate ``args`` and call the implementation.

        The implementation is never called when validation fails.

        Raises:
            CapabilityNotFoundError: If a name is given and nothing is registered under it
            CapabilityValidationError: If the arguments violate the schema
            CapabilityExecutionError: If the implementation raises
        """
        resolved = self._resolve(capability)
        typed_args = self.validate(resolved, args)
        try:
            result = resolved.func(**typed_args)
            if asyncio.iscoroutine(result):
                result = await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise CapabilityExecutionError(resolved.name, str(e)) from e
        return result

    async def invoke_raw(self, capability: CapabilityRef, raw_json: str) -> Any:
        """Like ``invoke`` but takes the arguments as a JSON string, as models send them."""
        resolved = self._resolve(capability)
        try:
            args = json.loads(raw_json) if raw_json else {}
        except json.JSONDecodeError as e:
            raise CapabilityValidationError(resolved.name, [f"root: invalid JSON arguments ({e.msg})"]) from e
        return await self.invoke(resolved, args)

    def __len__(self) -> int:
        return len(self._capabilities)

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __iter__(self):
        return iter(self._capabilities.values())

    def __repr__(self) -> str:
        return f"CapabilityRegistry(capabilities={self.names()})"
