"""YAML configuration for providers, agents, groups and pipelines.

Example ``crewkit.yaml``::

    provider:
      name: openai
      model: gpt-4o-mini
      api_key: ${OPENAI_API_KEY}

    sampling:
      temperature: 0.7
      max_tokens: 4096

    personas:
      lead:
        role: Technical lead
        description: Owns the final recommendation

    agents:
      researcher:
        description: Finds relevant facts
        capabilities: [search]
      writer:
        description: Writes the answer
        stream: true
        persona: lead
        sampling: {temperature: 0.3}

    groups:
      reviewers:
        strategy: collaborative
        members: [researcher, writer]

    pipelines:
      main:
        error_handling: continue
        steps:
          - {kind: single, unit: researcher}
          - {kind: conditional, unit: writer, condition: needs_prose}
          - {kind: conditional, unit: reviewers, else: true}
          - {kind: parallel, units: [researcher, writer]}

Secrets belong in ``crewkit.local.yaml``, which is merged over ``crewkit.yaml``.
"""

from __future__ import annotations

import importlib
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

import yaml
from pydantic import BaseModel

from .agents.base import AgentConfig, Persona, SamplingParameters
from .agents.engine import ConversationEngine
from .agents.protocol import Runnable
from .capabilities.registry import CapabilityRegistry
from .coordination.group import CoordinationStrategy, Group
from .coordination.pipeline import ErrorHandling, Pipeline, StepCondition, StepKind
from .errors import PipelineError
from .observability import AgentObserver
from .providers import create_provider
from .providers.base import ChatProvider

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "crewkit.local.yaml"
BASE_CONFIG_NAME = "crewkit.yaml"

ENV_OVERRIDES = {
    "CREWKIT_PROVIDER": "name",
    "CREWKIT_MODEL": "model",
    "CREWKIT_API_KEY": "api_key",
    "CREWKIT_API_BASE": "api_base",
}


@dataclass(frozen=True)
class ProviderConfig:
    name: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    api_base: str = ""

    def create(self) -> ChatProvider:
        return create_provider(self.name, self.model, api_key=self.api_key, api_base=self.api_base)


@dataclass(frozen=True)
class GroupConfig:
    name: str
    strategy: CoordinationStrategy
    members: Tuple[str, ...]


@dataclass(frozen=True)
class StepConfig:
    """One pipeline step as written in YAML; units are agent or group names."""

    kind: StepKind
    units: Tuple[str, ...]
    condition: Optional[str] = None
    is_else: bool = False


@dataclass(frozen=True)
class PipelineConfig:
    name: str
    error_handling: ErrorHandling = ErrorHandling.STOP
    description: str = ""
    steps: Tuple[StepConfig, ...] = ()


@dataclass
class CrewkitConfig:
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    sampling: SamplingParameters = field(default_factory=SamplingParameters)
    personas: Dict[str, Persona] = field(default_factory=dict)
    agents: Dict[str, AgentConfig] = field(default_factory=dict)
    groups: Dict[str, GroupConfig] = field(default_factory=dict)
    pipelines: Dict[str, PipelineConfig] = field(default_factory=dict)

    def agent(self, name: str) -> AgentConfig:
        try:
            return self.agents[name]
        except KeyError:
            raise KeyError(f"No agent named {name!r} in configuration") from None


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must be a mapping: {path}")
        return data


def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(base_value, value)
        else:
            merged[key] = value
    return merged


def load_raw_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load the raw configuration mapping.

    When ``config_path`` names ``crewkit.local.yaml``, the sibling
    ``crewkit.yaml`` is loaded first and the local file is merged over it.
    ``CREWKIT_*`` environment variables override the provider block.

    Raises:
        FileNotFoundError: If no configuration file exists
        ValueError: If a file is not a YAML mapping
    """
    target = Path(config_path)

    if target.name == "crewkit.local.yaml":
        base_path = target.with_name(BASE_CONFIG_NAME)
        data = _deep_merge(_load_yaml(base_path), _load_yaml(target))
        if not data:
            raise FileNotFoundError(f"Config file not found: {config_path} (also missing fallback {base_path})")
    else:
        data = _load_yaml(target)
        if not data:
            raise FileNotFoundError(f"Config file not found: {config_path}")

    return _apply_env_overrides(data)


def _apply_env_overrides(data: dict) -> dict:
    provider = dict(data.get("provider") or {})
    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            logger.debug(f"Config override from {env_var}")
            provider[key] = value
    if provider:
        data = {**data, "provider": provider}
    return data


def _parse_sampling(raw: Optional[Mapping[str, Any]], base: SamplingParameters) -> SamplingParameters:
    if not raw:
        return base
    known = {"temperature", "max_tokens", "top_p", "frequency_penalty", "presence_penalty"}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"Unknown sampling parameter(s): {', '.join(sorted(unknown))}")
    return replace(base, **dict(raw))


def _parse_persona(raw: Mapping[str, Any]) -> Persona:
    if "role" not in raw:
        raise ValueError("Persona requires a role")
    return Persona(role=raw["role"], description=raw.get("description", ""), backstory=raw.get("backstory", ""))


def _import_schema(reference: str) -> Type[BaseModel]:
    """Resolve ``package.module:ClassName`` to a pydantic model class."""
    module_name, _, attr = reference.partition(":")
    if not attr:
        raise ValueError(f"response_schema must look like 'module:ClassName', got {reference!r}")
    schema = getattr(importlib.import_module(module_name), attr)
    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise ValueError(f"response_schema {reference!r} is not a pydantic model")
    return schema


def _parse_agent(
    name: str,
    raw: Mapping[str, Any],
    sampling: SamplingParameters,
    personas: Dict[str, Persona],
    default_model: str,
) -> AgentConfig:
    persona = raw.get("persona")
    if isinstance(persona, str):
        if persona not in personas:
            raise ValueError(f"Agent {name!r} refers to unknown persona {persona!r}")
        persona = personas[persona]
    elif isinstance(persona, Mapping):
        persona = _parse_persona(persona)

    schema = raw.get("response_schema")
    return AgentConfig(
        name=name,
        description=raw.get("description", ""),
        model=raw.get("model", default_model),
        stream=bool(raw.get("stream", False)),
        response_schema=_import_schema(schema) if schema else None,
        sampling=_parse_sampling(raw.get("sampling"), sampling),
        capabilities=tuple(raw.get("capabilities") or ()),
        persona=persona,
        requires_human_input=bool(raw.get("requires_human_input", False)),
        structured_retries=int(raw.get("structured_retries", 1)),
    )


def _parse_step(raw: Mapping[str, Any]) -> StepConfig:
    kind = StepKind.parse(raw.get("kind", StepKind.SINGLE.value))
    if "units" in raw:
        units = tuple(raw["units"] or ())
    elif "unit" in raw:
        units = (raw["unit"],)
    else:
        raise ValueError(f"Pipeline step of kind {kind.value!r} names no unit")
    is_else = bool(raw.get("else", False))
    condition = raw.get("condition")
    if kind is not StepKind.PARALLEL and len(units) != 1:
        raise ValueError(f"Pipeline step of kind {kind.value!r} takes exactly one unit")
    if kind is StepKind.CONDITIONAL and not (condition or is_else):
        raise ValueError("Conditional pipeline step needs a condition or 'else: true'")
    return StepConfig(kind=kind, units=units, condition=condition, is_else=is_else)


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> CrewkitConfig:
    """Load and validate a full configuration.

    Raises:
        UnknownStrategyError: If a group names an unknown coordination strategy
        UnknownStepKindError: If a pipeline step has an unknown kind
        ValueError: For any other malformed entry
    """
    data = load_raw_config(config_path)

    provider_raw = data.get("provider") or {}
    provider = ProviderConfig(
        name=provider_raw.get("name", "openai"),
        model=provider_raw.get("model", "gpt-4o-mini"),
        api_key=provider_raw.get("api_key", ""),
        api_base=provider_raw.get("api_base", ""),
    )
    sampling = _parse_sampling(data.get("sampling"), SamplingParameters())
    personas = {name: _parse_persona(raw) for name, raw in (data.get("personas") or {}).items()}
    agents = {
        name: _parse_agent(name, raw or {}, sampling, personas, provider.model)
        for name, raw in (data.get("agents") or {}).items()
    }

    groups: Dict[str, GroupConfig] = {}
    for name, raw in (data.get("groups") or {}).items():
        groups[name] = GroupConfig(
            name=name,
            strategy=CoordinationStrategy.parse(raw.get("strategy", "sequential")),
            members=tuple(raw.get("members") or ()),
        )

    pipelines: Dict[str, PipelineConfig] = {}
    for name, raw in (data.get("pipelines") or {}).items():
        pipelines[name] = PipelineConfig(
            name=name,
            error_handling=ErrorHandling.parse(raw.get("error_handling", "stop")),
            description=raw.get("description", ""),
            steps=tuple(_parse_step(step) for step in raw.get("steps") or ()),
        )

    config = CrewkitConfig(
        provider=provider,
        sampling=sampling,
        personas=personas,
        agents=agents,
        groups=groups,
        pipelines=pipelines,
    )
    _check_references(config)
    logger.info(f"Loaded config: {len(agents)} agent(s), {len(groups)} group(s), {len(pipelines)} pipeline(s)")
    return config


def _check_references(config: CrewkitConfig) -> None:
    known = set(config.agents) | set(config.groups)
    for group in config.groups.values():
        for member in group.members:
            if member not in known or member == group.name:
                raise ValueError(f"Group {group.name!r} refers to unknown member {member!r}")
    for pipeline in config.pipelines.values():
        for step in pipeline.steps:
            for unit in step.units:
                if unit not in known:
                    raise ValueError(f"Pipeline {pipeline.name!r} refers to unknown unit {unit!r}")


class CrewBuilder:
    """Turns a loaded ``CrewkitConfig`` into engines, groups and pipelines.

    Units are built lazily and cached by name, so a group and a pipeline that
    name the same agent share one engine.
    """

    def __init__(
        self,
        config: CrewkitConfig,
        provider: Optional[ChatProvider] = None,
        capabilities: Optional[CapabilityRegistry] = None,
        observer: Optional[AgentObserver] = None,
    ):
        self.config = config
        self.provider = provider or config.provider.create()
        self.capabilities = capabilities or CapabilityRegistry()
        self.observer = observer
        self._units: Dict[str, Runnable] = {}
        self._building: List[str] = []

    def engine(self, name: str) -> ConversationEngine:
        unit = self.unit(name)
        if not isinstance(unit, ConversationEngine):
            raise TypeError(f"{name!r} is a group, not an agent")
        return unit

    def unit(self, name: str) -> Runnable:
        if name in self._units:
            return self._units[name]
        if name in self._building:
            raise ValueError(f"Group {name!r} contains itself")

        self._building.append(name)
        try:
            if name in self.config.agents:
                unit: Runnable = ConversationEngine(
                    self.config.agents[name],
                    self.provider,
                    capabilities=self.capabilities,
                    observer=self.observer,
                )
            elif name in self.config.groups:
                group = self.config.groups[name]
                unit = Group(
                    group.strategy,
                    [self.unit(member) for member in group.members],
                    name=name,
                    provider=self.provider,
                    model=self.config.provider.model,
                    observer=self.observer,
                )
            else:
                raise KeyError(f"No agent or group named {name!r} in configuration")
        finally:
            self._building.pop()

        self._units[name] = unit
        return unit

    def pipeline(self, name: str, conditions: Optional[Mapping[str, StepCondition]] = None) -> Pipeline:
        """Build a pipeline; ``conditions`` maps the condition names used in YAML to predicates."""
        try:
            definition = self.config.pipelines[name]
        except KeyError:
            raise KeyError(f"No pipeline named {name!r} in configuration") from None
        conditions = conditions or {}

        pipeline = Pipeline(
            definition.name,
            error_handling=definition.error_handling,
            description=definition.description,
            observer=self.observer,
        )
        for step in definition.steps:
            units = [self.unit(unit) for unit in step.units]
            if step.kind is StepKind.PARALLEL:
                pipeline.parallel(units)
            elif step.kind is StepKind.CONDITIONAL and step.is_else:
                pipeline.else_(units[0])
            elif step.kind is StepKind.CONDITIONAL:
                if step.condition not in conditions:
                    raise PipelineError(f"Pipeline {name!r} uses undefined condition {step.condition!r}")
                pipeline.if_(conditions[step.condition], units[0])
            else:
                pipeline.then(units[0])
        return pipeline
