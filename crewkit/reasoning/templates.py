"""Prompt templates with a small Handlebars-like syntax."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

_VARIABLE = re.compile(r"\{\{(\w+)\}\}")
_EACH = re.compile(r"\{\{#each (\w+)\}\}(.*?)\{\{/each\}\}", re.DOTALL)
_IF = re.compile(r"\{\{#if (\w+)\}\}(.*?)\{\{/if\}\}", re.DOTALL)


class PromptTemplate:
    """
    Renders ``{{var}}``, ``{{#each list}}..{{this}}..{{/each}}``,
    ``{{#if flag}}..{{/if}}`` and ``{{>partial}}``.

    Unknown variables are left in place. Block helpers are expanded before
    plain variables, so ``{{this}}`` inside a loop refers to the item.
    """

    def __init__(
        self,
        template: str,
        variables: Optional[Dict[str, Any]] = None,
        partials: Optional[Dict[str, str]] = None,
    ):
        self.template = template
        self.variables = dict(variables or {})
        self.partials = dict(partials or {})

    def render(self, context: Optional[Dict[str, Any]] = None) -> str:
        values = {**self.variables, **(context or {})}
        rendered = self.template

        for name, partial in self.partials.items():
            rendered = rendered.replace(f"{{{{>{name}}}}}", partial)

        def each(match: re.Match) -> str:
            items = values.get(match.group(1))
            if not isinstance(items, (list, tuple)):
                return ""
            return "".join(match.group(2).replace("{{this}}", str(item)) for item in items)

        def conditional(match: re.Match) -> str:
            return match.group(2) if values.get(match.group(1)) else ""

        def variable(match: re.Match) -> str:
            key = match.group(1)
            return str(values[key]) if key in values and values[key] is not None else match.group(0)

        rendered = _EACH.sub(each, rendered)
        rendered = _IF.sub(conditional, rendered)
        rendered = _VARIABLE.sub(variable, rendered)
        return rendered.strip()

    def variables_used(self) -> List[str]:
        """Plain ``{{var}}`` names in template order, without duplicates."""
        seen: Dict[str, None] = {}
        for name in _VARIABLE.findall(self.template):
            if name != "this":
                seen.setdefault(name, None)
        return list(seen)

    def missing(self, context: Dict[str, Any]) -> List[str]:
        provided = {**self.variables, **context}
        return [name for name in self.variables_used() if name not in provided]
