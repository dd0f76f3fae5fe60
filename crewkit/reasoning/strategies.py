"""Prompt strategies that wrap a rendered prompt with reasoning instructions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence, Tuple


class StrategyType(str, Enum):
    CHAIN_OF_THOUGHT = "chain-of-thought"
    REFLECTION = "reflection"
    MULTI_PERSPECTIVE = "multi-perspective"
    RETRY = "retry"
    VALIDATION = "validation"


DEFAULT_PERSPECTIVES = ("technical", "business", "user")


@dataclass(frozen=True)
class PromptStrategy:
    """One strategy; ``apply`` returns the enhanced prompt and a note on what was applied."""

    type: StrategyType
    perspectives: Sequence[str] = field(default=DEFAULT_PERSPECTIVES)

    def apply(self, prompt: str) -> Tuple[str, str]:
        if self.type is StrategyType.CHAIN_OF_THOUGHT:
            return (
                f"{prompt}\n\n"
                "Let's think through this step by step:\n\n"
                "1. First, I'll analyze the key components of this problem\n"
                "2. Then, I'll consider the relationships between these components\n"
                "3. Next, I'll evaluate possible approaches or solutions\n"
                "4. Finally, I'll provide a well-reasoned conclusion\n\n"
                "Step-by-step reasoning:",
                "Applied chain-of-thought strategy for systematic reasoning",
            )
        if self.type is StrategyType.REFLECTION:
            return (
                f"{prompt}\n\n"
                "After providing your initial response, please reflect on your answer by considering:\n"
                "- Are there any assumptions I made that should be questioned?\n"
                "- What alternative perspectives or approaches exist?\n"
                "- How confident am I in this response and why?\n"
                "- What additional information would improve this analysis?\n\n"
                "Initial Response:\n[Provide your response here]\n\n"
                "Reflection:\n[Reflect on your response here]",
                "Applied reflection strategy for self-evaluation and improvement",
            )
        if self.type is StrategyType.MULTI_PERSPECTIVE:
            headings = "\n".join(f"{p[:1].upper()}{p[1:]} Perspective:" for p in self.perspectives)
            return (
                f"{prompt}\n\n"
                f"Please analyze this from multiple perspectives:\n\n{headings}\n\n"
                "Synthesis:\n[Combine insights from all perspectives]",
                f"Applied multi-perspective strategy with {', '.join(self.perspectives)} viewpoints",
            )
        if self.type is StrategyType.RETRY:
            return (
                f"{prompt}\n\n"
                "Please provide a thorough and accurate response. If you're uncertain about any aspect, "
                "please indicate your level of confidence and suggest how the answer could be improved "
                "with additional information.",
                "Applied retry strategy for improved accuracy",
            )
        return (
            f"{prompt}\n\n"
            "Before finalizing your response, please validate it by:\n"
            "1. Checking for logical consistency\n"
            "2. Verifying factual accuracy where possible\n"
            "3. Ensuring completeness of the answer\n"
            "4. Confirming it addresses the original question\n\n"
            "Response:\n[Your validated response here]",
            "Applied validation strategy for quality assurance",
        )

    @classmethod
    def parse(cls, value: str) -> "PromptStrategy":
        """Build from a strategy name such as ``"chain-of-thought"``."""
        return cls(type=StrategyType(value))
