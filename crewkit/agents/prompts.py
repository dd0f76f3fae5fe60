"""Prompt text used by engines, orchestrators and groups."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from .base import Persona

GUIDELINES = (
    "ALWAYS provide a complete, final answer to the user's request",
    "NEVER ask the user for additional input or clarification unless explicitly configured to do so",
    "Use available capabilities (functions) when they can help accomplish the task",
    "Provide comprehensive, actionable responses based on the information available",
    "If you need more information to complete a task, make reasonable assumptions and state them clearly",
    "Focus on delivering value and completing the requested task fully",
    "Work as part of the crew - your output may be used by other agents in the workflow",
)

NO_HUMAN_INPUT_GUIDELINE = (
    "IMPORTANT: This is an automated workflow. Do NOT ask for user input. "
    "Provide complete answers based on available information."
)


def build_system_prompt(
    name: str,
    description: str,
    persona: Optional[Persona] = None,
    requires_human_input: bool = False,
) -> str:
    """Compose the system prompt for one agent."""
    if persona is not None:
        header = (
            "PERSONA CONTEXT:\n"
            f"You are operating as: {persona.role}\n"
            f"Description: {persona.description}\n"
            f"Backstory: {persona.backstory}\n\n"
            "CREW ORCHESTRATION CONTEXT:\n"
            "You are part of an AI agent crew system where:\n"
            "- Orchestrators: Persona-driven coordinators that manage multiple specialized agents\n"
            "- Agents: Specialized AI workers focused on specific tasks and workflows\n"
            "- Capabilities: Specific functions that agents can invoke\n\n"
            "Your role in this crew is to execute your specialized task as part of a larger workflow. "
            "Work collaboratively with other agents in the crew to achieve the overall objective.\n\n"
            "AGENT SPECIALIZATION:\n"
            f"{name}: {description}"
        )
    else:
        header = (
            "AI AGENT SYSTEM CONTEXT:\n"
            "You are an AI agent in a crew orchestration system where:\n"
            "- Agents: Specialized AI workers (like you) focused on specific tasks\n"
            "- Capabilities: Specific functions you can invoke when needed\n\n"
            "AGENT SPECIALIZATION:\n"
            f"{name}: {description}"
        )

    lines = [f"{i}. {text}" for i, text in enumerate(GUIDELINES, start=1)]
    if not requires_human_input:
        lines.append(f"{len(GUIDELINES) + 1}. {NO_HUMAN_INPUT_GUIDELINE}")
    return f"{header}\n\nCRITICAL BEHAVIORAL GUIDELINES:\n" + "\n".join(lines)


def build_user_prompt(query: str, upstream_context: Optional[str] = None) -> str:
    if not upstream_context:
        return query
    return f"{query}\n\nUPSTREAM CONTEXT:\n{upstream_context}"


def build_enhanced_query(query: str, reasoning_outputs: Sequence[Tuple[str, str]]) -> str:
    """Fold reasoning-graph outputs (node id, text) into the user query."""
    analysis = "\n\n".join(f"Reasoning step {node_id}:\n{text}" for node_id, text in reasoning_outputs)
    return (
        f"Original Query: {query}\n\n"
        f"Advanced Reasoning Analysis:\n{analysis}\n\n"
        "Enhanced Request: Please provide a comprehensive response that incorporates the advanced "
        "reasoning and thought analysis above while addressing the original query."
    )


def build_consolidation_messages(
    persona: Persona,
    query: str,
    outputs: Sequence[Tuple[str, str]],
) -> Tuple[str, str]:
    """Return the (system, user) prompts an orchestrator uses to merge agent outputs."""
    joined = "\n\n".join(f"{title}: {text}" for title, text in outputs)
    system = (
        f"You are {persona.role}. {persona.description}\n\n"
        f"Background: {persona.backstory}\n\n"
        "You are consolidating results from multiple specialized AI agents to provide a final, "
        "comprehensive answer. Focus on synthesis and providing maximum value to the user."
    )
    user = (
        f"As {persona.role}, you have completed a comprehensive analysis using multiple specialized agents. "
        f"Here are the results from each agent:\n\n{joined}\n\n"
        f"Based on all the above information and your role as {persona.role}, provide a final, "
        f'comprehensive answer to the user\'s original question: "{query}"\n\n'
        "Your response should:\n"
        "1. Synthesize insights from all agents\n"
        "2. Provide a clear, actionable answer\n"
        f"3. Maintain your persona as {persona.role}\n"
        "4. Be comprehensive yet concise\n"
        "5. Address the user's needs completely\n\n"
        "Final Answer:"
    )
    return system, user


def build_consolidation_fallback(outputs: Sequence[Tuple[str, str]]) -> str:
    joined = "\n\n".join(f"{title}: {text}" for title, text in outputs)
    return f"Based on the analysis from {len(outputs)} specialized agents, here's a summary of the findings:\n\n{joined}"


def build_collaborative_synthesis(query: str, perspectives: Sequence[Tuple[str, str]]) -> Tuple[str, str]:
    """Return the (system, user) prompts for merging parallel perspectives into one answer."""
    joined = "\n\n".join(
        f"Perspective {i} ({name}): {text}" for i, (name, text) in enumerate(perspectives, start=1)
    )
    system = (
        "You are a synthesis specialist. You combine the answers of several expert agents into one "
        "coherent, non-redundant response that keeps every important insight and resolves conflicts explicitly."
    )
    user = (
        f'Collaborative Analysis for: "{query}"\n\n{joined}\n\n'
        "Combine these perspectives into a single comprehensive answer to the original query.\n\n"
        "Synthesis:"
    )
    return system, user


def build_concatenation(label: str, outputs: Sequence[str], heading: str = "Group synthesis") -> str:
    """Plain textual synthesis: each output under a numbered label."""
    joined = "\n\n".join(f"{label} {i}: {text}" for i, text in enumerate(outputs, start=1))
    return f"{heading}:\n{joined}"

