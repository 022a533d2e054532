"""
System prompt plugin — personas, {{variable}} substitution, prefix/suffix.

The resolved prompt is written onto a copy of the turn's conversation, so it
applies to this request only and never rewrites the stored conversation.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Callable

from switchboard.models import MiddlewareContext
from switchboard.plugins.manager import Plugin


@dataclass
class Persona:
    name: str
    description: str
    system_prompt: str
    temperature: float | None = None
    traits: list[str] = field(default_factory=list)


BUILT_IN_PERSONAS: dict[str, Persona] = {
    "helpful": Persona(
        name="helpful",
        description="A helpful and friendly AI assistant",
        system_prompt=(
            "You are a helpful, friendly AI assistant. Provide clear, accurate, and concise answers. "
            "When you are unsure, say so rather than making up information."
        ),
        temperature=0.7,
        traits=["helpful", "friendly", "honest"],
    ),
    "technical": Persona(
        name="technical",
        description="A technical expert focused on accuracy",
        system_prompt=(
            "You are a technical AI assistant specializing in software engineering. "
            "Provide detailed, accurate technical answers with code examples when appropriate. "
            "Cite best practices and explain trade-offs."
        ),
        temperature=0.3,
        traits=["technical", "precise", "thorough"],
    ),
    "creative": Persona(
        name="creative",
        description="A creative writing assistant",
        system_prompt=(
            "You are a creative AI assistant. Help with brainstorming, writing, and creative tasks. "
            "Be imaginative, use vivid language, and explore unconventional ideas."
        ),
        temperature=1.0,
        traits=["creative", "imaginative", "expressive"],
    ),
    "concise": Persona(
        name="concise",
        description="A minimal, to-the-point assistant",
        system_prompt=(
            "You are a concise AI assistant. Give brief, direct answers without unnecessary elaboration. "
            "Use bullet points and short sentences. Get to the point quickly."
        ),
        temperature=0.5,
        traits=["concise", "direct", "efficient"],
    ),
}


def resolve_variables(prompt: str, variables: dict[str, str | Callable[[], str]]) -> str:
    """Replace every {{key}}; callables are evaluated on each call."""
    for key, value in variables.items():
        replacement = value() if callable(value) else value
        prompt = prompt.replace("{{" + key + "}}", str(replacement))
    return prompt


def system_prompt_plugin(
    default_persona: Persona | str | None = None,
    personas: list[Persona] | None = None,
    variables: dict[str, str | Callable[[], str]] | None = None,
    prefix: str | None = None,
    suffix: str | None = None,
) -> Plugin:
    known = dict(BUILT_IN_PERSONAS)
    for p in personas or []:
        known[p.name] = p

    if isinstance(default_persona, str):
        if default_persona not in known:
            raise ValueError(f"Unknown persona '{default_persona}'")
        active = known[default_persona]
    else:
        active = default_persona
        if active is not None:
            known[active.name] = active

    def on_before_chat(context: MiddlewareContext) -> MiddlewareContext:
        conv = context.conversation
        prompt = active.system_prompt if active else (conv.metadata.system_prompt or context.config.system_prompt)

        if prefix:
            prompt = f"{prefix}\n{prompt}"
        if suffix:
            prompt = f"{prompt}\n{suffix}"
        if variables:
            prompt = resolve_variables(prompt, variables)

        conversation = dataclasses.replace(
            conv, metadata=dataclasses.replace(conv.metadata, system_prompt=prompt),
        )
        metadata = dict(context.metadata)
        metadata["active_persona"] = active.name if active else None
        return dataclasses.replace(context, conversation=conversation, metadata=metadata)

    return Plugin(
        name="system-prompt",
        version="1.0.0",
        description="Dynamic system prompt management with persona support",
        on_before_chat=on_before_chat,
    )
