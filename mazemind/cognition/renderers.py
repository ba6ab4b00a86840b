"""Prompt rendering utilities."""

from __future__ import annotations

from typing import Any, Dict, Optional

from mazemind.reasoning import RenderedPrompt

from .context import PlanningContext
from .prompts import DEFAULT_PROMPTS, PromptLibrary, PromptTemplate


def render_prompt(
    template: PromptTemplate | str,
    context: Optional[PlanningContext] = None,
    *,
    library: Optional[PromptLibrary] = None,
    **values: Any,
) -> RenderedPrompt:
    """Render a template, filling ``{{placeholders}}`` from context and ``values``.

    Context-derived placeholders (``context_summary``, ``survival_text``,
    ``known_items_text``, ``memories_text``, ``reflections_text``,
    ``context_json``) are available whenever a context is given; keyword
    values override them. Unknown placeholders are left as-is.
    """

    if isinstance(template, str):
        template = (library or DEFAULT_PROMPTS).get(template)

    replacements: Dict[str, str] = {}
    if context is not None:
        replacements.update(
            {
                "context_summary": context.summary(),
                "context_json": context.to_json(),
                "survival_text": context.survival_text(),
                "known_items_text": context.known_items_text(),
                "memories_text": context.memories_text(),
                "reflections_text": context.reflections_text(),
            }
        )
    replacements.update({key: "" if value is None else str(value) for key, value in values.items()})

    system = template.system
    user = template.user
    for key, value in replacements.items():
        placeholder = "{{" + key + "}}"
        system = system.replace(placeholder, value)
        user = user.replace(placeholder, value)

    return RenderedPrompt(system=system, user=user)


__all__ = ["render_prompt", "RenderedPrompt"]
