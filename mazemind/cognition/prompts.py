"""Prompt templates for planning and reflection requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass
class PromptTemplate:
    """Represents a templated prompt with ``{{placeholder}}`` slots."""

    name: str
    system: str
    user: str
    description: str = ""


class PromptLibrary:
    """Container for named prompt templates per cognition stage."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]

    def __contains__(self, name: object) -> bool:
        return name in self.templates


DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="plan_daily",
        system=(
            "You are the planning module of a character trying to survive inside a dark maze. "
            "Choose one goal for the next few hours. Survival needs come first; exploration "
            "only makes sense when hunger, thirst and energy are comfortable. "
            "Respond with JSON matching the example."
        ),
        user=(
            "Situation:\n{{context_summary}}\n\n"
            "Survival:\n{{survival_text}}\n\n"
            "Known points of interest:\n{{known_items_text}}\n\n"
            "Recent memories:\n{{memories_text}}\n\n"
            "Insights:\n{{reflections_text}}\n\n"
            "Example output:\n"
            "{\n"
            "  \"goal\": \"Find water in the eastern corridors\",\n"
            "  \"reasoning\": \"Thirst is dropping and the east is unexplored\",\n"
            "  \"priority\": \"HIGH\"\n"
            "}\n\n"
            "priority must be one of CRITICAL, HIGH, MEDIUM, LOW. Respond with JSON only."
        ),
        description="Produces the multi-hour goal.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="plan_hourly",
        system=(
            "You are the planning module of a maze survivor. Break the goal into hour-long "
            "objectives. Respond with JSON matching the example."
        ),
        user=(
            "Goal ({{priority}}): {{goal}}\n"
            "Reasoning: {{reasoning}}\n\n"
            "Situation:\n{{context_summary}}\n\n"
            "Objectives already planned:\n{{previous_steps}}\n\n"
            "Write objective {{step_index}} of {{step_count}} covering {{window}}.\n\n"
            "Example output:\n"
            "{\"objective\": \"Search the corridors north of the starting room for water\"}\n\n"
            "Respond with JSON only."
        ),
        description="Produces one hourly objective.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="plan_action",
        system=(
            "You are the planning module of a maze survivor. Break the hourly objective into "
            "short concrete actions of a few minutes each. Respond with JSON matching the example."
        ),
        user=(
            "Goal: {{goal}}\n"
            "Hourly objective: {{objective}}\n\n"
            "Situation:\n{{context_summary}}\n\n"
            "Known points of interest:\n{{known_items_text}}\n\n"
            "Actions already planned this hour:\n{{previous_steps}}\n\n"
            "Write action {{step_index}} of {{step_count}} covering {{window}}.\n\n"
            "Example output:\n"
            "{\n"
            "  \"action\": \"Walk to the junction at (12, 4)\",\n"
            "  \"action_type\": \"MOVE\",\n"
            "  \"target_x\": 12,\n"
            "  \"target_y\": 4,\n"
            "  \"target_item\": null\n"
            "}\n\n"
            "action_type must be one of MOVE, EXPLORE, SEEK_ITEM, CONSUME_ITEM, REST, REFLECT, WAIT. "
            "Respond with JSON only."
        ),
        description="Produces one fine-grained action.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reflect_insights",
        system=(
            "You are the reflection module of a maze survivor. Read the numbered memories and "
            "infer higher-level insights: patterns in the maze, strategies that work, lessons "
            "from mistakes. Every insight must cite the ids of the memories that support it. "
            "Respond with JSON matching the example."
        ),
        user=(
            "Focus: {{topic}}\n\n"
            "Memories:\n{{reflection_inputs}}\n\n"
            "Write between 1 and {{max_insights}} insights.\n\n"
            "Example output:\n"
            "{\n"
            "  \"insights\": [\n"
            "    {\"statement\": \"Water tends to appear near dead ends\", "
            "\"citations\": [\"mem-000004\", \"mem-000009\"], \"category\": \"pattern\"}\n"
            "  ]\n"
            "}\n\n"
            "category must be one of strategy, pattern, emotional, learning. Respond with JSON only."
        ),
        description="Synthesizes cited insights from recent memories.",
    )
)
