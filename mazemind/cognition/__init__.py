"""Cognition stack for mazemind agents.

Reflection, hierarchical planning and the non-blocking scheduler, plus the
``AgentCognition`` runtime that ties them to one agent's memory store.
"""

from .cadence import (
    PLANNING_QUANTUM,
    SIMULATED_HOUR,
    PlannerConfig,
    ReflectionCadence,
    ReflectionConfig,
)
from .context import PlanningContext, build_planning_context
from .fallback import fallback_action, fallback_daily_plan, fallback_hourly_objective
from .planner import HierarchicalPlanner, PlanStamp
from .plans import iter_subtree, transition, validate_children, validate_tree
from .prompts import DEFAULT_PROMPTS, PromptLibrary, PromptTemplate
from .reflection import ReflectionEngine, heuristic_insights
from .renderers import RenderedPrompt, render_prompt
from .runtime import AgentCognition, TickResult
from .scheduling import PlanScheduler

__all__ = [
    "PLANNING_QUANTUM",
    "SIMULATED_HOUR",
    "PlannerConfig",
    "ReflectionCadence",
    "ReflectionConfig",
    "PlanningContext",
    "build_planning_context",
    "fallback_action",
    "fallback_daily_plan",
    "fallback_hourly_objective",
    "HierarchicalPlanner",
    "PlanStamp",
    "iter_subtree",
    "transition",
    "validate_children",
    "validate_tree",
    "DEFAULT_PROMPTS",
    "PromptLibrary",
    "PromptTemplate",
    "ReflectionEngine",
    "heuristic_insights",
    "RenderedPrompt",
    "render_prompt",
    "AgentCognition",
    "TickResult",
    "PlanScheduler",
]
