"""
Answer-model selection.

2x2 routing table over the planner's code and difficulty axes.  Pure
function, no I/O; all four slots come from configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from ftc_assistant.core.config import Settings
from ftc_assistant.schemas.plan import Plan
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.pipeline.model_selector")


@dataclass(frozen=True)
class ModelSelection:
    """Result of the routing table lookup."""

    model: str
    slot: str


def select_model_slot(needs_code: bool, is_hard: bool, settings: Settings) -> ModelSelection:
    if needs_code and is_hard:
        return ModelSelection(settings.hard_code_model, "hard_code")
    if needs_code:
        return ModelSelection(settings.easy_code_model, "easy_code")
    if is_hard:
        return ModelSelection(settings.hard_noncode_model, "hard_noncode")
    return ModelSelection(settings.easy_noncode_model, "easy_noncode")


def select_model(plan: Plan, settings: Settings) -> ModelSelection:
    selection = select_model_slot(plan.needs_code, plan.is_hard, settings)
    logger.info("Model selected: %s (slot=%s)", selection.model, selection.slot)
    return selection
