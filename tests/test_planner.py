import asyncio
import json

import pytest

from conftest import FakeLLM
from ftc_assistant.core.errors import GenerationError
from ftc_assistant.pipeline.model_selector import select_model, select_model_slot
from ftc_assistant.pipeline.planner import parse_planner_output, plan_question
from ftc_assistant.schemas.plan import Plan

QUESTION = "How do I tune a PID loop for the arm?"

VALID_PLAN = {
    "needsCode": True,
    "isHard": False,
    "needsConversationContext": False,
    "ragQueries": ["PID tuning arm", "  ", "arm motor control"],
    "shouldShortCircuit": False,
    "directResponse": "",
}


def _is_conservative(plan: Plan) -> bool:
    return plan == Plan.conservative(QUESTION)


class TestParsePlannerOutput:
    def test_valid_plan(self):
        plan = parse_planner_output(json.dumps(VALID_PLAN), QUESTION)
        assert plan.needs_code is True
        assert plan.is_hard is False
        assert plan.rag_queries == ["PID tuning arm", "arm motor control"]

    def test_fenced_json_with_prose(self):
        raw = "Here is the plan:\n```json\n" + json.dumps(VALID_PLAN) + "\n```\nDone."
        assert parse_planner_output(raw, QUESTION).needs_code is True

    @pytest.mark.parametrize("raw", [
        "",
        "not json at all",
        "{needsCode: true,",
        "[1, 2, 3]",
        json.dumps({**VALID_PLAN, "isHard": "yes"}),
        json.dumps({k: v for k, v in VALID_PLAN.items() if k != "directResponse"}),
        json.dumps({**VALID_PLAN, "ragQueries": "PID tuning"}),
    ])
    def test_invalid_output_yields_conservative_plan(self, raw):
        assert _is_conservative(parse_planner_output(raw, QUESTION))

    def test_empty_queries_fall_back_to_question(self):
        plan = parse_planner_output(json.dumps({**VALID_PLAN, "ragQueries": ["", " "]}), QUESTION)
        assert plan.rag_queries == [QUESTION]

    def test_conservative_plan_shape(self):
        plan = Plan.conservative(QUESTION)
        assert plan.needs_code and plan.is_hard and plan.needs_conversation_context
        assert plan.rag_queries == [QUESTION]
        assert plan.should_short_circuit is False
        assert plan.direct_response == ""


class TestShortCircuit:
    def test_requires_flag_and_text(self):
        plan = parse_planner_output(json.dumps({
            **VALID_PLAN, "shouldShortCircuit": True, "directResponse": "  Hi there!  ",
        }), QUESTION)
        assert plan.short_circuit_response == "Hi there!"

    def test_blank_direct_response_does_not_short_circuit(self):
        plan = parse_planner_output(json.dumps({
            **VALID_PLAN, "shouldShortCircuit": True, "directResponse": "   ",
        }), QUESTION)
        assert plan.short_circuit_response is None


class TestPlanQuestion:
    def test_uses_planner_budget(self, settings, auth):
        llm = FakeLLM([json.dumps(VALID_PLAN)])
        plan = asyncio.run(plan_question("USER: hi", QUESTION, llm=llm, auth=auth, settings=settings))

        assert plan.needs_code is True
        request = llm.requests[0]
        assert request.model == settings.planner_model
        assert request.temperature == pytest.approx(0.1)
        assert request.max_output_tokens == 500
        assert request.response_mime_type == "application/json"
        assert "Latest user question:\n" + QUESTION in request.user_prompt

    def test_upstream_failure_yields_conservative_plan(self, settings, auth):
        llm = FakeLLM([GenerationError("quota exceeded", status_code=429)])
        plan = asyncio.run(plan_question("", QUESTION, llm=llm, auth=auth, settings=settings))
        assert _is_conservative(plan)


class TestModelSelector:
    @pytest.mark.parametrize("needs_code, is_hard, slot", [
        (False, False, "easy_noncode"),
        (True, False, "easy_code"),
        (False, True, "hard_noncode"),
        (True, True, "hard_code"),
    ])
    def test_routing_table(self, settings, needs_code, is_hard, slot):
        selection = select_model_slot(needs_code, is_hard, settings)
        assert selection.slot == slot
        assert selection.model == getattr(settings, f"{slot}_model")

    def test_conservative_plan_routes_to_hard_code(self, settings):
        settings = settings.model_copy(update={"hard_code_model": "strongest"})
        assert select_model(Plan.conservative(QUESTION), settings).model == "strongest"
