import pytest

from research_rag.agent.planner import infer_task_type, plan_tasks
from research_rag.agent.router import route_model
from research_rag.types import Budget


@pytest.mark.parametrize(
    ("prompt", "expected"),
    [
        ("Please format this as JSON", "transform"),
        ("Calculate the monthly interest", "compute"),
        ("Find sources on tenant law", "retrieve"),
        ("Write a short poem", "generate"),
        ("Why is the sky blue?", "reason"),
        # first matching rule wins
        ("Search for a way to parse dates", "transform"),
    ],
)
def test_infer_task_type(prompt: str, expected: str) -> None:
    assert infer_task_type(prompt) == expected


def test_plan_has_single_task_carrying_the_prompt() -> None:
    plan = plan_tasks("Cite the statute on deposits")

    assert plan.goal == "Cite the statute on deposits"
    assert len(plan.tasks) == 1
    assert plan.tasks[0].id == "t1"
    assert plan.tasks[0].type == "retrieve"
    assert plan.tasks[0].input == {"prompt": "Cite the statute on deposits"}


@pytest.mark.parametrize(
    ("task_type", "model", "budget"),
    [
        ("transform", "mistral", Budget(1000, 0.0005)),
        ("reason", "mixtral", Budget(3500, 0.002)),
        ("compute", "mistral", Budget(800, 0.0005)),
        ("retrieve", "mixtral", Budget(3000, 0.0015)),
        ("generate", "llama", Budget(2500, 0.001)),
    ],
)
def test_route_model_table(task_type: str, model: str, budget: Budget) -> None:
    decision = route_model(task_type, "plain english text")

    assert decision.model == model
    assert decision.budget == budget


def test_cjk_text_overrides_task_table() -> None:
    for text in ("敷金の返還について", "租金法律", "한국어 and 漢字"):
        decision = route_model("compute", text)
        assert decision.model == "qwen"
        assert decision.budget == Budget(2000, 0.001)


def test_route_returns_independent_budget_copies() -> None:
    first = route_model("reason", "x")
    first.budget.latency_ms = 1

    assert route_model("reason", "x").budget.latency_ms == 3500
