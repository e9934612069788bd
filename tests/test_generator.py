from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from promptfinder.core.errors import MalformedResponseError
from promptfinder.core.evaluator import Evaluator
from promptfinder.core.generator import (
    VariationGenerator,
    compare_to_parent,
    evaluation_from_outcome,
)
from promptfinder.core.models import EvaluationOutcome, PromptVersion, VersionStatus
from promptfinder.core.stats import OptimizationStats
from promptfinder.core.store import VersionStore

from conftest import OBJECTIVE, TEMPLATE, FakeLLM, variations_response

VARIABLES = {"topic": "volcanoes"}


def _setup(llm, **kwargs):
    store = VersionStore()
    root = store.add(
        PromptVersion(
            prompt=TEMPLATE,
            is_root=True,
            result=OBJECTIVE,
            score=50,
            status=VersionStatus.EVALUATED,
        )
    )
    stats = OptimizationStats()
    generator = VariationGenerator(
        llm, Evaluator(llm, stats=stats), store, stats=stats, **kwargs
    )
    return generator, store, root, stats


def _fixed(prompts):
    return lambda prompt, count: variations_response(prompts)


def test_generates_evaluated_children():
    llm = FakeLLM(scores=[70, 80, 60])
    generator, store, root, stats = _setup(llm)
    children = generator.generate(root, 3, VARIABLES, OBJECTIVE)

    assert [c.version_name for c in children] == ["V1.1", "V1.2", "V1.3"]
    assert [c.score for c in children] == [70, 80, 60]
    assert all(c.status is VersionStatus.EVALUATED for c in children)
    assert all(c.parent_id == root.id for c in children)
    assert all("{{topic}}" in c.prompt for c in children)
    assert children[0].feedback == "tweak"
    assert children[0].evaluation.absolute_score == 70
    assert children[0].evaluation.parent_comparison.score_delta == 20
    assert len(store) == 4
    assert stats.variations_requested == 3
    assert stats.evaluations == 3


def test_variation_prompt_carries_context():
    llm = FakeLLM()
    generator, _, root, _ = _setup(llm)
    generator.generate(root, 2, VARIABLES, OBJECTIVE)
    kind, prompt = llm.calls[0]
    assert kind == "generate"
    assert "generate 2 variations" in prompt
    assert "{{topic}}" in prompt
    assert '"topic": "volcanoes"' in prompt
    assert OBJECTIVE in prompt


def test_zero_count_makes_no_call():
    llm = FakeLLM()
    generator, _, root, _ = _setup(llm)
    assert generator.generate(root, 0, VARIABLES, OBJECTIVE) == []
    assert llm.calls == []


def test_missing_placeholder_is_discarded():
    llm = FakeLLM(
        variations=_fixed(
            ["Summarize volcanoes in one sentence.", "Briefly: {{topic}}."]
        )
    )
    generator, store, root, stats = _setup(llm)
    children = generator.generate(root, 2, VARIABLES, OBJECTIVE)

    assert [c.prompt for c in children] == ["Briefly: {{topic}}."]
    assert all("{{topic}}" in v.prompt for v in store.versions())
    assert stats.variations_rejected == 1


def test_duplicates_and_parent_copies_dropped():
    llm = FakeLLM(
        variations=_fixed([TEMPLATE, "A {{topic}}", "A {{topic}}", "  ", "B {{topic}}"])
    )
    generator, _, root, stats = _setup(llm)
    children = generator.generate(root, 5, VARIABLES, OBJECTIVE)
    assert [c.prompt for c in children] == ["A {{topic}}", "B {{topic}}"]
    assert stats.variations_duplicate == 2
    assert stats.variations_rejected == 1


def test_output_capped_at_count():
    llm = FakeLLM(variations=_fixed([f"{i} {{{{topic}}}}" for i in range(6)]))
    generator, _, root, _ = _setup(llm)
    assert len(generator.generate(root, 4, VARIABLES, OBJECTIVE)) == 4


def test_malformed_response_raises():
    llm = FakeLLM(variations=lambda prompt, count: "I could not do it.")
    generator, store, root, _ = _setup(llm)
    with pytest.raises(MalformedResponseError, match="Invalid optimization response") as excinfo:
        generator.generate(root, 3, VARIABLES, OBJECTIVE)
    assert excinfo.value.raw_response == "I could not do it."
    assert len(store) == 1


def test_drafts_are_stored_before_evaluation():
    observed = []
    store_ref = {}

    def evaluate(prompt):
        observed.append(len(store_ref["store"]))
        return '{"score": 50}'

    llm = FakeLLM(evaluate=evaluate)
    generator, store, root, _ = _setup(llm)
    store_ref["store"] = store
    generator.generate(root, 3, VARIABLES, OBJECTIVE)
    # All three drafts exist before the first one is scored.
    assert observed[0] == 4


class _FailSecond:
    def __init__(self):
        self.runs = 0
        self.lock = threading.Lock()

    def __call__(self, prompt):
        if FakeLLM.kind_of(prompt) == "run":
            with self.lock:
                self.runs += 1
                if self.runs == 2:
                    raise ConnectionError("boom")
        return self.fake(prompt)


def _failing_llm():
    failing = _FailSecond()
    failing.fake = FakeLLM(scores=[70])
    return failing


def test_abort_policy_raises_and_marks_failed():
    llm = _failing_llm()
    generator, store, root, stats = _setup(llm)
    with pytest.raises(ConnectionError):
        generator.generate(root, 3, VARIABLES, OBJECTIVE)

    children = store.children_of(root)
    assert len(children) == 3
    assert children[0].status is VersionStatus.EVALUATED
    assert children[1].status is VersionStatus.FAILED
    assert children[2].status is VersionStatus.DRAFT
    assert stats.evaluation_failures == 1


def test_skip_policy_returns_survivors():
    llm = _failing_llm()
    generator, store, root, _ = _setup(llm, on_evaluation_error="skip")
    children = generator.generate(root, 3, VARIABLES, OBJECTIVE)

    assert [c.version_name for c in children] == ["V1.1", "V1.3"]
    assert store.by_id(store.children_of(root)[1].id).status is VersionStatus.FAILED


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        VariationGenerator(MagicMock(), MagicMock(), VersionStore(), on_evaluation_error="retry")


def test_parallel_evaluation_keeps_creation_order():
    llm = FakeLLM(scores=[55])
    generator, store, root, stats = _setup(llm, max_workers=4)
    children = generator.generate(root, 4, VARIABLES, OBJECTIVE)

    assert [c.version_name for c in children] == ["V1.1", "V1.2", "V1.3", "V1.4"]
    assert all(c.status is VersionStatus.EVALUATED for c in children)
    assert stats.evaluations == 4


def test_parallel_abort_settles_all_then_raises():
    llm = _failing_llm()
    generator, store, root, _ = _setup(llm, max_workers=3)
    with pytest.raises(ConnectionError):
        generator.generate(root, 3, VARIABLES, OBJECTIVE)
    statuses = sorted(c.status.value for c in store.children_of(root))
    assert statuses == ["evaluated", "evaluated", "failed"]


def test_evaluation_from_outcome_and_parent_comparison():
    outcome = EvaluationOutcome(score=42, analysis="meh", strengths=("a",))
    evaluation = evaluation_from_outcome(outcome)
    assert evaluation.relative_score == 100
    assert evaluation.absolute_score == 42
    assert evaluation.comparison_notes == "meh"
    assert evaluation.strengths == ["a"]

    parent = PromptVersion(prompt="p", score=50, version_name="V1")
    assert compare_to_parent(60, parent).notes == "Improves on V1 by 10 points"
    assert compare_to_parent(45, parent).notes == "Scores 5 points below V1"
    assert compare_to_parent(50, parent).notes == "Matches V1"
