from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from promptfinder.config import Config
from promptfinder.core.models import RunState, VersionStatus
from promptfinder.core.optimizer import PromptOptimizer, optimize
from promptfinder.core.progress import ERROR_STEP
from promptfinder.core.store import VersionStore

from conftest import FakeLLM, variations_response


def _steps(log):
    return [
        (c.args[3], c.args[2]) for c in log.call_args_list if c.args[4] is None
    ]


def test_full_run_builds_expected_tree(opt_config):
    llm = FakeLLM(scores=[70, 80, 60, 90, 50, 40])
    result = PromptOptimizer(opt_config, llm).optimize()

    assert result.ok
    assert result.state is RunState.DONE
    assert len(result.versions) == 11
    names = [v.version_name for v in result.versions]
    assert names == [
        "V1",
        "V1.1", "V1.2", "V1.3", "V1.4",
        "V1.3.1", "V1.3.2", "V1.3.3",
        "V1.1.1", "V1.1.2", "V1.1.3",
    ]
    assert all(v.status is VersionStatus.EVALUATED for v in result.versions)
    assert all("{{topic}}" in v.prompt for v in result.versions)
    assert len({v.id for v in result.versions}) == 11
    assert all(v.evaluation.absolute_score == v.score for v in result.versions)

    root = result.versions[0]
    assert root.is_root
    assert root.parent_id == "initial"
    assert root.score == 70
    assert root.evaluation.relative_score == 100
    assert result.best.version_name in {"V1.3", "V1.1.2"}
    assert result.best.score == 90
    assert result.stats["evaluations"] == 11
    assert result.run_id


def test_generation_groups_are_ranked(opt_config):
    llm = FakeLLM(scores=[70, 80, 60, 90, 50, 40])
    result = PromptOptimizer(opt_config, llm).optimize()
    by_name = {v.version_name: v for v in result.versions}

    assert by_name["V1.3"].evaluation.relative_score == 100
    assert by_name["V1.4"].evaluation.relative_score == 56
    assert by_name["V1.3"].evaluation.group_comparison.notes == (
        "Best performing version in group"
    )
    # Second-generation groups are ranked per parent.
    assert by_name["V1.3.3"].evaluation.relative_score == 100
    assert by_name["V1.1.2"].evaluation.relative_score == 100
    assert by_name["V1.1.1"].evaluation.parent_comparison.parent_id == by_name["V1.1"].id


def test_variations_missing_placeholders_never_stored(opt_config):
    counter = iter(range(100))

    def variations(prompt, count):
        good = [f"Take {next(counter)}: {{{{topic}}}} in a line." for _ in range(count)]
        return variations_response(["Summarize volcanoes in one sentence."] + good)

    result = PromptOptimizer(opt_config, FakeLLM(variations=variations)).optimize()

    assert result.ok
    assert len(result.versions) == 11
    assert all("{{topic}}" in v.prompt for v in result.versions)
    assert result.stats["variations_rejected"] == 3


def test_root_failure_returns_no_versions(opt_config):
    def evaluate(prompt):
        raise ConnectionError("evaluator unreachable")

    log = MagicMock()
    result = PromptOptimizer(opt_config, FakeLLM(evaluate=evaluate), log=log).optimize()

    assert result.versions == []
    assert result.error == "evaluator unreachable"
    assert result.state is RunState.FAILED
    last = log.call_args_list[-1]
    assert last.args[0] == "Optimization failed: evaluator unreachable"
    assert last.args[2] == "Error"
    assert last.args[3] == ERROR_STEP


def test_partial_results_kept_on_later_failure(opt_config):
    calls = {"generate": 0}

    def variations(prompt, count):
        calls["generate"] += 1
        if calls["generate"] == 2:
            return "no variations today"
        return variations_response([f"V{i} {{{{topic}}}}" for i in range(count)])

    result = PromptOptimizer(opt_config, FakeLLM(variations=variations)).optimize()

    assert not result.ok
    assert "Invalid optimization response format" in result.error
    assert [v.version_name for v in result.versions] == [
        "V1", "V1.1", "V1.2", "V1.3", "V1.4"
    ]


def test_progress_steps(opt_config):
    log = MagicMock()
    PromptOptimizer(opt_config, FakeLLM(), log=log).optimize()

    assert _steps(log) == [
        (1, "Optimization Start"),
        (2, "Generation 1"),
        (3, "Selection"),
        (4, "Generation 2"),
        (5, "Complete"),
    ]
    assert log.call_args_list[-1].args[0] == "Optimization process completed"
    substeps = [c.args[4] for c in log.call_args_list if c.args[3] == 2]
    assert substeps[1:] == list(range(1, len(substeps)))


def test_completion_step_follows_generation_count(opt_config):
    cfg = Config.model_validate({"search": {"breadths": [2, 2, 1], "survivors": 1}})
    log = MagicMock()
    result = PromptOptimizer(opt_config, FakeLLM(), cfg=cfg, log=log).optimize()

    assert result.ok
    assert len(result.versions) == 1 + 2 + 2 + 1
    assert [s for s, _ in _steps(log)] == [1, 2, 3, 4, 5, 6, 7]


def test_store_observes_versions_while_running(opt_config):
    appended = []
    store = VersionStore(on_append=lambda v: appended.append(v.version_name))
    result = optimize(opt_config, FakeLLM(), store=store)

    assert appended == [v.version_name for v in result.versions]
    assert len(store) == 11


def test_failing_progress_log_does_not_stop_run(opt_config):
    log = MagicMock(side_effect=RuntimeError("ui gone"))
    result = PromptOptimizer(opt_config, FakeLLM(), log=log).optimize()
    assert result.ok
    assert len(result.versions) == 11


def test_optimizer_runs_once(opt_config):
    optimizer = PromptOptimizer(opt_config, FakeLLM())
    optimizer.optimize()
    with pytest.raises(RuntimeError):
        optimizer.optimize()


def test_parallel_workers_build_same_tree(opt_config):
    cfg = Config.model_validate({"evaluation": {"max_workers": 4}})
    result = PromptOptimizer(opt_config, FakeLLM(scores=[60]), cfg=cfg).optimize()
    assert result.ok
    assert sorted(v.version_name for v in result.versions) == sorted(
        ["V1", "V1.1", "V1.2", "V1.3", "V1.4",
         "V1.1.1", "V1.1.2", "V1.1.3", "V1.2.1", "V1.2.2", "V1.2.3"]
    )


def test_skip_policy_continues_after_failed_sibling(opt_config):
    runs = {"n": 0}
    fake = FakeLLM()

    def run_prompt(prompt):
        if FakeLLM.kind_of(prompt) == "run":
            runs["n"] += 1
            if runs["n"] == 3:
                raise TimeoutError("slow")
        return fake(prompt)

    cfg = Config.model_validate({"evaluation": {"on_evaluation_error": "skip"}})
    result = PromptOptimizer(opt_config, run_prompt, cfg=cfg).optimize()

    assert result.ok
    failed = [v for v in result.versions if v.status is VersionStatus.FAILED]
    assert [v.version_name for v in failed] == ["V1.2"]
    assert result.stats["evaluation_failures"] == 1
