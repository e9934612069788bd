from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from promptfinder.config import (
    Config,
    LLMConfig,
    LoggingConfig,
    OptimizationConfig,
    SearchConfig,
    load_cfg,
)


def test_defaults():
    cfg = Config()
    assert cfg.search.breadths == [4, 3]
    assert cfg.search.survivors == 2
    assert cfg.evaluation.max_workers == 1
    assert cfg.evaluation.on_evaluation_error == "abort"
    assert cfg.llm.ensemble[0].model == "gpt-4o-mini"
    assert cfg.logging.level == "INFO"


def test_load_cfg_none_returns_defaults():
    assert load_cfg(None) == Config()


def test_load_cfg_toml(tmp_path: Path):
    path = tmp_path / "promptfinder.toml"
    path.write_text(
        """
[search]
breadths = [2, 2]
survivors = 1

[evaluation]
max_workers = 3
on_evaluation_error = "skip"

[[llm.ensemble]]
model = "openai/gpt-4o"
p = 0.5

[logging]
level = "debug"
"""
    )
    cfg = load_cfg(path)
    assert cfg.search.breadths == [2, 2]
    assert cfg.evaluation.on_evaluation_error == "skip"
    assert cfg.llm.ensemble[0].model == "openai/gpt-4o"
    assert cfg.llm.ensemble[0].temperature == 0.7
    assert cfg.logging.level == "DEBUG"


def test_load_cfg_json(tmp_path: Path):
    path = tmp_path / "promptfinder.json"
    path.write_text('{"search": {"breadths": [5]}}')
    assert load_cfg(path).search.breadths == [5]


@pytest.mark.parametrize(
    "data",
    [
        {"breadths": []},
        {"breadths": [3, 0]},
        {"survivors": 0},
    ],
)
def test_invalid_search(data):
    with pytest.raises(ValidationError):
        SearchConfig.model_validate(data)


def test_empty_ensemble_rejected():
    with pytest.raises(ValidationError):
        LLMConfig(ensemble=[])


def test_zero_weight_ensemble_rejected():
    with pytest.raises(ValidationError):
        LLMConfig.model_validate({"ensemble": [{"model": "m", "p": 0}]})


def test_unknown_log_level_rejected():
    with pytest.raises(ValidationError):
        LoggingConfig(level="chatty")


def test_invalid_failure_policy_rejected():
    with pytest.raises(ValidationError):
        Config.model_validate({"evaluation": {"on_evaluation_error": "retry"}})


def test_optimization_config_requires_prompt():
    with pytest.raises(ValidationError):
        OptimizationConfig(initial_prompt="   ", objective="x")


def test_api_key_hidden_from_repr():
    config = OptimizationConfig(initial_prompt="p", objective="o", api_key="sk-secret")
    assert "sk-secret" not in repr(config)
