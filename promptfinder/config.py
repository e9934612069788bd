from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class ModelSpec(BaseModel):
    model: str
    p: float = Field(1.0, ge=0)
    temperature: float = 0.7


class LLMConfig(BaseModel):
    ensemble: list[ModelSpec] = Field(
        default_factory=lambda: [ModelSpec(model="gpt-4o-mini", p=1.0, temperature=0.7)]
    )
    timeout: float | None = 120.0
    max_tokens: int | None = None

    @field_validator("ensemble")
    @classmethod
    def _non_empty(cls, value: list[ModelSpec]) -> list[ModelSpec]:
        if not value:
            raise ValueError("llm.ensemble must contain at least one model.")
        if sum(spec.p for spec in value) <= 0:
            raise ValueError("llm.ensemble weights must not all be zero.")
        return value


class SearchConfig(BaseModel):
    # breadths[0] children of the root, then breadths[n] per survivor.
    breadths: list[int] = Field(default_factory=lambda: [4, 3])
    survivors: int = Field(2, ge=1)

    @field_validator("breadths")
    @classmethod
    def _positive(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("search.breadths must not be empty.")
        if any(b <= 0 for b in value):
            raise ValueError("search.breadths must all be > 0.")
        return value


class EvaluationConfig(BaseModel):
    max_workers: int = Field(1, ge=1)
    on_evaluation_error: Literal["abort", "skip"] = "abort"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "logs"

    @field_validator("level")
    @classmethod
    def _upper(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{value}'.")
        return value


class OptimizationConfig(BaseModel):
    initial_prompt: str
    objective: str
    variables: dict[str, Any] = Field(default_factory=dict)
    api_key: str | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _check(self) -> "OptimizationConfig":
        if not self.initial_prompt.strip():
            raise ValueError("initial_prompt must not be empty.")
        return self


class Config(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_cfg(path: str | Path | None) -> Config:
    if not path:
        return Config()
    data = Path(path).read_text(encoding="utf-8")
    try:
        cfg_dict = json.loads(data)
    except json.JSONDecodeError:
        cfg_dict = tomllib.loads(data)
    return Config.model_validate(cfg_dict)
