from __future__ import annotations

import logging
import re
from typing import Any

import json5
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from promptfinder.core.models import (
    EvaluationOutcome,
    Malformed,
    Parsed,
    ParseResult,
    VariationCandidate,
)

log_parse = logging.getLogger("llm.parsing")


def extract_tag(text: str, tag: str) -> str | None:
    match = re.search(
        rf"<{re.escape(tag)}>(.*?)</{re.escape(tag)}>",
        text,
        flags=re.DOTALL | re.IGNORECASE,
    )
    if not match:
        return None
    return match.group(1).strip()


def extract_code_block(text: str, lang: str = "json") -> str | None:
    match = re.search(
        rf"```{re.escape(lang)}\s*(.*?)\s*```",
        text,
        flags=re.DOTALL | re.IGNORECASE,
    )
    if not match:
        return None
    return match.group(1).strip()


def _outer_span(text: str, opener: str, closer: str) -> str | None:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def parse_relaxed_json(text: str) -> ParseResult[Any]:
    """Decode JSON5 (single quotes, unquoted keys, trailing commas)."""
    if not text or not text.strip():
        return Malformed(text or "", "empty input")
    try:
        return Parsed(json5.loads(text))
    except ValueError as exc:
        return Malformed(text, str(exc))


def _decode_first(raw: str, candidates: list[str | None]) -> ParseResult[Any]:
    reasons: list[str] = []
    for candidate in candidates:
        if candidate is None:
            continue
        result = parse_relaxed_json(candidate)
        if isinstance(result, Parsed):
            return result
        reasons.append(result.reason)
    log_parse.debug("No decodable JSON payload in response: %s", reasons)
    return Malformed(raw, "; ".join(reasons) or "no JSON payload found")


# ── evaluation ─────────────────────────────────────────────────


class EvaluationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    score: float = Field(allow_inf_nan=False)
    analysis: str = "No analysis available"
    concept_alignment: str = Field("", alias="conceptAlignment")
    contextual_accuracy: str = Field("", alias="contextualAccuracy")
    completeness: str = ""
    improvement_suggestions: str = Field(
        "No suggestions available", alias="improvementSuggestions"
    )
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def _reject_bool(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("score must be a number, not a boolean")
        return value

    @field_validator(
        "analysis",
        "concept_alignment",
        "contextual_accuracy",
        "completeness",
        "improvement_suggestions",
        mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return "\n".join(str(item) for item in value)
        return str(value)

    @field_validator("strengths", "weaknesses", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return [str(item) for item in value]


def parse_evaluation_response(raw: str) -> ParseResult[EvaluationOutcome]:
    stripped = (raw or "").strip()
    candidates: list[str | None] = []
    if stripped.startswith("{"):
        candidates.append(stripped)
    candidates.append(extract_code_block(stripped, "json"))
    candidates.append(extract_code_block(stripped, ""))
    candidates.append(_outer_span(stripped, "{", "}"))

    decoded = _decode_first(raw, candidates)
    if isinstance(decoded, Malformed):
        return decoded
    if not isinstance(decoded.value, dict):
        return Malformed(raw, "evaluation payload is not an object")
    try:
        payload = EvaluationPayload.model_validate(decoded.value)
    except ValidationError as exc:
        return Malformed(raw, f"invalid evaluation payload: {exc.error_count()} errors")

    score = int(round(max(0.0, min(100.0, payload.score))))
    return Parsed(
        EvaluationOutcome(
            score=score,
            raw_response=raw,
            analysis=payload.analysis or "No analysis available",
            improvement_suggestions=payload.improvement_suggestions
            or "No suggestions available",
            concept_alignment=payload.concept_alignment,
            contextual_accuracy=payload.contextual_accuracy,
            completeness=payload.completeness,
            strengths=tuple(payload.strengths),
            weaknesses=tuple(payload.weaknesses),
        )
    )


# ── variations ─────────────────────────────────────────────────


class VariationItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prompt: str
    explanation: str = ""

    @classmethod
    def coerce(cls, value: Any) -> "VariationItem":
        if isinstance(value, dict) and "prompt" not in value and "template" in value:
            value = {**value, "prompt": value["template"]}
        return cls.model_validate(value)


class VariationsPayload(BaseModel):
    variations: list[VariationItem]


def parse_variations_response(raw: str) -> ParseResult[list[VariationCandidate]]:
    tagged = extract_tag(raw or "", "Variations")
    candidates: list[str | None] = []
    if tagged is not None:
        if tagged.startswith(("{", "[")):
            candidates.append(tagged)
        candidates.append(extract_code_block(tagged, "json"))
    candidates.append(extract_code_block(raw or "", "json"))
    candidates.append(extract_code_block(raw or "", ""))
    if tagged is not None:
        candidates.append(_outer_span(tagged, "[", "]"))
        candidates.append(_outer_span(tagged, "{", "}"))

    decoded = _decode_first(raw, candidates)
    if isinstance(decoded, Malformed):
        return decoded

    value = decoded.value
    if isinstance(value, list):
        value = {"variations": value}
    if not isinstance(value, dict) or not isinstance(value.get("variations"), list):
        return Malformed(raw, "missing or invalid variations in response")

    try:
        items = VariationsPayload(
            variations=[VariationItem.coerce(item) for item in value["variations"]]
        ).variations
    except ValidationError as exc:
        return Malformed(raw, f"invalid variation entry: {exc.error_count()} errors")

    return Parsed(
        [
            VariationCandidate(prompt=item.prompt, explanation=item.explanation)
            for item in items
        ]
    )
