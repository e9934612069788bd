from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

ROOT_PARENT_ID = "initial"

PENDING_NOTE = "Pending evaluation"

T = TypeVar("T")


class VersionStatus(str, Enum):
    DRAFT = "draft"
    EVALUATED = "evaluated"
    FAILED = "failed"


class RunState(str, Enum):
    IDLE = "idle"
    SEEDING = "seeding"
    GENERATING = "generating"
    SELECTING = "selecting"
    DONE = "done"
    FAILED = "failed"


def new_version_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class ParentComparison:
    parent_id: str
    parent_score: int
    score_delta: int
    notes: str


@dataclass(slots=True)
class GroupComparison:
    rank: int
    group_size: int
    gap_to_best: int
    gap_to_previous: int | None
    notes: str
    suggestion: str


@dataclass(slots=True)
class Evaluation:
    relative_score: int = 0
    absolute_score: int = 0
    comparison_notes: str = PENDING_NOTE
    improvement_suggestions: str = PENDING_NOTE
    concept_alignment: str = ""
    contextual_accuracy: str = ""
    completeness: str = ""
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    heuristic: bool = False
    parent_comparison: ParentComparison | None = None
    group_comparison: GroupComparison | None = None


@dataclass(slots=True)
class PromptVersion:
    prompt: str
    parent_id: str = ROOT_PARENT_ID
    id: str = field(default_factory=new_version_id)
    is_root: bool = False
    result: str = ""
    score: int = 0
    version_name: str = ""
    feedback: str = ""
    evaluation: Evaluation = field(default_factory=Evaluation)
    raw_evaluation_result: str = ""
    position: tuple[float, float] | None = None
    status: VersionStatus = VersionStatus.DRAFT

    @property
    def is_evaluated(self) -> bool:
        return self.status is VersionStatus.EVALUATED and bool(self.result)

    def to_dict(self) -> dict[str, Any]:
        evaluation = self.evaluation
        return {
            "id": self.id,
            "prompt": self.prompt,
            "parentId": self.parent_id,
            "isRoot": self.is_root,
            "result": self.result,
            "score": self.score,
            "versionName": self.version_name,
            "feedback": self.feedback,
            "status": self.status.value,
            "position": list(self.position) if self.position else None,
            "rawEvaluationResult": self.raw_evaluation_result,
            "evaluation": {
                "relativeScore": evaluation.relative_score,
                "absoluteScore": evaluation.absolute_score,
                "comparisonNotes": evaluation.comparison_notes,
                "improvementSuggestions": evaluation.improvement_suggestions,
                "conceptAlignment": evaluation.concept_alignment,
                "contextualAccuracy": evaluation.contextual_accuracy,
                "completeness": evaluation.completeness,
                "strengths": list(evaluation.strengths),
                "weaknesses": list(evaluation.weaknesses),
                "heuristic": evaluation.heuristic,
                "parentComparison": _comparison_dict(evaluation.parent_comparison),
                "groupComparison": _comparison_dict(evaluation.group_comparison),
            },
        }


def _comparison_dict(
    comparison: ParentComparison | GroupComparison | None,
) -> dict[str, Any] | None:
    if comparison is None:
        return None
    return asdict(comparison)


@dataclass(frozen=True, slots=True)
class EvaluationOutcome:
    score: int
    raw_response: str = ""
    analysis: str = "No analysis available"
    improvement_suggestions: str = "No suggestions available"
    concept_alignment: str = ""
    contextual_accuracy: str = ""
    completeness: str = ""
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    heuristic: bool = False


@dataclass(frozen=True, slots=True)
class VariationCandidate:
    prompt: str
    explanation: str = ""


@dataclass(frozen=True, slots=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Malformed:
    raw_text: str
    reason: str = ""


ParseResult = Union[Parsed[T], Malformed]


@dataclass(slots=True)
class OptimizationResult:
    versions: list[PromptVersion]
    error: str | None = None
    state: RunState = RunState.DONE
    run_id: str = ""
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def best(self) -> PromptVersion | None:
        evaluated = [v for v in self.versions if v.is_evaluated]
        if not evaluated:
            return None
        return max(evaluated, key=lambda v: v.score)
