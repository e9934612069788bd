from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Literal

from promptfinder.core.errors import MalformedResponseError
from promptfinder.core.evaluator import Evaluator
from promptfinder.core.models import (
    Evaluation,
    EvaluationOutcome,
    Malformed,
    ParentComparison,
    PromptVersion,
    VariationCandidate,
    VersionStatus,
)
from promptfinder.core.ports import RunPrompt
from promptfinder.core.progress import ProgressReporter
from promptfinder.core.stats import OptimizationStats
from promptfinder.core.store import VersionStore
from promptfinder.core.templates import missing_variables
from promptfinder.llm.parsing import extract_tag, parse_variations_response
from promptfinder.llm.prompts import build_variation_prompt

log_gen = logging.getLogger("generator")

FailurePolicy = Literal["abort", "skip"]


def evaluation_from_outcome(
    outcome: EvaluationOutcome, *, relative_score: int = 100
) -> Evaluation:
    return Evaluation(
        relative_score=relative_score,
        absolute_score=outcome.score,
        comparison_notes=outcome.analysis,
        improvement_suggestions=outcome.improvement_suggestions,
        concept_alignment=outcome.concept_alignment,
        contextual_accuracy=outcome.contextual_accuracy,
        completeness=outcome.completeness,
        strengths=list(outcome.strengths),
        weaknesses=list(outcome.weaknesses),
        heuristic=outcome.heuristic,
    )


def compare_to_parent(score: int, parent: PromptVersion) -> ParentComparison:
    delta = score - parent.score
    if delta > 0:
        notes = f"Improves on {parent.version_name} by {delta} points"
    elif delta < 0:
        notes = f"Scores {-delta} points below {parent.version_name}"
    else:
        notes = f"Matches {parent.version_name}"
    return ParentComparison(
        parent_id=parent.id,
        parent_score=parent.score,
        score_delta=delta,
        notes=notes,
    )


class VariationGenerator:
    """Asks the LLM for template rewrites and turns them into evaluated drafts."""

    def __init__(
        self,
        run_prompt: RunPrompt,
        evaluator: Evaluator,
        store: VersionStore,
        *,
        reporter: ProgressReporter | None = None,
        stats: OptimizationStats | None = None,
        max_workers: int = 1,
        on_evaluation_error: FailurePolicy = "abort",
    ) -> None:
        if on_evaluation_error not in ("abort", "skip"):
            raise ValueError(
                f"Unknown on_evaluation_error policy '{on_evaluation_error}'."
            )
        self.run_prompt = run_prompt
        self.evaluator = evaluator
        self.store = store
        self.reporter = reporter or ProgressReporter()
        self.stats = stats
        self.max_workers = max(1, max_workers)
        self.on_evaluation_error = on_evaluation_error

    def generate(
        self,
        parent: PromptVersion,
        count: int,
        variables: Mapping[str, Any],
        objective: str,
    ) -> list[PromptVersion]:
        if count <= 0:
            return []

        self.reporter.sub(
            f"Generating {count} variations for {parent.version_name}",
            parent.prompt,
            "Generation",
        )
        prompt = build_variation_prompt(
            template=parent.prompt,
            current_result=parent.result,
            count=count,
            variables=variables,
            objective=objective,
        )
        log_gen.debug("Variation prompt:\n%s", prompt)
        if self.stats:
            self.stats.incr("variations_requested", count)
            self.stats.incr("llm_calls")
        try:
            response = self.run_prompt(prompt)
        except Exception:
            if self.stats:
                self.stats.incr("llm_calls_failed")
            raise
        self.reporter.sub("Received variations from LLM", response, "Generation Response")
        log_gen.debug("Variation analysis: %s", extract_tag(response, "Analysis") or "-")

        parsed = parse_variations_response(response)
        if isinstance(parsed, Malformed):
            raise MalformedResponseError(
                f"Invalid optimization response format: {parsed.reason}", response
            )
        if self.stats:
            self.stats.incr("variations_received", len(parsed.value))

        accepted = self._accept(parent, parsed.value, count, variables)
        drafts = [self._add_draft(parent, candidate) for candidate in accepted]
        return self._evaluate_drafts(parent, drafts, variables, objective)

    def _accept(
        self,
        parent: PromptVersion,
        candidates: Sequence[VariationCandidate],
        count: int,
        variables: Mapping[str, Any],
    ) -> list[VariationCandidate]:
        accepted: list[VariationCandidate] = []
        seen = {parent.prompt.strip()}
        for candidate in candidates:
            if len(accepted) >= count:
                break
            missing = missing_variables(candidate.prompt, variables)
            if missing:
                log_gen.warning(
                    "Invalid variation, missing variables: %s", ", ".join(missing)
                )
                self.reporter.sub(
                    f"Discarded variation missing variables: {', '.join(missing)}",
                    candidate.prompt,
                    "Validation",
                )
                if self.stats:
                    self.stats.incr("variations_rejected")
                continue
            key = candidate.prompt.strip()
            if not key or key in seen:
                log_gen.info("Dropping duplicate or empty variation.")
                if self.stats:
                    self.stats.incr("variations_duplicate")
                continue
            seen.add(key)
            accepted.append(candidate)
        return accepted

    def _add_draft(
        self, parent: PromptVersion, candidate: VariationCandidate
    ) -> PromptVersion:
        draft = PromptVersion(
            prompt=candidate.prompt,
            parent_id=parent.id,
            feedback=candidate.explanation,
        )
        return self.store.add(draft)

    def _evaluate_drafts(
        self,
        parent: PromptVersion,
        drafts: list[PromptVersion],
        variables: Mapping[str, Any],
        objective: str,
    ) -> list[PromptVersion]:
        def run(draft: PromptVersion) -> BaseException | None:
            try:
                self._evaluate_draft(parent, draft, variables, objective)
            except Exception as exc:
                return exc
            return None

        if self.max_workers > 1 and len(drafts) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                errors = list(pool.map(run, drafts))
        else:
            errors = []
            for draft in drafts:
                error = run(draft)
                errors.append(error)
                if error is not None and self.on_evaluation_error == "abort":
                    break

        evaluated: list[PromptVersion] = []
        first_error: BaseException | None = None
        for draft, error in zip(drafts, errors):
            if error is None:
                evaluated.append(draft)
                continue
            self.store.update(draft, status=VersionStatus.FAILED)
            if self.stats:
                self.stats.incr("evaluation_failures")
            log_gen.warning(
                "Evaluation failed for %s: %s", draft.version_name, error
            )
            first_error = first_error or error

        if first_error is not None and self.on_evaluation_error == "abort":
            raise first_error
        return evaluated

    def _evaluate_draft(
        self,
        parent: PromptVersion,
        draft: PromptVersion,
        variables: Mapping[str, Any],
        objective: str,
    ) -> None:
        self.reporter.sub(
            f"Evaluating {draft.version_name}", draft.prompt, "Evaluation"
        )
        result, outcome = self.evaluator.evaluate_template(
            draft.prompt, variables, objective
        )
        evaluation = evaluation_from_outcome(outcome, relative_score=0)
        evaluation.parent_comparison = compare_to_parent(outcome.score, parent)
        self.store.update(
            draft,
            result=result,
            score=outcome.score,
            raw_evaluation_result=outcome.raw_response,
            evaluation=evaluation,
            status=VersionStatus.EVALUATED,
        )

