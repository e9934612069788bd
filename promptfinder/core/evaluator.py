from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from promptfinder.core.errors import EmptyResultError
from promptfinder.core.heuristics import heuristic_score
from promptfinder.core.models import EvaluationOutcome, Malformed
from promptfinder.core.ports import RunPrompt
from promptfinder.core.progress import ProgressReporter
from promptfinder.core.stats import OptimizationStats
from promptfinder.core.templates import substitute_variables, verify_variables
from promptfinder.llm.parsing import parse_evaluation_response
from promptfinder.llm.prompts import build_evaluation_prompt

log_eval = logging.getLogger("evaluator")


class Evaluator:
    """Scores template output against an objective with an LLM judge.

    Unparseable judge replies fall back to a text-similarity heuristic;
    errors raised by ``run_prompt`` propagate unchanged.
    """

    def __init__(
        self,
        run_prompt: RunPrompt,
        *,
        reporter: ProgressReporter | None = None,
        stats: OptimizationStats | None = None,
    ) -> None:
        self.run_prompt = run_prompt
        self.reporter = reporter or ProgressReporter()
        self.stats = stats

    def evaluate(self, result: str, objective: str) -> EvaluationOutcome:
        if not result or not objective:
            log_eval.warning(
                "Missing input for evaluation (result=%s, objective=%s).",
                bool(result),
                bool(objective),
            )
            return EvaluationOutcome(
                score=0,
                analysis="Missing result or objective - nothing to compare",
                improvement_suggestions="Provide both a result and an objective",
            )

        prompt = build_evaluation_prompt(result=result, objective=objective)
        log_eval.debug("Evaluation prompt:\n%s", prompt)
        raw = self._call(prompt)
        self.reporter.sub("Received evaluation", raw, "Evaluation Result")
        if self.stats:
            self.stats.incr("evaluations")

        parsed = parse_evaluation_response(raw)
        if isinstance(parsed, Malformed):
            score = heuristic_score(result, objective)
            log_eval.warning(
                "Failed to parse evaluation (%s); heuristic score %d.",
                parsed.reason,
                score,
            )
            if self.stats:
                self.stats.incr("heuristic_fallbacks")
            return EvaluationOutcome(
                score=score,
                raw_response=raw,
                analysis="Evaluator response could not be parsed; heuristic similarity score used",
                heuristic=True,
            )
        return parsed.value

    def evaluate_template(
        self,
        template: str,
        variables: Mapping[str, Any],
        objective: str,
    ) -> tuple[str, EvaluationOutcome]:
        verify_variables(template, variables)
        substituted = substitute_variables(template, variables)
        self.reporter.sub(
            "Running prompt with substituted variables", substituted, "Execution"
        )
        result = self._call(substituted)
        if not result:
            raise EmptyResultError("No result received from template execution")
        self.reporter.sub(
            "Received template execution result", result, "Execution Result"
        )
        return result, self.evaluate(result, objective)

    def _call(self, prompt: str) -> str:
        if self.stats:
            self.stats.incr("llm_calls")
        try:
            return self.run_prompt(prompt)
        except Exception:
            if self.stats:
                self.stats.incr("llm_calls_failed")
            raise
