from __future__ import annotations

import logging
import uuid

from promptfinder.config import Config, OptimizationConfig
from promptfinder.core.evaluator import Evaluator
from promptfinder.core.generator import VariationGenerator, evaluation_from_outcome
from promptfinder.core.models import (
    OptimizationResult,
    PromptVersion,
    RunState,
    VersionStatus,
)
from promptfinder.core.ports import ProgressLog, RunPrompt
from promptfinder.core.progress import ProgressReporter
from promptfinder.core.ranking import rank_group
from promptfinder.core.stats import OptimizationStats
from promptfinder.core.store import VersionStore

log_opt = logging.getLogger("optimizer")


class PromptOptimizer:
    """Generation-based search over a tree of prompt-template versions.

    seed -> generation 1 (``breadths[0]`` children of the root) -> keep the
    top ``survivors`` -> generation 2 (``breadths[1]`` children each) -> ...

    Every version is appended to ``store`` the moment it exists, so callers
    watching the store (or its ``on_append`` callback) see the tree grow while
    ``optimize`` is still running.
    """

    def __init__(
        self,
        config: OptimizationConfig,
        run_prompt: RunPrompt,
        *,
        cfg: Config | None = None,
        log: ProgressLog | None = None,
        store: VersionStore | None = None,
    ) -> None:
        self.config = config
        self.cfg = cfg or Config()
        self.run_prompt = run_prompt
        self.store = store if store is not None else VersionStore()
        self.run_id = uuid.uuid4().hex[:8]
        self.state = RunState.IDLE
        self.stats = OptimizationStats()
        self.reporter = ProgressReporter(log, run_id=self.run_id)
        self.evaluator = Evaluator(
            run_prompt, reporter=self.reporter, stats=self.stats
        )
        self.generator = VariationGenerator(
            run_prompt,
            self.evaluator,
            self.store,
            reporter=self.reporter,
            stats=self.stats,
            max_workers=self.cfg.evaluation.max_workers,
            on_evaluation_error=self.cfg.evaluation.on_evaluation_error,
        )

    @property
    def completion_step(self) -> int:
        return 2 * len(self.cfg.search.breadths) + 1

    def optimize(self) -> OptimizationResult:
        if self.state is not RunState.IDLE:
            raise RuntimeError(
                "An optimizer runs once; create a new one to restart from a fresh root."
            )
        log_opt.info("[%s] Starting optimization.", self.run_id)
        try:
            self.reporter.step(1, "Optimization Start", "Starting optimization process")
            root = self._seed()

            breadths = self.cfg.search.breadths
            self._set_state(RunState.GENERATING)
            self.reporter.step(2, "Generation 1", "Generating first generation variations")
            previous = self._expand(root, breadths[0])

            for generation, breadth in enumerate(breadths[1:], start=2):
                self._set_state(RunState.SELECTING)
                self.reporter.step(
                    2 * generation - 1,
                    "Selection",
                    f"Selecting best performers from generation {generation - 1}",
                )
                survivors = self._select(previous)

                self._set_state(RunState.GENERATING)
                self.reporter.step(
                    2 * generation,
                    f"Generation {generation}",
                    f"Generating generation {generation} variations",
                )
                previous = []
                for parent in survivors:
                    self.reporter.sub(
                        f"Generating variations for {parent.version_name}",
                        None,
                        f"Generation {generation}",
                    )
                    previous.extend(self._expand(parent, breadth))

            self._set_state(RunState.DONE)
            self.reporter.step(
                self.completion_step, "Complete", "Optimization process completed"
            )
            log_opt.info(
                "[%s] Optimization finished with %d versions.",
                self.run_id,
                len(self.store),
            )
            return self._result(None)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self._set_state(RunState.FAILED)
            self.reporter.error(f"Optimization failed: {message}")
            log_opt.exception("[%s] Optimization failed: %s", self.run_id, message)
            return self._result(message)

    def _seed(self) -> PromptVersion:
        self._set_state(RunState.SEEDING)
        root = PromptVersion(
            prompt=self.config.initial_prompt,
            is_root=True,
            feedback="Initial template for optimization process",
        )
        self.reporter.sub("Evaluating initial template", root.prompt, "Evaluation")
        result, outcome = self.evaluator.evaluate_template(
            root.prompt, self.config.variables, self.config.objective
        )
        root.result = result
        root.score = outcome.score
        root.raw_evaluation_result = outcome.raw_response
        root.evaluation = evaluation_from_outcome(outcome, relative_score=100)
        root.status = VersionStatus.EVALUATED
        # The root is stored only once evaluated.
        self.store.add(root)
        self.reporter.sub(
            f"Initial template evaluated: score {root.score}",
            None,
            "Initial Evaluation",
        )
        return root

    def _expand(self, parent: PromptVersion, breadth: int) -> list[PromptVersion]:
        children = self.generator.generate(
            parent, breadth, self.config.variables, self.config.objective
        )
        with self.store.locked():
            rank_group(children)
        log_opt.info(
            "[%s] %s produced %d children (scores: %s).",
            self.run_id,
            parent.version_name,
            len(children),
            ", ".join(str(child.score) for child in children) or "-",
        )
        return children

    def _select(self, candidates: list[PromptVersion]) -> list[PromptVersion]:
        ranked = sorted(candidates, key=lambda v: v.score, reverse=True)
        survivors = ranked[: self.cfg.search.survivors]
        self.reporter.sub(
            "Selected "
            + ", ".join(f"{v.version_name} ({v.score})" for v in survivors),
            None,
            "Selection",
        )
        return survivors

    def _set_state(self, state: RunState) -> None:
        log_opt.debug("[%s] %s -> %s", self.run_id, self.state.value, state.value)
        self.state = state

    def _result(self, error: str | None) -> OptimizationResult:
        return OptimizationResult(
            versions=self.store.snapshot(),
            error=error,
            state=self.state,
            run_id=self.run_id,
            stats=self.stats.as_dict(),
        )


def optimize(
    config: OptimizationConfig,
    run_prompt: RunPrompt,
    *,
    cfg: Config | None = None,
    log: ProgressLog | None = None,
    store: VersionStore | None = None,
) -> OptimizationResult:
    return PromptOptimizer(
        config, run_prompt, cfg=cfg, log=log, store=store
    ).optimize()
