from __future__ import annotations

from collections.abc import Sequence

from promptfinder.core.models import GroupComparison, PromptVersion


def relative_score(score: int, best_score: int) -> int:
    # A zero best leaves nothing to be relative to.
    if best_score <= 0:
        return 0
    return max(0, min(100, int(round(100 * score / best_score))))


def rank_group(siblings: Sequence[PromptVersion]) -> None:
    """Write relative standing and comparison notes onto each sibling.

    The caller's sequence is left in its original order; ties keep their
    original relative order.
    """
    if not siblings:
        return

    if len(siblings) == 1:
        only = siblings[0]
        only.evaluation.relative_score = 100
        only.evaluation.group_comparison = GroupComparison(
            rank=1,
            group_size=1,
            gap_to_best=0,
            gap_to_previous=None,
            notes="Single version in group - no comparison needed",
            suggestion="No improvements needed for single version",
        )
        return

    ranked = sorted(siblings, key=lambda v: v.score, reverse=True)
    best_score = ranked[0].score
    size = len(ranked)

    for idx, version in enumerate(ranked):
        prev_version = ranked[idx - 1] if idx > 0 else None
        next_version = ranked[idx + 1] if idx < size - 1 else None

        if version.score == best_score:
            rel = 100 if best_score > 0 else 0
        else:
            rel = relative_score(version.score, best_score)

        if prev_version is None:
            notes = "Best performing version in group"
        else:
            notes = (
                f"Score difference from best: {best_score - version.score} points; "
                f"{prev_version.score - version.score} points behind "
                f"{prev_version.version_name}"
            )
        if next_version is not None:
            suggestion = (
                f"Leads {next_version.version_name} by "
                f"{version.score - next_version.score} points"
            )
        else:
            suggestion = "Consider generating new variations to improve further"

        version.evaluation.relative_score = rel
        version.evaluation.group_comparison = GroupComparison(
            rank=idx + 1,
            group_size=size,
            gap_to_best=best_score - version.score,
            gap_to_previous=None if prev_version is None else prev_version.score - version.score,
            notes=notes,
            suggestion=suggestion,
        )
