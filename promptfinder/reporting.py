from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from promptfinder.config import Config
from promptfinder.core.models import (
    ROOT_PARENT_ID,
    OptimizationResult,
    PromptVersion,
    VersionStatus,
)


def versions_to_json(versions: Sequence[PromptVersion], *, indent: int = 2) -> str:
    return json.dumps([v.to_dict() for v in versions], indent=indent, ensure_ascii=False)


def result_to_dict(result: OptimizationResult) -> dict[str, Any]:
    return {
        "runId": result.run_id,
        "state": result.state.value,
        "error": result.error,
        "stats": dict(result.stats),
        "versions": [v.to_dict() for v in result.versions],
    }


def render_run_markdown(
    result: OptimizationResult,
    *,
    cfg: Config | None = None,
    objective: str | None = None,
) -> str:
    names = {v.id: v.version_name for v in result.versions}
    evaluated = [v for v in result.versions if v.status is VersionStatus.EVALUATED]
    ranked = sorted(evaluated, key=lambda v: v.score, reverse=True)

    lines: list[str] = []
    lines.append("# promptfinder results")
    lines.append("")
    lines.append(f"- Run: `{result.run_id}`")
    lines.append(f"- State: {result.state.value}")
    if result.error:
        lines.append(f"- Error: {result.error}")
    if objective:
        lines.append(f"- Objective: {_preview_line(objective, max_len=100)}")
    if cfg is not None:
        breadths = ", ".join(str(b) for b in cfg.search.breadths)
        lines.append(
            f"- Search: breadths [{breadths}], survivors {cfg.search.survivors}"
        )
    lines.append(f"- Versions: {len(result.versions)} ({len(evaluated)} evaluated)")
    lines.append("")

    if not ranked:
        lines.append("_No evaluated versions._")
        return "\n".join(lines).rstrip() + "\n"

    lines.append("## Versions (ranked)")
    lines.append("")
    lines.append("| rank | version | score | relative | parent | preview |")
    lines.append("|---:|---|---:|---:|---|---|")
    for idx, version in enumerate(ranked, start=1):
        parent = (
            "-"
            if version.parent_id == ROOT_PARENT_ID
            else names.get(version.parent_id, "?")
        )
        lines.append(
            f"| {idx} | {version.version_name} | {version.score} | "
            f"{version.evaluation.relative_score}% | {parent} | "
            f"{_preview_line(version.prompt, max_len=60)} |"
        )

    lines.append("")
    for version in ranked:
        evaluation = version.evaluation
        lines.append("---")
        lines.append("")
        lines.append(f"## {version.version_name} (score {version.score})")
        lines.append("")
        if version.feedback:
            lines.append(f"- feedback: {version.feedback}")
        lines.append(f"- analysis: {evaluation.comparison_notes}")
        lines.append(f"- suggestions: {evaluation.improvement_suggestions}")
        if evaluation.heuristic:
            lines.append("- scored by heuristic fallback")
        if evaluation.parent_comparison is not None:
            lines.append(f"- vs parent: {evaluation.parent_comparison.notes}")
        if evaluation.group_comparison is not None:
            lines.append(f"- in group: {evaluation.group_comparison.notes}")
        lines.append("")
        lines.append("```text")
        lines.append(version.prompt.rstrip())
        lines.append("```")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def _preview_line(text: str, *, max_len: int) -> str:
    for raw in text.splitlines():
        stripped = raw.strip()
        if stripped:
            line = stripped
            break
    else:
        line = text.strip()
    line = line.replace("|", "\\|")
    if len(line) > max_len:
        return line[: max(0, max_len - 1)].rstrip() + "…"
    return line
