from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from promptfinder.core.models import ROOT_PARENT_ID, PromptVersion, VersionStatus


@dataclass(slots=True)
class OptimizationLog:
    message: str
    response: str | None = None
    title: str | None = None
    step: int | None = None
    substep: int | None = None
    timestamp: str = field(default_factory=lambda: datetime.now().strftime("%H:%M:%S"))

    @property
    def label(self) -> str:
        if self.step is None:
            return ""
        if self.step < 0:
            return "!"
        if self.substep is None:
            return str(self.step)
        return f"{self.step}.{self.substep}"


class ConsoleProgressLog:
    """
    Progress-log callback that keeps every entry and echoes it to a console.

    Usage:
        log = ConsoleProgressLog(console)
        optimizer = PromptOptimizer(config, provider, log=log)
        optimizer.optimize()
        log.status            # latest message
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        echo: bool = True,
        show_responses: bool = False,
        preview_chars: int = 240,
    ) -> None:
        self.console = console or Console(stderr=True)
        self.echo = echo
        self.show_responses = show_responses
        self.preview_chars = preview_chars
        self.entries: list[OptimizationLog] = []
        self._lock = threading.Lock()

    def __call__(
        self,
        message: str,
        raw_response: str | None = None,
        title: str | None = None,
        step: int | None = None,
        substep: int | None = None,
    ) -> None:
        entry = OptimizationLog(
            message=message,
            response=raw_response,
            title=title,
            step=step,
            substep=substep,
        )
        with self._lock:
            self.entries.append(entry)
        if self.echo:
            self.console.print(self._render_entry(entry))

    @property
    def status(self) -> str:
        with self._lock:
            return self.entries[-1].message if self.entries else ""

    def _render_entry(self, entry: OptimizationLog) -> RenderableType:
        style = "bold red" if (entry.step or 0) < 0 else "cyan"
        line = Text.assemble(
            (f"{entry.timestamp} ", "dim"),
            (f"[{entry.label}] " if entry.label else "", style),
            (f"{entry.title}: " if entry.title else "", "bold"),
            entry.message,
        )
        if not (self.show_responses and entry.response):
            return line
        body = entry.response
        if len(body) > self.preview_chars:
            body = body[: self.preview_chars].rstrip() + "…"
        return Group(line, Panel(body, padding=(0, 1), border_style="dim"))


def _node_label(version: PromptVersion) -> Text:
    if version.status is VersionStatus.DRAFT:
        score = Text("pending", style="yellow")
    elif version.status is VersionStatus.FAILED:
        score = Text("failed", style="red")
    else:
        score = Text(
            f"{version.score} ({version.evaluation.relative_score}%)", style="green"
        )
    preview = version.prompt.strip().splitlines()[0] if version.prompt.strip() else ""
    if len(preview) > 60:
        preview = preview[:59].rstrip() + "…"
    return Text.assemble((version.version_name or version.id[:8], "bold"), " ", score, " ", (preview, "dim"))


def render_version_tree(versions: Sequence[PromptVersion]) -> Tree:
    tree = Tree("prompt versions")
    children: dict[str, list[PromptVersion]] = {}
    known = {v.id for v in versions}
    top: list[PromptVersion] = []
    for version in versions:
        if version.parent_id == ROOT_PARENT_ID or version.parent_id not in known:
            top.append(version)
        else:
            children.setdefault(version.parent_id, []).append(version)

    stack = [(tree, version) for version in reversed(top)]
    seen: set[str] = set()
    while stack:
        branch, version = stack.pop()
        if version.id in seen:
            continue
        seen.add(version.id)
        node = branch.add(_node_label(version))
        for child in reversed(children.get(version.id, [])):
            stack.append((node, child))
    return tree


def render_summary_table(versions: Sequence[PromptVersion]) -> Table:
    tbl = Table(show_edge=False, pad_edge=False)
    tbl.add_column("version", style="bold")
    tbl.add_column("score", justify="right")
    tbl.add_column("rel", justify="right")
    tbl.add_column("status")
    tbl.add_column("note")
    for version in sorted(versions, key=lambda v: v.score, reverse=True):
        tbl.add_row(
            version.version_name,
            str(version.score),
            f"{version.evaluation.relative_score}%",
            version.status.value,
            version.feedback[:60],
        )
    return tbl
