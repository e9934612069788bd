from __future__ import annotations

from typing import Protocol

from promptfinder.core.models import PromptVersion


class RunPrompt(Protocol):
    def __call__(self, prompt: str) -> str: ...


class VersionSink(Protocol):
    def __call__(self, version: PromptVersion) -> None: ...


class ProgressLog(Protocol):
    def __call__(
        self,
        message: str,
        raw_response: str | None = None,
        title: str | None = None,
        step: int | None = None,
        substep: int | None = None,
    ) -> None: ...
