from __future__ import annotations


class PromptFinderError(Exception):
    """Base class for errors raised by the optimization core."""


class MalformedResponseError(PromptFinderError):
    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message)
        self.raw_response = raw_response


class TemplateValidationError(PromptFinderError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "Invalid prompt template: missing required variables: "
            + ", ".join(self.missing)
        )


class EmptyResultError(PromptFinderError):
    """The run-prompt function returned no text for a template."""
