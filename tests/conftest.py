"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import itertools
import json
import logging
import re
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)

from promptfinder.config import OptimizationConfig  # noqa: E402

OBJECTIVE = "Volcanoes are mountains that erupt molten rock."
TEMPLATE = "Summarize {{topic}} in one sentence."


def variations_response(prompts, *, explanation="tweak") -> str:
    payload = {
        "variations": [{"prompt": p, "explanation": explanation} for p in prompts]
    }
    return (
        "<Analysis>The topic drives the summary.</Analysis>\n"
        "<Variations>\n```json\n" + json.dumps(payload, indent=2) + "\n```\n</Variations>"
    )


def evaluation_response(score, analysis="close match") -> str:
    return json.dumps(
        {
            "score": score,
            "analysis": analysis,
            "conceptAlignment": "good",
            "contextualAccuracy": "fine",
            "completeness": "mostly",
            "improvementSuggestions": "be concrete",
            "strengths": ["short"],
            "weaknesses": ["vague"],
        }
    )


class FakeLLM:
    """Scripted run-prompt function that routes on the kind of prompt."""

    def __init__(self, *, scores=None, result=OBJECTIVE, variations=None, evaluate=None):
        self.calls: list[tuple[str, str]] = []
        self._scores = itertools.cycle(scores or [70, 80, 60, 90, 50, 40])
        self.result = result
        self._variations = variations
        self._evaluate = evaluate
        self._counter = itertools.count(1)

    @staticmethod
    def kind_of(prompt: str) -> str:
        if prompt.startswith("You are an expert evaluator"):
            return "evaluate"
        if prompt.startswith("You are a prompt optimization assistant"):
            return "generate"
        return "run"

    def __call__(self, prompt: str) -> str:
        kind = self.kind_of(prompt)
        self.calls.append((kind, prompt))
        if kind == "generate":
            count = int(re.search(r"generate (\d+) variations", prompt).group(1))
            if self._variations is not None:
                return self._variations(prompt, count)
            prompts = [
                f"Variant {next(self._counter)}: Summarize {{{{topic}}}} briefly."
                for _ in range(count)
            ]
            return variations_response(prompts)
        if kind == "evaluate":
            if self._evaluate is not None:
                return self._evaluate(prompt)
            return evaluation_response(next(self._scores))
        return self.result

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)


@pytest.fixture
def opt_config():
    return OptimizationConfig(
        initial_prompt=TEMPLATE,
        objective=OBJECTIVE,
        variables={"topic": "volcanoes"},
    )
