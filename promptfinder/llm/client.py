"""LLM provider wrapper around LiteLLM."""

from __future__ import annotations

import logging
import random
from typing import Sequence

from litellm import completion

from promptfinder.config import LLMConfig, ModelSpec

log_llm = logging.getLogger("llm")


class LLMProvider:
    """Run-prompt collaborator: ``provider(prompt) -> text``.

    Picks a model from the weighted ensemble on every call. ``api_key`` is
    passed straight through to LiteLLM.
    """

    def __init__(
        self,
        llm_ensemble: Sequence[ModelSpec],
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        rng: random.Random | None = None,
    ):
        self.llm_ensemble = list(llm_ensemble)
        if not self.llm_ensemble:
            raise ValueError("LLM ensemble cannot be empty.")
        self.api_key = api_key
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.rng = rng or random.Random()

    @classmethod
    def from_config(
        cls, cfg: LLMConfig, *, api_key: str | None = None
    ) -> "LLMProvider":
        return cls(
            cfg.ensemble,
            api_key=api_key,
            timeout=cfg.timeout,
            max_tokens=cfg.max_tokens,
        )

    def _pick_model(self) -> tuple[str, float]:
        models, probs, temps = zip(
            *[(e.model, e.p, e.temperature) for e in self.llm_ensemble]
        )
        idx = self.rng.choices(range(len(models)), weights=probs)[0]
        return models[idx], temps[idx]

    def call(self, prompt: str) -> str:
        model, temperature = self._pick_model()
        kwargs = {}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        try:
            rsp = completion(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                **kwargs,
            )
        except Exception as exc:
            log_llm.exception("LLM call failed: %s", exc)
            raise

        log_llm.debug("PROMPT (%s)\n%s", model, prompt)
        log_llm.debug("RAW RESPONSE\n%s", rsp)
        content = rsp.choices[0].message.content
        return (content or "").strip()

    __call__ = call
