from __future__ import annotations

import re

WEIGHTS = {
    "length": 0.15,
    "overlap": 0.30,
    "structure": 0.25,
    "key_phrases": 0.30,
}

_PUNCT_STRIP_RE = re.compile(r"[A-Za-z0-9\s]")
_WS_RE = re.compile(r"\s+")
_UPPER_RE = re.compile(r"[A-Z]")
_DIGIT_RE = re.compile(r"\d")


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text.strip())


def normalize_text(text: str) -> str:
    return collapse_whitespace(text).lower()


def length_score(result: str, target: str) -> float:
    if not target:
        return 0.0
    return max(0.0, 100.0 - abs(len(result) - len(target)) / len(target) * 100.0)


def overlap_score(result: str, target: str) -> float:
    result_words = set(result.split(" "))
    target_words = set(target.split(" "))
    union = result_words | target_words
    if not union:
        return 0.0
    return len(result_words & target_words) / len(union) * 100.0


def punctuation_pattern(text: str) -> str:
    return _PUNCT_STRIP_RE.sub("", text)


def structure_score(result: str, target: str) -> float:
    result_pattern = punctuation_pattern(result)
    target_pattern = punctuation_pattern(target)
    if result_pattern == target_pattern:
        return 100.0
    if len(result_pattern) == len(target_pattern):
        return 70.0
    return max(0.0, 50.0 - abs(len(result_pattern) - len(target_pattern)) * 5.0)


def key_phrases(text: str) -> list[str]:
    """Capitalized, numeric or long (> 4 chars) tokens, lowercased."""
    return [
        word.lower()
        for word in collapse_whitespace(text).split(" ")
        if word
        and (len(word) > 4 or _UPPER_RE.search(word) or _DIGIT_RE.search(word))
    ]


def key_phrase_score(result: str, target: str) -> float:
    target_phrases = key_phrases(target)
    if not target_phrases:
        return 100.0
    result_phrases = key_phrases(result)
    result_tokens = set(normalize_text(result).split(" "))
    matches = [
        phrase
        for phrase in target_phrases
        if phrase in result_tokens
        or any(phrase in other or other in phrase for other in result_phrases)
    ]
    return len(matches) / len(target_phrases) * 100.0


def component_scores(result: str, target: str) -> dict[str, float]:
    norm_result = normalize_text(result)
    norm_target = normalize_text(target)
    return {
        "length": length_score(norm_result, norm_target),
        "overlap": overlap_score(norm_result, norm_target),
        "structure": structure_score(result, target),
        "key_phrases": key_phrase_score(result, target),
    }


def heuristic_score(result: str, target: str) -> int:
    """Text-similarity score in [0, 100] used when the evaluator reply is unusable."""
    if not normalize_text(result or "") or not normalize_text(target or ""):
        return 0
    scores = component_scores(result, target)
    total = sum(scores[name] * weight for name, weight in WEIGHTS.items())
    return int(round(max(0.0, min(100.0, total))))
