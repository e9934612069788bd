from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from promptfinder.core.templates import format_placeholders

_EVALUATION_TEMPLATE = """You are an expert evaluator. Compare the following result against the target result and provide a score from 0-100.
Focus on semantic similarity and conceptual alignment rather than exact matches.

Evaluation criteria:
1. Core concept alignment: How well the main ideas and concepts match
2. Contextual accuracy: Appropriate context and domain-specific details
3. Completeness: How well the result covers the expected details

Give constructive feedback on how to improve the result without losing generalizability.

Target result:
{objective}

Actual result:
{result}

Respond with a valid JSON object in this exact format:
{{
  "score": number,
  "analysis": "overall comparison",
  "conceptAlignment": "how well the core concepts match",
  "contextualAccuracy": "how accurate the context and details are",
  "completeness": "what is covered and what is missing",
  "improvementSuggestions": "how the template could be improved",
  "strengths": ["..."],
  "weaknesses": ["..."]
}}"""

_VARIATION_TEMPLATE = """You are a prompt optimization assistant. Your task is to generate {count} variations of the following prompt template.
Each variation should be a revision that aims to achieve the same objective but with potential improvements.

IMPORTANT: You MUST preserve these variables in your variations: {placeholders}
Each variation MUST include all the variables from the original template.

The template should not include any direct information from the variables and expected result so that the template can be used in a wide range of contexts.

Current Template:
{template}

Variables:
{variables}

Expected Result:
{objective}

Current Result:
{result}

Generate exactly {count} variations.

First, write your analysis on the inherent connection between the given Variables and the Expected Result in <Analysis> tag.

Then create your variations based on the analysis and the original template.

Respond with the variations in this JSON format wrapped in <Variations> tag:
<Variations>
```json
{{
  "variations": [
    {{
      "prompt": "The complete revised prompt template",
      "explanation": "Very brief explanation of the changes and expected improvements"
    }}
  ]
}}
```
</Variations>
"""


def build_evaluation_prompt(*, result: str, objective: str) -> str:
    return _EVALUATION_TEMPLATE.format(objective=objective, result=result)


def build_variation_prompt(
    *,
    template: str,
    current_result: str,
    count: int,
    variables: Mapping[str, Any],
    objective: str,
) -> str:
    return _VARIATION_TEMPLATE.format(
        count=count,
        placeholders=format_placeholders(variables) or "(none)",
        template=template,
        variables=json.dumps(dict(variables), ensure_ascii=False, default=str),
        objective=objective,
        result=current_result or "(not available)",
    )
