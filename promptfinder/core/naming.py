"""Deterministic hierarchical version names (``V1``, ``V1.2``, ``V1.2.3``).

Names depend only on tree position and creation order. Once a name is
stored on a version it is never recomputed, so siblings created later never
renumber earlier ones.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from promptfinder.core.models import ROOT_PARENT_ID, PromptVersion

log_naming = logging.getLogger("naming")


def fallback_name(version: PromptVersion) -> str:
    return f"v{version.id[:4]}"


def sibling_index(version: PromptVersion, versions: Sequence[PromptVersion]) -> int:
    """1-based creation-order index among versions sharing ``parent_id``."""
    siblings = [v for v in versions if v.parent_id == version.parent_id]
    for idx, sibling in enumerate(siblings, start=1):
        if sibling.id == version.id:
            return idx
    return len(siblings) + 1


def name_of(version: PromptVersion, versions: Sequence[PromptVersion]) -> str:
    if version.version_name:
        return version.version_name

    by_id = {v.id: v for v in versions}

    # Walk up to the nearest named or root-level ancestor.
    chain = [version]
    seen = {version.id}
    broken: PromptVersion | None = None
    current = version
    while current.parent_id != ROOT_PARENT_ID:
        parent = by_id.get(current.parent_id)
        if parent is None or parent.id in seen:
            log_naming.warning(
                "Broken parent chain at version %s (parent %s); using fallback name.",
                current.id,
                current.parent_id,
            )
            broken = current
            break
        if parent.version_name:
            break
        chain.append(parent)
        seen.add(parent.id)
        current = parent

    for node in reversed(chain):
        if node is broken:
            node.version_name = fallback_name(node)
        elif node.parent_id == ROOT_PARENT_ID:
            node.version_name = f"V{sibling_index(node, versions)}"
        else:
            parent_name = by_id[node.parent_id].version_name
            node.version_name = f"{parent_name}.{sibling_index(node, versions)}"
    return version.version_name
