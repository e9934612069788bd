from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterator
from typing import Any

from promptfinder.core.models import ROOT_PARENT_ID, PromptVersion
from promptfinder.core.naming import name_of
from promptfinder.core.ports import VersionSink

log_store = logging.getLogger("store")


class VersionStore:
    """Append-only, lock-guarded list of prompt versions.

    Appends and in-place updates happen under one lock, and ``snapshot``
    copies under the same lock, so a reader never sees a half-written
    version. ``on_append`` is the persistence callback, invoked once per
    newly stored version.
    """

    def __init__(
        self,
        on_append: VersionSink | None = None,
    ) -> None:
        self._versions: list[PromptVersion] = []
        self._lock = threading.RLock()
        self.on_append = on_append

    def __len__(self) -> int:
        with self._lock:
            return len(self._versions)

    def __iter__(self) -> Iterator[PromptVersion]:
        return iter(self.snapshot())

    def add(self, version: PromptVersion) -> PromptVersion:
        if version.id == ROOT_PARENT_ID:
            raise ValueError(f"Version id {ROOT_PARENT_ID!r} is reserved.")
        with self._lock:
            if any(v.id == version.id for v in self._versions):
                raise ValueError(f"Duplicate version id {version.id!r}.")
            if version.is_root and any(v.is_root for v in self._versions):
                raise ValueError("Store already holds a root version.")
            if version.parent_id != ROOT_PARENT_ID and not any(
                v.id == version.parent_id for v in self._versions
            ):
                log_store.warning(
                    "Parent %s not found for version %s; re-pointing to root.",
                    version.parent_id,
                    version.id,
                )
                version.parent_id = ROOT_PARENT_ID
            name_of(version, self._versions)
            self._versions.append(version)
        if self.on_append:
            self.on_append(version)
        return version

    def update(self, version: PromptVersion, **changes: Any) -> PromptVersion:
        with self._lock:
            for key, value in changes.items():
                if key in ("id", "version_name", "parent_id"):
                    raise ValueError(f"Field {key!r} is immutable once stored.")
                setattr(version, key, value)
        return version

    def locked(self) -> threading.RLock:
        """Hold the store lock for a multi-field, multi-version update."""
        return self._lock

    def snapshot(self) -> list[PromptVersion]:
        with self._lock:
            return copy.deepcopy(self._versions)

    def versions(self) -> list[PromptVersion]:
        """Live references, in creation order (for the single writer)."""
        with self._lock:
            return list(self._versions)

    def reset(self) -> None:
        """Drop everything except the root version."""
        with self._lock:
            self._versions = [v for v in self._versions if v.is_root][:1]

    # ── tree helpers ───────────────────────────────────────────

    def by_id(self, version_id: str) -> PromptVersion | None:
        with self._lock:
            return next((v for v in self._versions if v.id == version_id), None)

    @property
    def root(self) -> PromptVersion | None:
        with self._lock:
            return next((v for v in self._versions if v.is_root), None)

    def parent_of(self, version: PromptVersion) -> PromptVersion | None:
        if version.parent_id == ROOT_PARENT_ID:
            return None
        return self.by_id(version.parent_id)

    def children_of(self, version: PromptVersion) -> list[PromptVersion]:
        with self._lock:
            return [v for v in self._versions if v.parent_id == version.id]

    def siblings_of(self, version: PromptVersion) -> list[PromptVersion]:
        with self._lock:
            return [v for v in self._versions if v.parent_id == version.parent_id]

    def generation_of(self, version: PromptVersion) -> int:
        """Depth below the root-level versions (root-level = 0)."""
        depth = 0
        seen = {version.id}
        current = version
        while current.parent_id != ROOT_PARENT_ID:
            parent = self.by_id(current.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            depth += 1
            current = parent
        return depth

    def best(self) -> PromptVersion | None:
        with self._lock:
            evaluated = [v for v in self._versions if v.is_evaluated]
        if not evaluated:
            return None
        return max(evaluated, key=lambda v: v.score)
