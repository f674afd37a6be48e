"""Owned plan state with copy-on-write updates and JSON file persistence."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from festflow.tasks.models import PlanState

logger = logging.getLogger("festflow.tasks.store")

Listener = Callable[[PlanState], None]


class PlanStore:
    """Holds the single authoritative ``PlanState``.

    ``update`` is the only way to change it: the mutator receives the
    current snapshot and returns a new one, which replaces the old one
    wholesale. When a path is given every change is written to disk with
    an atomic write (write to .tmp, then replace). Disk problems are
    logged, never raised; in-memory state stays authoritative.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._state = PlanState()
        self._listeners: list[Listener] = []
        self.load()

    @property
    def state(self) -> PlanState:
        return self._state

    @property
    def path(self) -> Path | None:
        return self._path

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # -- Mutation ----------------------------------------------------------------

    def update(self, mutator: Callable[[PlanState], PlanState]) -> PlanState:
        """Replace the state with ``mutator(current)`` and persist it."""
        new_state = mutator(self._state)
        if new_state is self._state:
            return new_state
        self._state = new_state.model_copy(update={"revision": self._state.revision + 1})
        self.save()
        for listener in self._listeners:
            listener(self._state)
        return self._state

    def reset(self) -> PlanState:
        """Full-plan reset: the only way tasks are deleted."""
        self._state = PlanState(revision=self._state.revision + 1)
        self.save()
        for listener in self._listeners:
            listener(self._state)
        return self._state

    # -- Persistence -------------------------------------------------------------

    def load(self) -> None:
        """Load state from disk. Silently starts empty if the file is missing."""
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._state = PlanState.model_validate(raw)
            logger.debug(
                "Loaded plan with %d tasks from %s", len(self._state.tasks), self._path
            )
        except (json.JSONDecodeError, OSError, ValidationError) as exc:
            logger.warning("Failed to load plan state: %s", exc)

    def save(self) -> None:
        """Persist the state to disk atomically."""
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(".tmp")
            data = self._state.model_dump(mode="json")
            tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            logger.warning("Failed to save plan state to %s: %s", self._path, exc)
