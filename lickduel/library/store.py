"""Phrase library storage.

``PhraseStore`` is the collaborator contract the engine talks to. The
in-memory implementation here is what the server uses; anything durable
(database, browser storage) implements the same four methods and performs
its own migrations before the engine is constructed.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Protocol, Sequence

from lickduel.engine.models import TIMING_MODES, PhraseTemplate

logger = logging.getLogger(__name__)

MAX_PHRASES_PER_MODE = 5

_UPDATABLE_FIELDS = {"name", "notes", "bpm", "timing_mode", "difficulty"}


class PhraseStoreError(Exception):
    """Base class for phrase library errors."""


class PhraseRejected(PhraseStoreError):
    """A user-input problem; the library is left unchanged."""


class EmptyCapture(PhraseRejected):
    def __init__(self) -> None:
        super().__init__("No notes recorded")


class InvalidPhraseName(PhraseRejected):
    def __init__(self) -> None:
        super().__init__("Phrase name must not be blank")


class DuplicatePhraseName(PhraseRejected):
    def __init__(self, name: str) -> None:
        super().__init__(f"A phrase named {name!r} already exists")


class PhraseLimitReached(PhraseRejected):
    def __init__(self, timing_mode: str, limit: int) -> None:
        super().__init__(f"Maximum {limit} {timing_mode} phrases reached")
        self.timing_mode = timing_mode
        self.limit = limit


class PhraseNotFound(PhraseStoreError):
    def __init__(self, phrase_id: str) -> None:
        super().__init__(f"No phrase with id {phrase_id!r}")
        self.phrase_id = phrase_id


class PhraseStore(Protocol):
    def list(self) -> list[PhraseTemplate]: ...

    def save(self, template: PhraseTemplate) -> PhraseTemplate: ...

    def update(self, phrase_id: str, fields: dict[str, Any]) -> None: ...

    def delete(self, phrase_id: str) -> None: ...


def validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise InvalidPhraseName()
    return name


def count_mode(phrases: Sequence[PhraseTemplate], timing_mode: str) -> int:
    return sum(1 for p in phrases if p.timing_mode == timing_mode)


class InMemoryPhraseStore:
    """Process-local phrase library, kept in insertion order."""

    def __init__(self, max_per_mode: int = MAX_PHRASES_PER_MODE) -> None:
        self.max_per_mode = max_per_mode
        self._phrases: dict[str, PhraseTemplate] = {}

    def list(self) -> list[PhraseTemplate]:
        return list(self._phrases.values())

    def clear(self) -> None:
        self._phrases.clear()

    def get(self, phrase_id: str) -> PhraseTemplate:
        try:
            return self._phrases[phrase_id]
        except KeyError:
            raise PhraseNotFound(phrase_id) from None

    def save(self, template: PhraseTemplate) -> PhraseTemplate:
        """Store a new phrase and return it with a fresh id."""
        name = validate_name(template.name)
        self._check(template, name, exclude_id=None)
        if count_mode(self.list(), template.timing_mode) >= self.max_per_mode:
            raise PhraseLimitReached(template.timing_mode, self.max_per_mode)

        saved = replace(
            template,
            id=uuid.uuid4().hex,
            name=name,
            notes=tuple(template.notes),
            created_at=template.created_at or time.time(),
        )
        self._phrases[saved.id] = saved
        logger.info(f"Saved phrase {saved.name!r} ({saved.timing_mode}, {len(saved.notes)} notes)")
        return saved

    def update(self, phrase_id: str, fields: dict[str, Any]) -> None:
        """Replace the given fields of an existing phrase."""
        current = self.get(phrase_id)
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        changes = dict(fields)
        if "name" in changes:
            changes["name"] = validate_name(changes["name"])
        if "notes" in changes:
            changes["notes"] = tuple(changes["notes"])
        updated = replace(current, **changes)
        self._check(updated, updated.name, exclude_id=phrase_id)
        if updated.timing_mode != current.timing_mode:
            others = [p for p in self.list() if p.id != phrase_id]
            if count_mode(others, updated.timing_mode) >= self.max_per_mode:
                raise PhraseLimitReached(updated.timing_mode, self.max_per_mode)
        self._phrases[phrase_id] = updated
        logger.info(f"Updated phrase {updated.name!r}")

    def delete(self, phrase_id: str) -> None:
        phrase = self._phrases.pop(phrase_id, None)
        if phrase is None:
            raise PhraseNotFound(phrase_id)
        logger.info(f"Deleted phrase {phrase.name!r}")

    def _check(self, template: PhraseTemplate, name: str, exclude_id: str | None) -> None:
        if template.timing_mode not in TIMING_MODES:
            raise ValueError(f"Unknown timing mode: {template.timing_mode!r}")
        if not template.notes:
            raise EmptyCapture()
        if template.difficulty is not None and not 1 <= template.difficulty <= 100:
            raise ValueError("difficulty must be between 1 and 100")
        for other in self._phrases.values():
            if other.id != exclude_id and other.name.lower() == name.lower():
                raise DuplicatePhraseName(name)
