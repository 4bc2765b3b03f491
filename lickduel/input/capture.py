"""Ordered capture buffer for the current recording session."""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable

from lickduel.engine.models import CapturedNote, PhraseNote


class CaptureSession:
    """Growing sequence of captured notes.

    Only the capture handler appends; only explicit session resets (the duel,
    or a manual "clear") empty it. Listeners are told about both so the
    recognizer can start a fresh session when, and only when, the sequence is
    cleared.
    """

    def __init__(self) -> None:
        self._notes: list[CapturedNote] = []
        self._append_listeners: list[Callable[[tuple[CapturedNote, ...]], None]] = []
        self._clear_listeners: list[Callable[[], None]] = []
        # Bar the duel says we are in; stamped onto new notes.
        self.bar_number: int | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def notes(self) -> tuple[CapturedNote, ...]:
        return tuple(self._notes)

    def __len__(self) -> int:
        return len(self._notes)

    def on_append(self, listener: Callable[[tuple[CapturedNote, ...]], None]) -> None:
        self._append_listeners.append(listener)

    def on_clear(self, listener: Callable[[], None]) -> None:
        self._clear_listeners.append(listener)

    def append(self, note: CapturedNote) -> CapturedNote:
        """Append *note*, stamping the current bar if it has none."""
        if note.bar_number is None and self.bar_number is not None:
            note = replace(note, bar_number=self.bar_number)
        self._notes.append(note)
        snapshot = tuple(self._notes)
        for listener in list(self._append_listeners):
            listener(snapshot)
        return note

    def clear(self) -> None:
        """End the session: drop all notes and notify listeners."""
        self._notes.clear()
        for listener in list(self._clear_listeners):
            listener()

    def load(self, notes: Iterable[PhraseNote]) -> None:
        """Start a new session pre-filled with a stored phrase, for editing."""
        self.clear()
        self._notes.extend(
            CapturedNote(
                sound_id=n.sound_id,
                label=n.label,
                timestamp=0.0,
                beat_number=n.beat_number,
                subdivision=n.subdivision,
            )
            for n in notes
        )

    def update_note(self, index: int, beat_number: int, subdivision: float) -> CapturedNote:
        """Move one note to a new position (the editor's nudge)."""
        if not 0.0 <= subdivision < 1.0:
            raise ValueError("subdivision must be in [0, 1)")
        if beat_number < 1:
            raise ValueError("beat_number must be >= 1")
        updated = replace(self._notes[index], beat_number=beat_number, subdivision=subdivision)
        self._notes[index] = updated
        return updated
