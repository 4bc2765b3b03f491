"""Incremental phrase recognition over the capture stream.

Whenever the capture sequence grows, the tail of the sequence is compared
against every stored phrase that has not been recognized yet in the current
session. A phrase matches only when every note has the right sound and lands
within ``tolerance_ms`` of its expected position; a single out-of-tolerance
note rejects the whole phrase. The first matching phrase (in library order)
is scored and reported, and no further phrases are examined for that append.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

import numpy as np

from lickduel.engine.models import CapturedNote, PhraseTemplate, RecognitionResult, TimingFeedback

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_MS = 150.0
DEFAULT_DIFFICULTY = 50

# First-note offsets beyond this many ms count as rushing / dragging.
_FEEL_THRESHOLD_MS = 10.0


def _positions_ms(notes, beat_period_ms: float) -> np.ndarray:
    return np.array(
        [(n.beat_number - 1 + n.subdivision) * beat_period_ms for n in notes],
        dtype=np.float64,
    )


def match_phrase(
    window: Sequence[CapturedNote],
    template: PhraseTemplate,
    beat_period_ms: float,
    tolerance_ms: float,
) -> tuple[float, np.ndarray] | None:
    """Compare *window* note-for-note against *template*.

    Returns ``(accuracy_percent, signed_offsets_ms)`` on a match, ``None``
    otherwise. Sound ids are checked before any timing.
    """
    if len(window) != len(template.notes) or not template.notes:
        return None
    for played, expected in zip(window, template.notes):
        if played.sound_id != expected.sound_id:
            return None

    offsets = _positions_ms(window, beat_period_ms) - _positions_ms(template.notes, beat_period_ms)
    diffs = np.abs(offsets)
    if np.any(diffs > tolerance_ms):
        return None

    scores = np.maximum(0.0, 100.0 * (1.0 - diffs / tolerance_ms))
    return float(np.mean(scores)), offsets


class PhraseRecognizer:
    """Detects phrases at the tail of a growing capture sequence.

    Owns the per-session set of recognized phrase ids and a high-water mark
    into the capture sequence, so each suffix is evaluated at most once and a
    phrase is reported at most once per session.
    """

    def __init__(
        self,
        tolerance_ms: float = DEFAULT_TOLERANCE_MS,
        default_difficulty: int = DEFAULT_DIFFICULTY,
    ) -> None:
        self._tolerance_ms = DEFAULT_TOLERANCE_MS
        self.tolerance_ms = tolerance_ms
        self.default_difficulty = default_difficulty
        self._recognized: set[str] = set()
        self._high_water = 0
        self._total_score = 0
        self._listeners: list[Callable[[RecognitionResult], None]] = []

    @property
    def tolerance_ms(self) -> float:
        return self._tolerance_ms

    @tolerance_ms.setter
    def tolerance_ms(self, value: float) -> None:
        if value <= 0:
            raise ValueError("tolerance_ms must be positive")
        self._tolerance_ms = float(value)

    @property
    def total_score(self) -> int:
        return self._total_score

    @property
    def recognized_ids(self) -> frozenset[str]:
        return frozenset(self._recognized)

    def on_recognized(self, listener: Callable[[RecognitionResult], None]) -> None:
        self._listeners.append(listener)

    def reset_session(self) -> None:
        """Forget recognized phrases and the high-water mark (new capture session)."""
        self._recognized.clear()
        self._high_water = 0

    def reset_score(self) -> None:
        self._total_score = 0
        self.reset_session()

    def points_for(self, template: PhraseTemplate, accuracy_percent: float) -> int:
        difficulty = template.difficulty or self.default_difficulty
        return int(round(difficulty * accuracy_percent / 100.0))

    def on_notes_appended(
        self,
        notes: Sequence[CapturedNote],
        templates: Sequence[PhraseTemplate],
        beat_period_ms: float,
    ) -> RecognitionResult | None:
        """Scan the tail of *notes* for a phrase; report at most one match."""
        if len(notes) <= self._high_water:
            return None
        self._high_water = len(notes)

        for template in templates:
            if template.id in self._recognized or not template.notes:
                continue
            size = len(template.notes)
            if len(notes) < size:
                continue

            matched = match_phrase(notes[-size:], template, beat_period_ms, self._tolerance_ms)
            if matched is None:
                logger.debug(f"Phrase {template.name!r} rejected at {len(notes)} notes")
                continue

            accuracy, offsets = matched
            first = float(offsets[0])
            result = RecognitionResult(
                template=template,
                accuracy_percent=accuracy,
                points=self.points_for(template, accuracy),
                timing_feedback=TimingFeedback(
                    first_note_offset_ms=first,
                    is_rushing=first < -_FEEL_THRESHOLD_MS,
                    is_dragging=first > _FEEL_THRESHOLD_MS,
                ),
            )
            self._recognized.add(template.id)
            self._total_score += result.points
            logger.info(
                f"Recognized {template.name!r}: {accuracy:.1f}% accuracy, "
                f"+{result.points} points (total {self._total_score})"
            )
            for listener in list(self._listeners):
                listener(result)
            return result

        return None
