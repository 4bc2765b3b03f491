"""Snap captured notes onto the timing mode's subdivision grid."""

from typing import Iterable

import numpy as np

from lickduel.engine.models import STRAIGHT, SWING, CapturedNote, PhraseNote

# Straight: sixteenth notes. Swing: triplets.
GRIDS: dict[str, np.ndarray] = {
    STRAIGHT: np.array([0.0, 0.25, 0.5, 0.75]),
    SWING: np.array([0.0, 1.0 / 3.0, 2.0 / 3.0]),
}


def grid_for(timing_mode: str) -> np.ndarray:
    try:
        return GRIDS[timing_mode]
    except KeyError:
        raise ValueError(f"Unknown timing mode: {timing_mode!r}") from None


def quantize(notes: Iterable[CapturedNote | PhraseNote], timing_mode: str = STRAIGHT) -> list[PhraseNote]:
    """Quantize a captured performance into phrase notes.

    Each subdivision snaps to the nearest grid value; ties resolve to the
    lowest one (``argmin`` returns the first). Order, count, sound ids,
    labels and beat numbers pass through unchanged.
    Already quantized ``PhraseNote`` input is accepted, which makes the
    function idempotent.
    """
    grid = grid_for(timing_mode)
    notes = list(notes)
    if not notes:
        return []

    subdivisions = np.array([n.subdivision for n in notes], dtype=np.float64)
    nearest = np.argmin(np.abs(subdivisions[:, None] - grid[None, :]), axis=1)

    return [
        PhraseNote(
            sound_id=note.sound_id,
            label=note.label,
            beat_number=note.beat_number,
            subdivision=float(grid[idx]),
        )
        for note, idx in zip(notes, nearest)
    ]
