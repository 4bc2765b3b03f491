"""Time-scheduled playback of stored phrases through the tone player."""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from lickduel.engine.models import PhraseTemplate
from lickduel.engine.scheduler import Handle, Scheduler

logger = logging.getLogger(__name__)


class TonePlayer(Protocol):
    """Fire-and-forget sound trigger provided by the presentation layer."""

    def play(self, sound_id: str) -> None: ...


class PhrasePlayer:
    """Plays a phrase by scheduling one tone trigger per note.

    Parameters
    ----------
    scheduler:
        Shared scheduler; note triggers are cancellable handles.
    tone_player:
        Receives ``play(sound_id)`` for every note as it falls due.
    beat_period_ms:
        Callable returning the current beat period, so playback follows the
        live tempo rather than the tempo the phrase was recorded at.
    tail_ms:
        Padding added after the last note when reporting the duration.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        tone_player: TonePlayer,
        beat_period_ms: Callable[[], float],
        tail_ms: float = 200.0,
    ) -> None:
        self._scheduler = scheduler
        self._tone_player = tone_player
        self._beat_period_ms = beat_period_ms
        self._tail_ms = tail_ms
        self._handles: list[Handle] = []
        self._listeners: list[Callable[[str], None]] = []

    def on_note_played(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def play(self, template: PhraseTemplate) -> float:
        """Schedule every note of *template*; return the duration in ms."""
        self.stop()
        period = self._beat_period_ms()
        max_time = 0.0
        for note in template.notes:
            offset = (note.beat_number - 1 + note.subdivision) * period
            max_time = max(max_time, offset)
            self._handles.append(
                self._scheduler.call_later(offset, lambda sid=note.sound_id: self._trigger(sid))
            )
        logger.info(f"Playing phrase {template.name!r} ({len(template.notes)} notes)")
        return max_time + self._tail_ms

    def stop(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

    def _trigger(self, sound_id: str) -> None:
        self._tone_player.play(sound_id)
        for listener in list(self._listeners):
            listener(sound_id)
