"""Trainer orchestrator - wires clock, capture, recognition and duel together.

One ``Trainer`` is one live practice session. It owns every stateful engine
component and connects them:

* key presses become tone-player triggers and, while the clock runs,
  captured notes stamped with their beat position and accuracy;
* every append runs the recognizer over the phrase library;
* clearing the capture session starts a new recognition session;
* the duel drives the clock and the opponent's phrase playback.

The phrase store is an external collaborator. Its failures propagate to the
caller unmodified.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any

from lickduel.config import Settings, clamp_bpm, settings as default_settings
from lickduel.engine.clock import Clock
from lickduel.engine.duel import Duel
from lickduel.engine.models import CapturedNote, PhraseTemplate, RecognitionResult
from lickduel.engine.playback import PhrasePlayer, TonePlayer
from lickduel.engine.quantize import quantize
from lickduel.engine.recognizer import PhraseRecognizer
from lickduel.engine.scheduler import Scheduler
from lickduel.input.capture import CaptureSession
from lickduel.input.keymap import CLICK, CLICK_ACCENT, KeyMapper, label_for
from lickduel.library.store import (
    EmptyCapture,
    PhraseLimitReached,
    PhraseNotFound,
    PhraseStore,
    count_mode,
    validate_name,
)

logger = logging.getLogger(__name__)


class Trainer:
    """A live session: one clock, one capture buffer, one duel."""

    def __init__(
        self,
        scheduler: Scheduler,
        tone_player: TonePlayer,
        store: PhraseStore,
        config: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or default_settings
        self.scheduler = scheduler
        self.tone_player = tone_player
        self.store = store

        self.clock = Clock(
            scheduler,
            bpm=clamp_bpm(self.config.default_bpm, self.config),
            beats_per_bar=self.config.beats_per_bar,
        )
        self.capture = CaptureSession()
        self.keys = KeyMapper()
        self.recognizer = PhraseRecognizer(
            tolerance_ms=self.config.timing_tolerance_ms,
            default_difficulty=self.config.default_difficulty,
        )
        self.player = PhrasePlayer(
            scheduler,
            tone_player,
            beat_period_ms=lambda: self.clock.beat_period_ms,
            tail_ms=self.config.playback_tail_ms,
        )
        self.duel = Duel(
            scheduler,
            self.clock,
            self.capture,
            self.recognizer,
            self.player,
            library=self.store.list,
            total_bars=self.config.total_bars,
            timing_filter=self.config.duel_timing_filter,
            rng=rng,
        )
        self.editing_id: str | None = None

        self.capture.on_clear(self.recognizer.reset_session)
        if self.config.metronome_click:
            self.clock.on_tick(
                lambda tick: self.tone_player.play(CLICK_ACCENT if tick.is_downbeat else CLICK)
            )

    # ------------------------------------------------------------------
    # Playing
    # ------------------------------------------------------------------

    def key_down(self, key: str) -> CapturedNote | None:
        sound_id = self.keys.key_down(key)
        if sound_id is None:
            return None
        return self.press(sound_id)

    def key_up(self, key: str) -> None:
        self.keys.key_up(key)

    def press(self, sound_id: str, timestamp: float | None = None) -> CapturedNote | None:
        """Sound a pad; capture it when the clock is running.

        Returns the captured note, or ``None`` when nothing was recorded.
        """
        self.tone_player.play(sound_id)
        if not self.clock.is_running:
            return None

        ts = self.scheduler.now() if timestamp is None else timestamp
        position = self.clock.position_at(ts)
        accuracy = self.clock.accuracy_at(ts)
        note = self.capture.append(CapturedNote(
            sound_id=sound_id,
            label=label_for(sound_id),
            timestamp=ts,
            beat_number=position.beat_number,
            subdivision=position.subdivision,
            offset_ms=accuracy.offset_ms,
            accuracy_tier=accuracy.tier,
        ))
        logger.debug(
            f"Captured {note.label} at beat {note.beat_number}+{note.subdivision:.2f} "
            f"({note.accuracy_tier}, {note.offset_ms:.0f}ms)"
        )
        self.recognize()
        return note

    def recognize(self) -> RecognitionResult | None:
        return self.recognizer.on_notes_appended(
            self.capture.notes,
            self.store.list(),
            self.clock.beat_period_ms,
        )

    def set_bpm(self, bpm: float) -> int:
        clamped = clamp_bpm(bpm, self.config)
        self.clock.set_bpm(clamped)
        return clamped

    def set_tolerance(self, tolerance_ms: float) -> None:
        self.recognizer.tolerance_ms = tolerance_ms

    def clear_capture(self) -> None:
        self.capture.clear()
        self.editing_id = None

    # ------------------------------------------------------------------
    # Phrase library
    # ------------------------------------------------------------------

    def save_capture(
        self,
        name: str,
        timing_mode: str = "straight",
        difficulty: int | None = None,
    ) -> PhraseTemplate:
        """Quantize the capture into a phrase and store it.

        When a phrase is being edited it is replaced in place instead.
        Raises a ``PhraseRejected`` subclass for user-input problems and
        leaves the capture untouched in that case.
        """
        notes = self.capture.notes
        if not notes:
            raise EmptyCapture()
        name = validate_name(name)
        quantized = tuple(quantize(notes, timing_mode))
        bpm = int(round(self.clock.bpm))

        if self.editing_id is not None:
            fields: dict[str, Any] = {
                "name": name, "notes": quantized, "bpm": bpm, "timing_mode": timing_mode,
            }
            if difficulty is not None:
                fields["difficulty"] = difficulty
            self.store.update(self.editing_id, fields)
            saved = self._find(self.editing_id)
        else:
            limit = self.config.max_phrases_per_mode
            if count_mode(self.store.list(), timing_mode) >= limit:
                raise PhraseLimitReached(timing_mode, limit)
            saved = self.store.save(PhraseTemplate(
                id="",
                name=name,
                notes=quantized,
                bpm=bpm,
                timing_mode=timing_mode,
                difficulty=difficulty,
                created_at=time.time(),
            ))

        self.clear_capture()
        return saved

    def edit_phrase(self, phrase_id: str) -> PhraseTemplate:
        """Load a stored phrase into the capture buffer for editing."""
        phrase = self._find(phrase_id)
        self.capture.load(phrase.notes)
        self.editing_id = phrase.id
        logger.info(f"Editing phrase {phrase.name!r}")
        return phrase

    def delete_phrase(self, phrase_id: str) -> None:
        self.store.delete(phrase_id)
        if self.editing_id == phrase_id:
            self.clear_capture()

    def set_difficulty(self, phrase_id: str, difficulty: int | None) -> None:
        # 0 / None clears the difficulty back to the default weighting.
        self.store.update(phrase_id, {"difficulty": difficulty or None})

    def play_phrase(self, phrase_id: str) -> float:
        return self.player.play(self._find(phrase_id))

    def _find(self, phrase_id: str) -> PhraseTemplate:
        for phrase in self.store.list():
            if phrase.id == phrase_id:
                return phrase
        raise PhraseNotFound(phrase_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Cancel everything this session has scheduled."""
        self.duel.stop_game()
        self.player.stop()
        self.clock.stop()
        self.keys.release_all()
