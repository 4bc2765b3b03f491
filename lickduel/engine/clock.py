"""Metronome clock: steady pulse plus beat-relative timing arithmetic."""

from __future__ import annotations

import logging
import math
from typing import Callable

import numpy as np

from lickduel.engine.models import BeatPosition, BeatTick, TimingAccuracy
from lickduel.engine.scheduler import Handle, Scheduler

logger = logging.getLogger(__name__)

# Sixteenth-note grid used for accuracy feedback. 1.0 is the next beat.
_ACCURACY_GRID = np.array([0.0, 0.25, 0.5, 0.75, 1.0])

# Tier thresholds in ms (strictly less than).
_PERFECT_MS = 30.0
_GOOD_MS = 50.0
_OK_MS = 100.0


def classify_offset(offset_ms: float) -> str:
    """Map an absolute grid offset to an accuracy tier."""
    if offset_ms < _PERFECT_MS:
        return "perfect"
    if offset_ms < _GOOD_MS:
        return "good"
    if offset_ms < _OK_MS:
        return "ok"
    return "poor"


class Clock:
    """Periodic beat pulse at a configurable tempo.

    Parameters
    ----------
    scheduler:
        Shared time source; tick timestamps come from ``scheduler.now()``.
    bpm:
        Tempo. Callers clamp it to the supported range beforehand.
    beats_per_bar:
        Size of the bar; beat-in-bar cycles through ``1..beats_per_bar``.
    """

    def __init__(self, scheduler: Scheduler, bpm: float = 120, beats_per_bar: int = 4) -> None:
        if bpm <= 0:
            raise ValueError("bpm must be positive")
        if beats_per_bar <= 0:
            raise ValueError("beats_per_bar must be positive")
        self._scheduler = scheduler
        self._bpm = float(bpm)
        self._beats_per_bar = beats_per_bar
        self._running = False
        self._beat_in_bar = 1
        self._last_tick_time: float | None = None
        self._next_due = 0.0
        self._handle: Handle | None = None
        self._listeners: list[Callable[[BeatTick], None]] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def bpm(self) -> float:
        return self._bpm

    @property
    def beats_per_bar(self) -> int:
        return self._beats_per_bar

    @property
    def beat_period_ms(self) -> float:
        return 60000.0 / self._bpm

    @property
    def bar_duration_ms(self) -> float:
        return self.beat_period_ms * self._beats_per_bar

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_beat(self) -> int:
        return self._beat_in_bar

    @property
    def last_tick_time(self) -> float | None:
        return self._last_tick_time

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_tick(self, listener: Callable[[BeatTick], None]) -> None:
        self._listeners.append(listener)

    def _emit(self, tick: BeatTick) -> None:
        for listener in list(self._listeners):
            listener(tick)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the pulse, emitting beat 1 immediately.

        Starting an already running clock restarts it from beat 1.
        """
        self._cancel()
        self._running = True
        self._beat_in_bar = 1
        now = self._scheduler.now()
        self._last_tick_time = now
        self._next_due = now
        logger.info(f"Clock started at {self._bpm:.0f} BPM ({self._beats_per_bar}/4)")
        self._emit(BeatTick(beat_number=1, timestamp=now))
        self._arm()

    def stop(self) -> None:
        """Stop the pulse. Safe to call when already stopped."""
        self._cancel()
        self._beat_in_bar = 1
        if self._running:
            logger.info("Clock stopped")
        self._running = False

    def toggle(self) -> None:
        if self._running:
            self.stop()
        else:
            self.start()

    def set_bpm(self, bpm: float) -> None:
        """Change tempo; a running clock re-arms its next tick at the new period."""
        if bpm <= 0:
            raise ValueError("bpm must be positive")
        self._bpm = float(bpm)
        if self._running and self._last_tick_time is not None:
            self._cancel()
            self._next_due = self._last_tick_time
            self._arm()

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        # Re-arm against the ideal due time so callback latency does not accumulate.
        self._next_due += self.beat_period_ms
        delay = self._next_due - self._scheduler.now()
        self._handle = self._scheduler.call_later(delay, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if not self._running:
            return
        now = self._scheduler.now()
        self._last_tick_time = now
        self._beat_in_bar = 1 if self._beat_in_bar >= self._beats_per_bar else self._beat_in_bar + 1
        self._emit(BeatTick(beat_number=self._beat_in_bar, timestamp=now))
        if self._running and self._handle is None:
            self._arm()

    # ------------------------------------------------------------------
    # Timing arithmetic
    # ------------------------------------------------------------------

    def position_at(self, timestamp: float) -> BeatPosition:
        """Return the beat and sub-beat fraction *timestamp* falls on.

        Timestamps earlier than the last tick resolve to the previous beat,
        and timestamps slightly past the next (not yet fired) tick resolve to
        the following beat, so scheduling jitter never produces out-of-range
        values.
        """
        if self._last_tick_time is None:
            return BeatPosition(beat_number=1, subdivision=0.0, timestamp=timestamp)

        beats_elapsed = (timestamp - self._last_tick_time) / self.beat_period_ms
        total = (self._beat_in_bar - 1 + beats_elapsed) % self._beats_per_bar
        beat_number = int(math.floor(total)) % self._beats_per_bar + 1
        subdivision = beats_elapsed % 1.0
        if subdivision >= 1.0:  # float wrap of tiny negatives
            subdivision = 0.0
        return BeatPosition(beat_number=beat_number, subdivision=subdivision, timestamp=timestamp)

    def accuracy_at(self, timestamp: float) -> TimingAccuracy:
        """Classify *timestamp* by its distance to the nearest sixteenth note."""
        position = self.position_at(timestamp)
        distances = np.abs(_ACCURACY_GRID - position.subdivision)
        idx = int(np.argmin(distances))
        offset_ms = float(distances[idx]) * self.beat_period_ms
        return TimingAccuracy(
            offset_ms=offset_ms,
            nearest_subdivision=float(_ACCURACY_GRID[idx]),
            tier=classify_offset(offset_ms),
        )
