"""Turn-based duel between an automated opponent and the player.

Timeline for ``total_bars = 8`` (``B`` = one bar)::

    0 ─ count-in ─ B ─ opp 1 ─ 2B ─ player 2 ─ 3B ─ ... ─ 8B ─ player 8 ─ 9B finished

Odd bars belong to the opponent, who plays a random phrase from the library.
Even bars belong to the player; the points the recognizer awards during that
bar are the player's score for the turn.

Every transition is a deferred callback. Exactly one is pending at any time
and it is cancelled before another is stored, so a stopped or restarted game
can never be advanced by a callback scheduled for a previous one.
"""

from __future__ import annotations

import logging
import random
from dataclasses import replace
from typing import Callable, Sequence

from lickduel.engine.clock import Clock
from lickduel.engine.models import (
    DuelCondition,
    DuelPhase,
    DuelState,
    PhraseTemplate,
)
from lickduel.engine.playback import PhrasePlayer
from lickduel.engine.recognizer import PhraseRecognizer
from lickduel.engine.scheduler import Handle, Scheduler
from lickduel.input.capture import CaptureSession

logger = logging.getLogger(__name__)

TIMING_FILTERS = ("straight", "swing", "both")


class Duel:
    """Owns the duel state and sequences its turns.

    Parameters
    ----------
    library:
        Callable returning the current phrase library; read at game start and
        at every opponent turn so edits between turns are picked up.
    timing_filter:
        ``"straight"``, ``"swing"`` or ``"both"``: which phrases the opponent
        may draw from.
    rng:
        Random source for the opponent's choice; injectable for tests.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        clock: Clock,
        capture: CaptureSession,
        recognizer: PhraseRecognizer,
        player: PhrasePlayer,
        library: Callable[[], Sequence[PhraseTemplate]],
        total_bars: int = 8,
        timing_filter: str = "both",
        rng: random.Random | None = None,
    ) -> None:
        if total_bars < 2 or total_bars % 2:
            raise ValueError("total_bars must be a positive even number")
        if timing_filter not in TIMING_FILTERS:
            raise ValueError(f"timing_filter must be one of {TIMING_FILTERS}")
        self._scheduler = scheduler
        self._clock = clock
        self._capture = capture
        self._recognizer = recognizer
        self._player = player
        self._library = library
        self.total_bars = total_bars
        self.timing_filter = timing_filter
        self._rng = rng or random.Random()

        self._state = DuelState()
        self._pending: Handle | None = None
        self._next_transition_due = 0.0
        self._phase_listeners: list[Callable[[DuelPhase, int], None]] = []
        self._scored_listeners: list[Callable[[int], None]] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def phase(self) -> DuelPhase:
        return self._state.phase

    @property
    def bar_index(self) -> int:
        return self._state.bar_index

    @property
    def player_score(self) -> int:
        return self._state.player_score

    @property
    def final_score(self) -> int | None:
        """The player's score once the duel has finished, else ``None``."""
        if self._state.phase is DuelPhase.FINISHED:
            return self._state.player_score
        return None

    @property
    def is_active(self) -> bool:
        return self._state.phase not in (DuelPhase.IDLE, DuelPhase.FINISHED)

    @property
    def has_pending_transition(self) -> bool:
        return self._pending is not None

    def snapshot(self) -> DuelState:
        return replace(self._state, bar_scores=dict(self._state.bar_scores))

    def on_phase_change(self, listener: Callable[[DuelPhase, int], None]) -> None:
        self._phase_listeners.append(listener)

    def on_turn_scored(self, listener: Callable[[int], None]) -> None:
        self._scored_listeners.append(listener)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def available_phrases(self) -> list[PhraseTemplate]:
        phrases = [p for p in self._library() if p.notes]
        if self.timing_filter == "both":
            return phrases
        return [p for p in phrases if p.timing_mode == self.timing_filter]

    def start_game(self) -> DuelCondition | None:
        """Start (or restart) a duel.

        Returns ``DuelCondition.NO_PHRASES_AVAILABLE`` and leaves the state
        untouched when the opponent has nothing to play. Starting while a
        duel is running abandons it and starts over.
        """
        if not self.available_phrases():
            logger.warning("Cannot start duel: no phrases available")
            return DuelCondition.NO_PHRASES_AVAILABLE

        if self.is_active:
            logger.info("Restarting duel in progress")
        self._cancel_pending()
        self._player.stop()

        self._state = DuelState()
        self._recognizer.reset_score()
        self._capture.clear()
        self._clock.start()
        self._next_transition_due = self._scheduler.now()
        self._set_phase(DuelPhase.COUNT_IN)
        self._schedule(self._end_count_in)
        return None

    def stop_game(self) -> None:
        """Abort from any state and return to idle."""
        self._cancel_pending()
        self._player.stop()
        self._clock.stop()
        self._capture.clear()
        was = self._state.phase
        self._state = DuelState()
        if was is not DuelPhase.IDLE:
            logger.info(f"Duel stopped during {was.value}")
        self._set_phase(DuelPhase.IDLE)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _schedule(self, transition: Callable[[], None]) -> None:
        # Due times are ideal bar boundaries counted from the game start.
        self._cancel_pending()
        self._next_transition_due += self._clock.bar_duration_ms
        delay = self._next_transition_due - self._scheduler.now()
        self._pending = self._scheduler.call_later(delay, transition)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _set_phase(self, phase: DuelPhase) -> None:
        self._state.phase = phase
        in_turn = phase in (DuelPhase.OPPONENT_TURN, DuelPhase.PLAYER_TURN)
        self._capture.bar_number = self._state.bar_index if in_turn else None
        logger.info(f"Duel phase {phase.value} (bar {self._state.bar_index}/{self.total_bars})")
        for listener in list(self._phase_listeners):
            listener(phase, self._state.bar_index)

    def _end_count_in(self) -> None:
        self._pending = None
        self._state.bar_index = 1
        self._enter_opponent_turn()

    def _enter_opponent_turn(self) -> None:
        phrases = self.available_phrases()
        if phrases:
            phrase = self._rng.choice(phrases)
            self._state.current_phrase = phrase.name
        else:
            # Library emptied mid-game; the opponent sits this bar out.
            phrase = None
            self._state.current_phrase = None
            logger.warning(f"No phrase for opponent in bar {self._state.bar_index}")
        self._set_phase(DuelPhase.OPPONENT_TURN)
        if phrase is not None:
            self._player.play(phrase)
        self._schedule(self._enter_player_turn)

    def _enter_player_turn(self) -> None:
        self._pending = None
        self._state.bar_index += 1
        self._state.current_phrase = None
        self._capture.clear()
        self._state.turn_points_baseline = self._recognizer.total_score
        self._set_phase(DuelPhase.PLAYER_TURN)
        self._schedule(self._end_player_turn)

    def _end_player_turn(self) -> None:
        self._pending = None
        earned = max(0, self._recognizer.total_score - self._state.turn_points_baseline)
        bar = self._state.bar_index
        self._state.player_score += earned
        self._state.bar_scores[bar] = earned
        logger.info(f"Bar {bar}: +{earned} points (score {self._state.player_score})")
        for listener in list(self._scored_listeners):
            listener(earned)

        if self._state.bar_index >= self.total_bars:
            self._finish()
        else:
            self._state.bar_index += 1
            self._enter_opponent_turn()

    def _finish(self) -> None:
        self._player.stop()
        self._clock.stop()
        self._set_phase(DuelPhase.FINISHED)
        logger.info(f"Duel finished: final score {self._state.player_score}")
