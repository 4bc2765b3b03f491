"""Tests for the duel turn sequencer, driven through a trainer on a manual clock."""

import random

import pytest

from lickduel.config import Settings
from lickduel.engine.models import DuelCondition, DuelPhase
from lickduel.engine.scheduler import ManualScheduler
from lickduel.engine.trainer import Trainer

BAR_MS = 2000.0  # 4/4 at 120 BPM


@pytest.fixture
def phases(trainer):
    events = []
    trainer.duel.on_phase_change(lambda phase, bar: events.append((phase, bar)))
    return events


@pytest.fixture
def basic(store, phrase_factory):
    return store.save(phrase_factory(
        [("kick", 1, 0.0), ("snare", 1, 0.5)], name="basic", difficulty=60,
    ))


def _play_basic(trainer, scheduler, bar_start):
    scheduler.advance_to(bar_start)
    trainer.press("kick")
    scheduler.advance_to(bar_start + 250)
    trainer.press("snare")


def test_start_without_phrases_reports_condition(trainer, scheduler, phases):
    assert trainer.duel.start_game() is DuelCondition.NO_PHRASES_AVAILABLE

    assert trainer.duel.phase is DuelPhase.IDLE
    assert not trainer.duel.has_pending_transition
    assert not trainer.clock.is_running
    assert phases == []
    assert scheduler.pending == 0


def test_timing_filter_excludes_other_mode(scheduler, tone_player, store, phrase_factory):
    store.save(phrase_factory([("kick", 1, 0.0)], name="straight one"))
    config = Settings(duel_timing_filter="swing", metronome_click=False)
    trainer = Trainer(scheduler, tone_player, store, config=config)

    assert trainer.duel.start_game() is DuelCondition.NO_PHRASES_AVAILABLE

    store.save(phrase_factory([("kick", 1, 1 / 3)], name="swung", timing_mode="swing"))
    assert trainer.duel.start_game() is None
    assert [p.name for p in trainer.duel.available_phrases()] == ["swung"]


def test_full_game_timeline(trainer, scheduler, phases, basic):
    assert trainer.duel.start_game() is None
    assert trainer.duel.phase is DuelPhase.COUNT_IN
    assert trainer.clock.is_running

    scheduler.advance(BAR_MS * 9)

    assert phases == [
        (DuelPhase.COUNT_IN, 0),
        (DuelPhase.OPPONENT_TURN, 1),
        (DuelPhase.PLAYER_TURN, 2),
        (DuelPhase.OPPONENT_TURN, 3),
        (DuelPhase.PLAYER_TURN, 4),
        (DuelPhase.OPPONENT_TURN, 5),
        (DuelPhase.PLAYER_TURN, 6),
        (DuelPhase.OPPONENT_TURN, 7),
        (DuelPhase.PLAYER_TURN, 8),
        (DuelPhase.FINISHED, 8),
    ]
    assert trainer.duel.bar_index == 8
    assert trainer.duel.final_score == 0
    assert trainer.duel.snapshot().bar_scores == {2: 0, 4: 0, 6: 0, 8: 0}
    assert not trainer.clock.is_running
    assert not trainer.duel.has_pending_transition
    assert scheduler.pending == 0


def test_final_score_only_when_finished(trainer, scheduler, basic):
    trainer.duel.start_game()
    scheduler.advance(BAR_MS * 5)

    assert trainer.duel.is_active
    assert trainer.duel.final_score is None


def test_transitions_happen_exactly_on_bar_boundaries(trainer, scheduler, phases, basic):
    trainer.duel.start_game()

    scheduler.advance_to(BAR_MS - 1)
    assert trainer.duel.phase is DuelPhase.COUNT_IN
    scheduler.advance_to(BAR_MS)
    assert trainer.duel.phase is DuelPhase.OPPONENT_TURN
    scheduler.advance_to(2 * BAR_MS)
    assert trainer.duel.phase is DuelPhase.PLAYER_TURN
    assert trainer.duel.bar_index == 2


def test_opponent_plays_its_phrase(trainer, scheduler, tone_player, basic):
    trainer.duel.start_game()
    scheduler.advance_to(BAR_MS + 300)

    assert trainer.duel.snapshot().current_phrase == "basic"
    assert tone_player.played == [(BAR_MS, "kick"), (BAR_MS + 250, "snare")]


def test_player_turn_points_are_scored(trainer, scheduler, basic):
    scored = []
    trainer.duel.on_turn_scored(scored.append)
    trainer.duel.start_game()

    _play_basic(trainer, scheduler, 2 * BAR_MS)
    assert [n.bar_number for n in trainer.capture.notes] == [2, 2]
    assert trainer.recognizer.total_score == 60

    scheduler.advance_to(3 * BAR_MS)
    assert scored == [60]
    assert trainer.duel.player_score == 60

    # The same phrase can be earned again in the next player turn.
    _play_basic(trainer, scheduler, 4 * BAR_MS)
    scheduler.advance_to(9 * BAR_MS)

    assert trainer.duel.snapshot().bar_scores == {2: 60, 4: 60, 6: 0, 8: 0}
    assert trainer.duel.final_score == 120
    assert sum(scored) == trainer.duel.final_score


def test_recognition_during_opponent_turn_does_not_score(trainer, scheduler, basic):
    trainer.duel.start_game()
    _play_basic(trainer, scheduler, BAR_MS)
    assert trainer.recognizer.total_score == 60

    scheduler.advance_to(9 * BAR_MS)
    assert trainer.duel.final_score == 0


def test_stop_during_opponent_turn_cancels_everything(trainer, scheduler, tone_player, phases, store, phrase_factory):
    store.save(phrase_factory([("kick", 1, 0.0), ("crash", 4, 0.0)], name="long"))
    trainer.duel.start_game()
    scheduler.advance_to(BAR_MS + 100)
    assert trainer.duel.phase is DuelPhase.OPPONENT_TURN

    trainer.duel.stop_game()
    played_at_stop = list(tone_player.played)
    events_at_stop = list(phases)

    assert trainer.duel.phase is DuelPhase.IDLE
    assert trainer.duel.bar_index == 0
    assert not trainer.duel.has_pending_transition
    assert not trainer.clock.is_running
    assert scheduler.pending == 0

    scheduler.advance(BAR_MS * 20)
    assert tone_player.played == played_at_stop
    assert phases == events_at_stop
    assert events_at_stop[-1] == (DuelPhase.IDLE, 0)


def test_restart_mid_game_starts_fresh(trainer, scheduler, phases, basic):
    trainer.duel.start_game()
    _play_basic(trainer, scheduler, 2 * BAR_MS)
    assert trainer.recognizer.total_score == 60

    restart_at = scheduler.now()
    phases.clear()
    assert trainer.duel.start_game() is None

    state = trainer.duel.snapshot()
    assert state.phase is DuelPhase.COUNT_IN
    assert state.bar_index == 0
    assert state.player_score == 0
    assert trainer.recognizer.total_score == 0
    assert len(trainer.capture) == 0

    scheduler.advance_to(restart_at + BAR_MS * 9)
    turns = [p for p, _ in phases]
    assert turns.count(DuelPhase.OPPONENT_TURN) == 4
    assert turns.count(DuelPhase.PLAYER_TURN) == 4
    assert turns[-1] is DuelPhase.FINISHED
    assert trainer.duel.final_score == 0


def test_no_transitions_after_finish(trainer, scheduler, phases, basic):
    trainer.duel.start_game()
    scheduler.advance(BAR_MS * 9)
    count = len(phases)

    scheduler.advance(BAR_MS * 10)
    assert len(phases) == count
    assert trainer.duel.phase is DuelPhase.FINISHED


def test_finished_game_can_start_again(trainer, scheduler, basic):
    trainer.duel.start_game()
    scheduler.advance(BAR_MS * 9)

    assert trainer.duel.start_game() is None
    assert trainer.duel.phase is DuelPhase.COUNT_IN
    assert trainer.duel.final_score is None


def test_library_emptied_mid_game(trainer, scheduler, basic):
    trainer.duel.start_game()
    scheduler.advance_to(2 * BAR_MS + 10)
    trainer.delete_phrase(basic.id)

    scheduler.advance_to(3 * BAR_MS + 10)
    assert trainer.duel.phase is DuelPhase.OPPONENT_TURN
    assert trainer.duel.snapshot().current_phrase is None

    scheduler.advance_to(9 * BAR_MS)
    assert trainer.duel.phase is DuelPhase.FINISHED


def test_two_bar_game(scheduler, tone_player, store, phrase_factory):
    store.save(phrase_factory([("kick", 1, 0.0)]))
    config = Settings(total_bars=2, metronome_click=False)
    trainer = Trainer(scheduler, tone_player, store, config=config, rng=random.Random(0))

    trainer.duel.start_game()
    scheduler.advance(BAR_MS * 3)
    assert trainer.duel.phase is DuelPhase.FINISHED
    assert trainer.duel.bar_index == 2


def test_opponent_choice_is_reproducible(scheduler, tone_player, store, phrase_factory):
    for i in range(4):
        store.save(phrase_factory([("kick", 1, 0.0)], name=f"p{i}"))

    def picks(seed):
        sched = type(scheduler)()
        trainer = Trainer(sched, tone_player, store,
                          config=Settings(metronome_click=False), rng=random.Random(seed))
        names = []
        trainer.duel.on_phase_change(
            lambda phase, bar: names.append(trainer.duel.snapshot().current_phrase)
            if phase is DuelPhase.OPPONENT_TURN else None
        )
        trainer.duel.start_game()
        sched.advance(BAR_MS * 9)
        return names

    assert picks(7) == picks(7)
    assert len(picks(7)) == 4


@pytest.mark.parametrize("bars", [0, 3, 7])
def test_total_bars_must_be_even(scheduler, tone_player, store, bars):
    with pytest.raises(ValueError):
        Trainer(scheduler, tone_player, store, config=Settings(total_bars=bars, metronome_click=False))


def test_duel_at_odd_tempo_finishes(scheduler, tone_player, store, phrase_factory):
    store.save(phrase_factory([("kick", 1, 0.0)]))
    trainer = Trainer(scheduler, tone_player, store, config=Settings(default_bpm=97, metronome_click=False))

    trainer.duel.start_game()
    scheduler.advance(trainer.clock.bar_duration_ms * 9 + 1)
    assert trainer.duel.phase is DuelPhase.FINISHED


class LateScheduler(ManualScheduler):
    """Manual scheduler that fires every callback a few ms after it was due."""

    def __init__(self, latency_ms=5.0):
        super().__init__()
        self.latency_ms = latency_ms

    def call_later(self, delay_ms, callback):
        return super().call_later(delay_ms + self.latency_ms, callback)


def test_turns_stay_on_downbeats_with_late_callbacks(tone_player, store, phrase_factory):
    """Callback latency must not accumulate across turns."""
    store.save(phrase_factory([("kick", 1, 0.0)]))
    scheduler = LateScheduler(latency_ms=5.0)
    trainer = Trainer(scheduler, tone_player, store,
                      config=Settings(metronome_click=False), rng=random.Random(0))
    downbeats = []
    trainer.clock.on_tick(lambda tick: downbeats.append(tick.timestamp) if tick.is_downbeat else None)
    changes = []
    trainer.duel.on_phase_change(lambda phase, bar: changes.append((phase, scheduler.now())))

    trainer.duel.start_game()
    scheduler.advance(BAR_MS * 10)

    turn_times = [t for phase, t in changes if phase in (DuelPhase.OPPONENT_TURN, DuelPhase.PLAYER_TURN)]
    assert turn_times == [BAR_MS * k + 5 for k in range(1, 9)]
    assert turn_times == downbeats[1:]
    assert changes[-1] == (DuelPhase.FINISHED, BAR_MS * 9 + 5)


def test_on_time_downbeat_note_survives_late_turn_start(tone_player, store, phrase_factory):
    store.save(phrase_factory([("kick", 1, 0.0)], name="one", difficulty=40))
    scheduler = LateScheduler(latency_ms=5.0)
    trainer = Trainer(scheduler, tone_player, store,
                      config=Settings(metronome_click=False), rng=random.Random(0))
    trainer.duel.start_game()

    # Player bar 4 starts on the downbeat at 8005 ms even after three late turns.
    scheduler.advance_to(4 * BAR_MS + 10)
    trainer.press("kick")
    scheduler.advance_to(5 * BAR_MS + 10)

    assert trainer.duel.snapshot().bar_scores[4] > 0
