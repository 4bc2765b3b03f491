#!/usr/bin/env python3
"""Run a complete duel offline against a scripted player.

The duel runs on a manual scheduler, so a full game finishes instantly and is
reproducible for a given seed. During each player turn the scripted player
answers with the phrase the opponent just played, with Gaussian timing jitter
of ``--jitter`` ms per note.

Usage:
    python scripts/simulate_duel.py --bpm 100 --jitter 25 --seed 7
"""

import argparse
import logging
import random
import sys
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lickduel.config import Settings
from lickduel.engine.models import DuelPhase, PhraseNote, PhraseTemplate
from lickduel.engine.scheduler import ManualScheduler
from lickduel.engine.trainer import Trainer
from lickduel.library.store import InMemoryPhraseStore

logging.basicConfig(level=logging.WARNING, format="%(name)s %(levelname)s: %(message)s")


DEMO_PHRASES = [
    ("Boom Bap", "straight", 40, [("kick", 1, 0.0), ("snare", 2, 0.0), ("kick", 3, 0.0), ("kick", 3, 0.5), ("snare", 4, 0.0)]),
    ("Hat Roll", "straight", 70, [("hihat-closed", 1, 0.0), ("hihat-closed", 1, 0.25), ("hihat-closed", 1, 0.5), ("hihat-open", 2, 0.0)]),
    ("Shuffle", "swing", 60, [("kick", 1, 0.0), ("snare", 1, 2 / 3), ("kick", 2, 1 / 3), ("snare", 3, 0.0)]),
]


class SilentTonePlayer:
    def __init__(self) -> None:
        self.count = 0

    def play(self, sound_id: str) -> None:
        self.count += 1


def seed_library(store: InMemoryPhraseStore, bpm: int) -> None:
    for name, mode, difficulty, notes in DEMO_PHRASES:
        store.save(PhraseTemplate(
            id="",
            name=name,
            notes=tuple(PhraseNote(sid, sid, beat, sub) for sid, beat, sub in notes),
            bpm=bpm,
            timing_mode=mode,
            difficulty=difficulty,
        ))


def main():
    parser = argparse.ArgumentParser(description="Simulate a duel against a scripted player")
    parser.add_argument("--bpm", type=int, default=120)
    parser.add_argument("--bars", type=int, default=8, help="Total bars (even)")
    parser.add_argument("--jitter", type=float, default=20.0,
                        help="Std-dev of the player's timing error in ms")
    parser.add_argument("--miss-rate", type=float, default=0.0,
                        help="Probability the player skips a turn")
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    config = Settings(default_bpm=args.bpm, total_bars=args.bars, metronome_click=False)
    scheduler = ManualScheduler()
    store = InMemoryPhraseStore(max_per_mode=config.max_phrases_per_mode)
    seed_library(store, args.bpm)
    trainer = Trainer(scheduler, SilentTonePlayer(), store, config=config, rng=random.Random(args.seed))
    noise = np.random.default_rng(args.seed)

    last_phrase: dict[str, str | None] = {"name": None}
    by_name = {p.name: p for p in store.list()}

    def on_phase(phase, bar_index):
        if phase is DuelPhase.OPPONENT_TURN:
            last_phrase["name"] = trainer.duel.snapshot().current_phrase
        elif phase is DuelPhase.PLAYER_TURN and last_phrase["name"]:
            if noise.random() < args.miss_rate:
                return
            phrase = by_name[last_phrase["name"]]
            period = trainer.clock.beat_period_ms
            for note in phrase.notes:
                offset = (note.beat_number - 1 + note.subdivision) * period
                offset += float(noise.normal(0.0, args.jitter))
                scheduler.call_later(offset, lambda sid=note.sound_id: trainer.press(sid))

    trainer.duel.on_phase_change(on_phase)
    recognized = []
    trainer.recognizer.on_recognized(recognized.append)

    if trainer.duel.start_game() is not None:
        print("No phrases available")
        return 1

    scheduler.advance(trainer.clock.bar_duration_ms * (args.bars + 1) + 1)

    state = trainer.duel.snapshot()
    print(f"Duel at {args.bpm} BPM, jitter {args.jitter:.0f}ms, {args.bars} bars")
    for bar, points in sorted(state.bar_scores.items()):
        print(f"  bar {bar}: {points:4d} points")
    for r in recognized:
        print(f"  recognized {r.template.name:<10} {r.accuracy_percent:5.1f}%  +{r.points}")
    print(f"Final score: {trainer.duel.final_score}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
