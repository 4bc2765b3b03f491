"""Shared test fixtures for lickduel tests."""

import random

import pytest
from fastapi.testclient import TestClient

from lickduel.config import Settings
from lickduel.engine.models import CapturedNote, PhraseNote, PhraseTemplate
from lickduel.engine.scheduler import ManualScheduler
from lickduel.engine.trainer import Trainer
from lickduel.library.store import InMemoryPhraseStore


class RecordingTonePlayer:
    """Tone player that remembers what it was asked to play, and when."""

    def __init__(self, scheduler=None):
        self.scheduler = scheduler
        self.played: list[tuple[float | None, str]] = []

    def play(self, sound_id: str) -> None:
        now = self.scheduler.now() if self.scheduler else None
        self.played.append((now, sound_id))

    @property
    def sounds(self) -> list[str]:
        return [sid for _, sid in self.played]


def make_phrase(
    notes,
    name: str = "lick",
    phrase_id: str | None = None,
    difficulty: int | None = None,
    timing_mode: str = "straight",
    bpm: int = 120,
) -> PhraseTemplate:
    """Build a phrase from ``(sound_id, beat_number, subdivision)`` triples."""
    return PhraseTemplate(
        id=phrase_id or name,
        name=name,
        notes=tuple(PhraseNote(sid, sid, beat, sub) for sid, beat, sub in notes),
        bpm=bpm,
        timing_mode=timing_mode,
        difficulty=difficulty,
    )


def make_note(sound_id: str, beat_number: int, subdivision: float, timestamp: float = 0.0) -> CapturedNote:
    return CapturedNote(
        sound_id=sound_id,
        label=sound_id,
        timestamp=timestamp,
        beat_number=beat_number,
        subdivision=subdivision,
    )


@pytest.fixture
def phrase_factory():
    return make_phrase


@pytest.fixture
def note_factory():
    return make_note


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def tone_player(scheduler):
    return RecordingTonePlayer(scheduler)


@pytest.fixture
def store():
    return InMemoryPhraseStore()


@pytest.fixture
def config():
    return Settings(default_bpm=120, beats_per_bar=4, total_bars=8, metronome_click=False)


@pytest.fixture
def trainer(scheduler, tone_player, store, config):
    return Trainer(scheduler, tone_player, store, config=config, rng=random.Random(1234))


@pytest.fixture
def client():
    """FastAPI test client with an empty phrase library."""
    from lickduel.api.phrases import phrase_store
    from lickduel.main import app

    phrase_store.clear()
    yield TestClient(app)
    phrase_store.clear()
