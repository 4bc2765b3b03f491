"""Drum-pad sound catalog and keyboard mapping."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Sound:
    """A pad the player can trigger."""
    id: str
    name: str
    kind: str  # e.g. "kick", "snare", "hihat"


DRUM_SOUNDS: tuple[Sound, ...] = (
    # Cymbals and hi-hats
    Sound("hihat-closed", "Hi-Hat", "hihat"),
    Sound("hihat-open", "Hi-Hat Open", "hihat"),
    Sound("crash", "Crash", "cymbal"),
    Sound("ride", "Ride", "cymbal"),
    # Snares and toms
    Sound("snare", "Snare", "snare"),
    Sound("tom-high", "High Tom", "tom"),
    Sound("tom-mid", "Mid Tom", "tom"),
    Sound("tom-low", "Low Tom", "tom"),
    # Kicks and percussion
    Sound("kick", "Kick", "kick"),
    Sound("kick-sub", "Sub Kick", "kick"),
    Sound("clap", "Clap", "clap"),
    Sound("rim", "Rimshot", "rim"),
    # Extra percussion
    Sound("cowbell", "Cowbell", "cowbell"),
    Sound("shaker", "Shaker", "hihat"),
    Sound("tambourine", "Tambourine", "cymbal"),
    Sound("woodblock", "Woodblock", "cowbell"),
)

SOUNDS_BY_ID: dict[str, Sound] = {s.id: s for s in DRUM_SOUNDS}

DEFAULT_KEY_MAP: dict[str, str] = {
    "q": "hihat-closed", "w": "hihat-open", "e": "crash", "r": "ride",
    "a": "snare", "s": "tom-high", "d": "tom-mid", "f": "tom-low",
    "z": "kick", "x": "kick-sub", "c": "clap", "v": "rim",
    "u": "cowbell", "i": "shaker", "o": "tambourine", "p": "woodblock",
}

# Metronome click sound ids sent to the tone player.
CLICK = "click"
CLICK_ACCENT = "click-accent"


def label_for(sound_id: str) -> str:
    sound = SOUNDS_BY_ID.get(sound_id)
    return sound.name if sound else sound_id


class KeyMapper:
    """Translate key presses to sound ids, ignoring auto-repeat while held."""

    def __init__(self, key_map: dict[str, str] | None = None) -> None:
        self.key_map = {k.lower(): v for k, v in (key_map or DEFAULT_KEY_MAP).items()}
        self._held: set[str] = set()

    def key_down(self, key: str) -> str | None:
        key = key.lower()
        sound_id = self.key_map.get(key)
        if sound_id is None or key in self._held:
            return None
        self._held.add(key)
        return sound_id

    def key_up(self, key: str) -> None:
        self._held.discard(key.lower())

    def release_all(self) -> None:
        self._held.clear()
