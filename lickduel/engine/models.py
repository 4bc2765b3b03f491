"""Core data models for timing, recognition and duels."""

from dataclasses import dataclass, field
from enum import Enum

STRAIGHT = "straight"
SWING = "swing"
TIMING_MODES = (STRAIGHT, SWING)

ACCURACY_TIERS = ("perfect", "good", "ok", "poor")


@dataclass(frozen=True)
class BeatTick:
    """A single metronome pulse."""
    beat_number: int  # 1..beats_per_bar
    timestamp: float  # ms
    subdivision: float = 0.0

    @property
    def is_downbeat(self) -> bool:
        return self.beat_number == 1


@dataclass(frozen=True)
class BeatPosition:
    """Where a timestamp falls relative to the running pulse."""
    beat_number: int
    subdivision: float  # 0.0 <= s < 1.0
    timestamp: float


@dataclass(frozen=True)
class TimingAccuracy:
    """Distance from the nearest sixteenth-note grid line."""
    offset_ms: float
    nearest_subdivision: float
    tier: str  # "perfect" | "good" | "ok" | "poor"


@dataclass(frozen=True)
class CapturedNote:
    """A keystroke captured while the clock is running."""
    sound_id: str
    label: str
    timestamp: float
    beat_number: int
    subdivision: float
    offset_ms: float = 0.0
    accuracy_tier: str = "perfect"
    bar_number: int | None = None


@dataclass(frozen=True)
class PhraseNote:
    """A note of a stored phrase, on the timing mode's grid."""
    sound_id: str
    label: str
    beat_number: int
    subdivision: float


@dataclass(frozen=True)
class PhraseTemplate:
    """A named, quantized phrase (a "lick")."""
    id: str
    name: str
    notes: tuple[PhraseNote, ...]
    bpm: int
    timing_mode: str = STRAIGHT  # "straight" | "swing"
    difficulty: int | None = None  # 1-100
    created_at: float = 0.0


@dataclass(frozen=True)
class TimingFeedback:
    """Signed offset of a recognized phrase's first note."""
    first_note_offset_ms: float  # negative = early
    is_rushing: bool
    is_dragging: bool


@dataclass(frozen=True)
class RecognitionResult:
    """A phrase matched at the tail of the capture sequence."""
    template: PhraseTemplate
    accuracy_percent: float  # 0-100
    points: int
    timing_feedback: TimingFeedback | None = None


class DuelPhase(str, Enum):
    IDLE = "idle"
    COUNT_IN = "count_in"
    OPPONENT_TURN = "opponent_turn"
    PLAYER_TURN = "player_turn"
    FINISHED = "finished"


class DuelCondition(str, Enum):
    """Named user-input conditions reported by the duel."""
    NO_PHRASES_AVAILABLE = "no_phrases_available"


@dataclass
class DuelState:
    """Mutable state of a duel, owned by the duel itself."""
    phase: DuelPhase = DuelPhase.IDLE
    bar_index: int = 0
    player_score: int = 0
    turn_points_baseline: int = 0
    bar_scores: dict[int, int] = field(default_factory=dict)
    current_phrase: str | None = None  # name of the opponent's phrase
