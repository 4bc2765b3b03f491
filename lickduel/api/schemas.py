"""Pydantic request/response models for API."""

from pydantic import BaseModel, Field


class PhraseNoteModel(BaseModel):
    sound_id: str
    label: str = ""
    beat_number: int = Field(ge=1)
    subdivision: float = Field(ge=0.0, lt=1.0)


class PhraseResponse(BaseModel):
    id: str
    name: str
    notes: list[PhraseNoteModel]
    bpm: int
    timing_mode: str
    difficulty: int | None = None
    created_at: float = 0.0


class PhraseCreate(BaseModel):
    name: str
    notes: list[PhraseNoteModel]
    bpm: int = 120
    timing_mode: str = "straight"
    difficulty: int | None = Field(default=None, ge=1, le=100)


class PhraseUpdate(BaseModel):
    name: str | None = None
    notes: list[PhraseNoteModel] | None = None
    bpm: int | None = None
    timing_mode: str | None = None
    difficulty: int | None = Field(default=None, ge=1, le=100)


class SoundResponse(BaseModel):
    id: str
    name: str
    kind: str
    key: str | None = None


# WebSocket message types (server -> client)

class TickMessage(BaseModel):
    type: str = "tick"
    beat_number: int
    timestamp: float
    is_downbeat: bool


class NoteMessage(BaseModel):
    type: str = "note"
    sound_id: str
    label: str
    beat_number: int
    subdivision: float
    offset_ms: float
    accuracy: str
    bar_number: int | None = None


class RecognizedMessage(BaseModel):
    type: str = "recognized"
    phrase_id: str
    name: str
    accuracy: float
    points: int
    total_score: int
    first_note_offset_ms: float | None = None
    is_rushing: bool = False
    is_dragging: bool = False


class PhaseMessage(BaseModel):
    type: str = "phase"
    phase: str
    bar_index: int
    total_bars: int
    player_score: int
    phrase: str | None = None


class TurnScoredMessage(BaseModel):
    type: str = "turn_scored"
    bar_index: int
    points: int
    player_score: int


class PlayMessage(BaseModel):
    type: str = "play"
    sound_id: str


class NoticeMessage(BaseModel):
    type: str = "notice"
    code: str
    message: str


class ErrorMessage(BaseModel):
    type: str = "error"
    message: str
