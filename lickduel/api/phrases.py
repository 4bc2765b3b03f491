"""Phrase library endpoints."""

from fastapi import APIRouter, HTTPException

from lickduel.api.schemas import (
    PhraseCreate,
    PhraseNoteModel,
    PhraseResponse,
    PhraseUpdate,
    SoundResponse,
)
from lickduel.config import settings
from lickduel.engine.models import TIMING_MODES, PhraseNote, PhraseTemplate
from lickduel.engine.quantize import quantize
from lickduel.input.keymap import DEFAULT_KEY_MAP, DRUM_SOUNDS, label_for
from lickduel.library.store import (
    DuplicatePhraseName,
    InMemoryPhraseStore,
    PhraseLimitReached,
    PhraseNotFound,
    PhraseRejected,
)

router = APIRouter()

# Shared by every live session in this process.
phrase_store = InMemoryPhraseStore(max_per_mode=settings.max_phrases_per_mode)


def phrase_to_response(phrase: PhraseTemplate) -> dict:
    """Convert PhraseTemplate to dict for JSON serialization."""
    return PhraseResponse(
        id=phrase.id,
        name=phrase.name,
        notes=[
            PhraseNoteModel(
                sound_id=n.sound_id,
                label=n.label,
                beat_number=n.beat_number,
                subdivision=n.subdivision,
            )
            for n in phrase.notes
        ],
        bpm=phrase.bpm,
        timing_mode=phrase.timing_mode,
        difficulty=phrase.difficulty,
        created_at=phrase.created_at,
    ).model_dump()


def _to_notes(notes: list[PhraseNoteModel], timing_mode: str) -> tuple[PhraseNote, ...]:
    # Client-supplied positions are snapped so stored phrases are always on-grid.
    raw = [
        PhraseNote(
            sound_id=n.sound_id,
            label=n.label or label_for(n.sound_id),
            beat_number=n.beat_number,
            subdivision=n.subdivision,
        )
        for n in notes
    ]
    return tuple(quantize(raw, timing_mode))


def _check_timing_mode(timing_mode: str) -> None:
    if timing_mode not in TIMING_MODES:
        raise HTTPException(400, f"Unknown timing mode. Use: {', '.join(TIMING_MODES)}")


def _rejected_status(exc: PhraseRejected) -> int:
    if isinstance(exc, (PhraseLimitReached, DuplicatePhraseName)):
        return 409
    return 400


@router.get("/phrases", response_model=list[PhraseResponse])
async def list_phrases():
    return [phrase_to_response(p) for p in phrase_store.list()]


@router.post("/phrases", response_model=PhraseResponse, status_code=201)
async def create_phrase(body: PhraseCreate):
    """Store a new phrase in the library."""
    _check_timing_mode(body.timing_mode)
    try:
        saved = phrase_store.save(PhraseTemplate(
            id="",
            name=body.name,
            notes=_to_notes(body.notes, body.timing_mode),
            bpm=body.bpm,
            timing_mode=body.timing_mode,
            difficulty=body.difficulty,
        ))
    except PhraseRejected as e:
        raise HTTPException(_rejected_status(e), str(e))
    return phrase_to_response(saved)


@router.patch("/phrases/{phrase_id}", response_model=PhraseResponse)
async def update_phrase(phrase_id: str, body: PhraseUpdate):
    # Explicit null only means something for difficulty (reset to default).
    fields = {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k == "difficulty"
    }
    try:
        current = phrase_store.get(phrase_id)
    except PhraseNotFound as e:
        raise HTTPException(404, str(e))

    timing_mode = fields.get("timing_mode") or current.timing_mode
    _check_timing_mode(timing_mode)
    if body.notes is not None:
        fields["notes"] = _to_notes(body.notes, timing_mode)
    elif "timing_mode" in fields:
        fields["notes"] = tuple(quantize(current.notes, timing_mode))

    try:
        phrase_store.update(phrase_id, fields)
    except PhraseRejected as e:
        raise HTTPException(_rejected_status(e), str(e))
    return phrase_to_response(phrase_store.get(phrase_id))


@router.delete("/phrases/{phrase_id}", status_code=204)
async def delete_phrase(phrase_id: str):
    try:
        phrase_store.delete(phrase_id)
    except PhraseNotFound as e:
        raise HTTPException(404, str(e))


@router.get("/sounds", response_model=list[SoundResponse])
async def list_sounds():
    keys = {sound_id: key for key, sound_id in DEFAULT_KEY_MAP.items()}
    return [
        SoundResponse(id=s.id, name=s.name, kind=s.kind, key=keys.get(s.id))
        for s in DRUM_SOUNDS
    ]
