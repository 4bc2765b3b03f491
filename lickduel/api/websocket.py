"""WebSocket endpoint for a live practice / duel session."""

import asyncio
import json
import logging
from typing import Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from lickduel.api.phrases import phrase_store
from lickduel.api.schemas import (
    ErrorMessage,
    NoteMessage,
    NoticeMessage,
    PhaseMessage,
    PlayMessage,
    RecognizedMessage,
    TickMessage,
    TurnScoredMessage,
)
from lickduel.engine.scheduler import AsyncioScheduler
from lickduel.engine.trainer import Trainer
from lickduel.library.store import PhraseStoreError

logger = logging.getLogger(__name__)

router = APIRouter()

Send = Callable[[dict], None]


class BrowserTonePlayer:
    """Tone player that asks the connected browser to synthesize the sound."""

    def __init__(self, send: Send) -> None:
        self._send = send

    def play(self, sound_id: str) -> None:
        self._send(PlayMessage(sound_id=sound_id).model_dump())


def subscribe(trainer: Trainer, send: Send) -> None:
    """Forward engine events to the client as JSON messages."""

    trainer.clock.on_tick(lambda tick: send(TickMessage(
        beat_number=tick.beat_number,
        timestamp=tick.timestamp,
        is_downbeat=tick.is_downbeat,
    ).model_dump()))

    def on_append(notes):
        note = notes[-1]
        send(NoteMessage(
            sound_id=note.sound_id,
            label=note.label,
            beat_number=note.beat_number,
            subdivision=note.subdivision,
            offset_ms=note.offset_ms,
            accuracy=note.accuracy_tier,
            bar_number=note.bar_number,
        ).model_dump())

    trainer.capture.on_append(on_append)

    def on_recognized(result):
        feedback = result.timing_feedback
        send(RecognizedMessage(
            phrase_id=result.template.id,
            name=result.template.name,
            accuracy=round(result.accuracy_percent, 1),
            points=result.points,
            total_score=trainer.recognizer.total_score,
            first_note_offset_ms=feedback.first_note_offset_ms if feedback else None,
            is_rushing=feedback.is_rushing if feedback else False,
            is_dragging=feedback.is_dragging if feedback else False,
        ).model_dump())

    trainer.recognizer.on_recognized(on_recognized)

    def on_phase(phase, bar_index):
        state = trainer.duel.snapshot()
        send(PhaseMessage(
            phase=phase.value,
            bar_index=bar_index,
            total_bars=trainer.duel.total_bars,
            player_score=state.player_score,
            phrase=state.current_phrase,
        ).model_dump())

    trainer.duel.on_phase_change(on_phase)

    trainer.duel.on_turn_scored(lambda points: send(TurnScoredMessage(
        bar_index=trainer.duel.bar_index,
        points=points,
        player_score=trainer.duel.player_score,
    ).model_dump()))


def handle_message(trainer: Trainer, message: dict, send: Send) -> None:
    """Apply one client command to the session.

    Protocol (client -> server), one JSON object per frame:
    - {"type": "key_down" | "key_up", "key": "z"}
    - {"type": "press", "sound_id": "kick"}
    - {"type": "metronome", "action": "start" | "stop" | "toggle"}
    - {"type": "set_bpm", "bpm": 100}
    - {"type": "set_tolerance", "tolerance_ms": 120}
    - {"type": "duel", "action": "start" | "stop"}
    - {"type": "clear"}
    - {"type": "save_phrase", "name": "...", "timing_mode": "straight", "difficulty": 60}
    - {"type": "edit_phrase" | "delete_phrase" | "play_phrase", "id": "..."}
    """
    kind = message.get("type")

    if kind == "key_down":
        trainer.key_down(str(message["key"]))
    elif kind == "key_up":
        trainer.key_up(str(message["key"]))
    elif kind == "press":
        trainer.press(str(message["sound_id"]))
    elif kind == "metronome":
        action = message.get("action", "toggle")
        if action == "start":
            trainer.clock.start()
        elif action == "stop":
            trainer.clock.stop()
        elif action == "toggle":
            trainer.clock.toggle()
        else:
            raise ValueError(f"Unknown metronome action: {action!r}")
    elif kind == "set_bpm":
        bpm = trainer.set_bpm(float(message["bpm"]))
        send(NoticeMessage(code="bpm", message=str(bpm)).model_dump())
    elif kind == "set_tolerance":
        trainer.set_tolerance(float(message["tolerance_ms"]))
    elif kind == "duel":
        action = message.get("action")
        if action == "start":
            condition = trainer.duel.start_game()
            if condition is not None:
                send(NoticeMessage(code=condition.value, message="Create some phrases first!").model_dump())
        elif action == "stop":
            trainer.duel.stop_game()
        else:
            raise ValueError(f"Unknown duel action: {action!r}")
    elif kind == "clear":
        trainer.clear_capture()
    elif kind == "save_phrase":
        saved = trainer.save_capture(
            message.get("name", ""),
            timing_mode=message.get("timing_mode", "straight"),
            difficulty=message.get("difficulty"),
        )
        send(NoticeMessage(code="phrase_saved", message=saved.id).model_dump())
    elif kind == "edit_phrase":
        trainer.edit_phrase(str(message["id"]))
    elif kind == "delete_phrase":
        trainer.delete_phrase(str(message["id"]))
    elif kind == "play_phrase":
        trainer.play_phrase(str(message["id"]))
    else:
        raise ValueError(f"Unknown message type: {kind!r}")


async def _drain(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        payload = await outbox.get()
        await websocket.send_json(payload)


@router.websocket("/ws/session")
async def live_session(websocket: WebSocket):
    """Live trainer session via WebSocket.

    Keystrokes are timestamped on receipt with the session's own clock, so
    tick times and note times share one time source. Engine events are
    queued by synchronous callbacks and written by a single sender task.
    """
    await websocket.accept()

    outbox: asyncio.Queue = asyncio.Queue()
    trainer = Trainer(AsyncioScheduler(), BrowserTonePlayer(outbox.put_nowait), phrase_store)
    subscribe(trainer, outbox.put_nowait)
    sender = asyncio.create_task(_drain(websocket, outbox))

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
                if not isinstance(message, dict):
                    raise ValueError("Expected a JSON object")
                handle_message(trainer, message, outbox.put_nowait)
            except (PhraseStoreError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Rejected session message: {e}")
                outbox.put_nowait(ErrorMessage(message=str(e)).model_dump())
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("Live session failed")
        try:
            await websocket.send_json(ErrorMessage(message=str(e)).model_dump())
        except Exception:
            pass
    finally:
        trainer.shutdown()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
