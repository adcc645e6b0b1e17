"""
CaptionGateway: one WebSocket connection <-> one live caption session at a time.

Client -> server:
- text frames: {"event": "startTranscription" | "audioChunk" | "stopTranscription", "sessionId", "chunk"?}
- binary frames: PCM 16-bit mono 16kHz for the active session.

Server -> client (JSON):
- {"type": "started" | "stopped" | "chunkReceived" | "error", "sessionId", ...}
- {"type": "partialTranscript", "text", "language", "sessionId", "isNewTurn", ...} per TurnEvent.

Pipeline: audio -> StreamingRecognizer -> Snapshot -> TurnSegmenter -> TurnEvent -> outbox.
Outgoing messages go through one queue drained by a sender task, so events keep their
order and the segmenter never awaits the socket.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from livecaption.asr.base import ASREngine
from livecaption.asr.streaming import StreamingRecognizer
from livecaption.audio.receiver import audio_level_db
from livecaption.config import get_settings
from livecaption.schemas.transcribe import ControlMessage
from livecaption.transcript.writer import TranscriptWriterBase, create_transcript_writer
from livecaption.turns.models import TurnEvent
from livecaption.turns.segmenter import TurnSegmenter

logger = logging.getLogger(__name__)

# Audio received before startTranscription completes is held, up to this many seconds
_MAX_PENDING_AUDIO_SECONDS = 10.0


class CaptionGateway:
    def __init__(self, websocket: WebSocket, engine: ASREngine, segmenter: TurnSegmenter) -> None:
        self._ws = websocket
        self._engine = engine
        self._segmenter = segmenter
        settings = get_settings()
        self._max_pending_bytes = int(_MAX_PENDING_AUDIO_SECONDS * settings.SAMPLE_RATE * settings.SAMPLE_WIDTH)

        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()
        self._sender_task: asyncio.Task | None = None
        self._closed = False

        self._session_id: str | None = None
        self._recognizer: StreamingRecognizer | None = None
        self._writer: TranscriptWriterBase | None = None
        # Audio is held only until the first start on this socket
        self._pending_audio: list[bytes] = []
        self._pending_bytes = 0
        self._ever_started = False
        self._teardown_task: asyncio.Task | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    # --- outgoing ---

    def _send_json(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        self._outbox.put_nowait(json.dumps(payload, ensure_ascii=False))

    async def _sender(self) -> None:
        while True:
            text = await self._outbox.get()
            if text is None:
                break
            if self._closed:
                continue
            try:
                await self._ws.send_text(text)
            except Exception:
                self._closed = True

    def _on_turn_event(self, writer: TranscriptWriterBase, event: TurnEvent) -> None:
        self._send_json({"type": "partialTranscript", **event.to_payload()})
        writer.append_turn(event)

    # --- session control ---

    async def _start_session(self, session_id: str) -> None:
        if session_id != self._session_id and self._segmenter.has_session(session_id):
            logger.warning("startTranscription for %s rejected: session active on another connection", session_id)
            self._send_json({"type": "error", "sessionId": session_id, "message": "Session already active"})
            return
        if self._session_id is not None:
            logger.info("Session %s replaced by %s on the same socket", self._session_id, session_id)
            await self._stop_session(send_ack=True)

        writer = create_transcript_writer(session_id)
        await writer.start()
        self._writer = writer
        self._segmenter.start(session_id, sink=lambda event: self._on_turn_event(writer, event))

        recognizer = StreamingRecognizer(
            self._engine,
            on_snapshot=lambda snapshot: self._segmenter.on_snapshot(session_id, snapshot),
            on_open=lambda: logger.info("Recognizer ready for %s", session_id),
            on_error=lambda exc: self._on_engine_error(session_id, exc),
            on_close=lambda: self._segmenter.stop(session_id),
        )
        await recognizer.start()
        self._recognizer = recognizer
        self._session_id = session_id
        self._ever_started = True
        self._send_json({"type": "started", "sessionId": session_id, "message": "Real-time started"})

        if self._pending_audio:
            logger.info("Flushing %d queued chunks (%d bytes) for %s", len(self._pending_audio), self._pending_bytes, session_id)
            for chunk in self._pending_audio:
                recognizer.send_audio(chunk)
                self._segmenter.record_audio_chunk(session_id)
            self._pending_audio.clear()
            self._pending_bytes = 0

    async def _stop_session(self, session_id: str | None = None, send_ack: bool = True) -> None:
        """Close recognizer (final flush; its on_close ForcedCloses leftovers in the segmenter), then writer."""
        self._clear_pending_audio()
        sid = self._session_id
        if sid is None or (session_id is not None and session_id != sid):
            if send_ack and session_id is not None:
                self._send_json({"type": "stopped", "sessionId": session_id})
            return
        self._session_id = None
        recognizer, self._recognizer = self._recognizer, None
        writer, self._writer = self._writer, None

        if recognizer is not None:
            await recognizer.close()
        if writer is not None:
            await writer.close()
        logger.info("Session %s stopped", sid)
        if send_ack:
            self._send_json({"type": "stopped", "sessionId": sid})

    def _on_engine_error(self, session_id: str, exc: Exception) -> None:
        """Engine failure: report, then flush and tear down the session. No retry."""
        self._send_json({"type": "error", "sessionId": session_id, "message": f"Recognition failed: {exc}"})
        if self._session_id == session_id:
            self._teardown_task = asyncio.create_task(self._stop_session(session_id, send_ack=True))

    # --- incoming ---

    def _clear_pending_audio(self) -> None:
        if self._pending_audio:
            logger.info("Discarding %d queued chunks (%d bytes)", len(self._pending_audio), self._pending_bytes)
        self._pending_audio.clear()
        self._pending_bytes = 0

    def _handle_audio(self, session_id: str | None, data: bytes) -> None:
        if not data:
            return
        if self._ever_started and (self._recognizer is None or session_id != self._session_id):
            logger.warning("Chunk dropped for %s: no active session with that id", session_id)
            return
        if self._recognizer is None:
            if self._pending_bytes + len(data) > self._max_pending_bytes:
                logger.warning("Chunk dropped for %s: session not started and queue full", session_id)
                return
            self._pending_audio.append(data)
            self._pending_bytes += len(data)
            logger.warning("Chunk queued for %s (session not started yet)", session_id)
            return
        self._recognizer.send_audio(data)
        self._segmenter.record_audio_chunk(session_id)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Chunk for %s: %d bytes, level %.2f dB", session_id, len(data), audio_level_db(data))
        self._send_json({"type": "chunkReceived", "sessionId": session_id, "size": len(data)})

    async def _handle_text(self, raw: str) -> None:
        try:
            msg = ControlMessage.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Invalid control message: %s", e)
            self._send_json({"type": "error", "message": "Invalid control message"})
            return

        if msg.event == "startTranscription":
            logger.info("startTranscription for %s", msg.session_id)
            await self._start_session(msg.session_id)
        elif msg.event == "audioChunk":
            self._handle_audio(msg.session_id, msg.chunk_bytes())
        else:
            logger.info("stopTranscription for %s", msg.session_id)
            await self._stop_session(msg.session_id, send_ack=True)

    async def run(self) -> None:
        """Main loop: receive control/audio until disconnect; always flushes the open session."""
        self._sender_task = asyncio.create_task(self._sender())
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except (WebSocketDisconnect, RuntimeError):
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                if msg.get("bytes") is not None:
                    self._handle_audio(self._session_id, msg["bytes"])
                elif msg.get("text") is not None:
                    await self._handle_text(msg["text"])
        finally:
            if self._teardown_task is not None:
                await self._teardown_task
            await self._stop_session(send_ack=False)
            self._outbox.put_nowait(None)
            try:
                await asyncio.wait_for(self._sender_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._sender_task.cancel()
            self._closed = True
