"""
FastAPI app: WebSocket endpoint for live caption turns; HTTP batch transcription.

Live: client sends startTranscription, then PCM 16-bit mono 16kHz audio, then
stopTranscription. Server sends one "partialTranscript" JSON message per caption turn event:
{ "type": "partialTranscript", "text", "language": "es"|"en", "sessionId",
  "isNewTurn", "isForcedClose"?, "isNewBlock"?, "isCorrection"? }

Run with:
    uvicorn livecaption.main:app
"""
from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from livecaption.asr.base import ASREngine
from livecaption.asr.cloudflare import CloudflareWhisperEngine
from livecaption.asr.local_whisper import LocalWhisperEngine
from livecaption.config import Settings, get_settings
from livecaption.gateway import CaptionGateway
from livecaption.schemas.transcribe import HealthResponse, TranscribeResponse
from livecaption.services.correction_service import create_correction_overlay
from livecaption.turns.segmenter import TurnSegmenter

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def configure_logging(settings: Settings) -> None:
    """Console logging at LOG_LEVEL, plus LOG_FILE when set. HTTP client internals are quieted."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=_LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_asr_engine(app: FastAPI) -> ASREngine:
    """Return ASR engine based on config. Local uses singleton model from app.state."""
    settings = get_settings()
    if settings.ASR_BACKEND == "cloudflare":
        return CloudflareWhisperEngine()
    model = getattr(app.state, "whisper_model", None)
    return LocalWhisperEngine(model=model)


def _load_whisper_model():
    """Load faster-whisper model once. Called at startup when ASR_BACKEND=local."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as err:
        raise ImportError(
            "faster-whisper is required for ASR_BACKEND=local. "
            "Install with: pip install 'livecaption[local]'"
        ) from err
    settings = get_settings()
    logger.info("Loading Whisper model %s (%s)", settings.LOCAL_WHISPER_MODEL, settings.LOCAL_WHISPER_DEVICE)
    return WhisperModel(
        settings.LOCAL_WHISPER_MODEL,
        device=settings.LOCAL_WHISPER_DEVICE,
        compute_type=settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    # Load Whisper model once at startup when using local backend (singleton)
    if settings.ASR_BACKEND == "local":
        app.state.whisper_model = _load_whisper_model()
    else:
        app.state.whisper_model = None
    app.state.segmenter = TurnSegmenter(correction=create_correction_overlay())
    logger.info("Caption service ready (ASR_BACKEND=%s)", settings.ASR_BACKEND)
    yield
    await app.state.segmenter.aclose()
    app.state.whisper_model = None


app = FastAPI(
    title="Live Caption Turns",
    description="Live transcript snapshots segmented into caption turns (es/en)",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.websocket("/ws/transcribe")
async def websocket_transcribe(websocket: WebSocket) -> None:
    """Live captions: JSON control messages + binary PCM in, caption turn events out."""
    await websocket.accept()
    logger.info("Client connected: %s", websocket.client)
    gateway = CaptionGateway(websocket, get_asr_engine(websocket.app), websocket.app.state.segmenter)
    try:
        await gateway.run()
    except WebSocketDisconnect:
        pass
    logger.info("Client disconnected: %s", websocket.client)


@app.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    segmenter: TurnSegmenter = request.app.state.segmenter
    return HealthResponse(status="ok", sessions=len(segmenter.session_ids()))


@app.post("/transcribe", response_model=TranscribeResponse)
async def transcribe(request: Request, file: UploadFile = File(...)) -> TranscribeResponse:
    """Batch transcription of a complete audio file. Not segmented into turns."""
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    logger.info("Batch: %s, size: %d bytes", file.filename, len(data))

    settings = get_settings()
    engine = get_asr_engine(request.app)
    try:
        result = await engine.transcribe_file(data, language=settings.ASR_LANGUAGE or None)
    except Exception as e:
        logger.exception("Batch transcription failed: %s", e)
        raise HTTPException(status_code=502, detail="Transcription failed")

    logger.info("Batch text: %d chars", len(result.text))
    return TranscribeResponse(text=result.text)
