"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 1

    # Frame: 20ms @ 16kHz = 320 samples = 640 bytes
    FRAME_MS: int = 20
    FRAME_BYTES: int = 640  # 320 * 2
    VAD_AGGRESSIVENESS: int = 2  # webrtcvad 0-3
    VAD_MIN_LEVEL_DB: float = -60.0  # quieter frames are silence before webrtcvad runs

    # Streaming recognizer: utterance audio is re-transcribed every step (partial)
    # and committed as final after trailing silence.
    STT_PARTIAL_STEP_SECONDS: float = 0.8
    STT_MIN_UTTERANCE_SECONDS: float = 0.4  # do not transcribe less than this (prevent hallucination)
    SILENCE_COMMIT_MS: int = 1500  # kept below FORCE_CLOSE_DELAY_SECONDS so the recognizer finalizes first
    STT_MAX_UTTERANCE_SECONDS: float = 20.0  # whisper window is 30s; commit before that
    STT_PREROLL_MS: int = 200  # silence kept in front of speech onset

    # ASR backend: "local" | "cloudflare"
    ASR_BACKEND: Literal["local", "cloudflare"] = "local"
    # Language passed to the batch path; streaming auto-detects
    ASR_LANGUAGE: str = "es"

    # Cloudflare Workers AI: ASR (when ASR_BACKEND=cloudflare) and correction overlay (LLM)
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    CLOUDFLARE_ASR_MODEL: str = "@cf/openai/whisper-large-v3-turbo"

    # Local Whisper (when ASR_BACKEND=local), model loaded once at startup
    LOCAL_WHISPER_MODEL: str = "small"  # base | small | medium | large-v3 (multilingual only)
    LOCAL_WHISPER_DEVICE: Literal["cpu", "cuda"] = "cpu"
    LOCAL_WHISPER_COMPUTE_TYPE: Literal["int8", "float16"] = "int8"
    # Partial (faster): lower beam. Final (stable): higher beam.
    LOCAL_WHISPER_BEAM_SIZE_PARTIAL: int = 1
    LOCAL_WHISPER_BEAM_SIZE_FINAL: int = 5

    # Turn segmentation
    FORCE_CLOSE_DELAY_SECONDS: float = 2.5
    LANGUAGE_HINT_MIN_CONFIDENCE: float = 0.7  # engine hint below this falls back to the heuristic
    LANGUAGE_RATIO_THRESHOLD: float = 0.18
    # Implicit turn boundary when a short open utterance is replaced by a much longer, unrelated one
    TURN_DRASTIC_CHANGE_ENABLED: bool = True
    TURN_DRASTIC_MAX_PRIOR_WORDS: int = 3
    TURN_DRASTIC_LENGTH_RATIO: float = 2.0

    # Correction overlay: Cloudflare Workers AI polishes each finalized turn (fire-and-forget)
    CORRECTION_ENABLED: bool = False
    CORRECTION_CF_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"
    CORRECTION_MAX_TOKENS: int = 256
    CORRECTION_TIMEOUT_SECONDS: float = 15.0

    # Session transcript storage: one .txt per session, append-only (finalized turns only).
    TRANSCRIPT_SAVE_ENABLED: bool = True
    TRANSCRIPT_DIR: str = "./transcripts"
    TRANSCRIPT_ADD_TIMESTAMPS: bool = False  # prefix each line with [MM:SS.ss]

    # HTTP: allowed browser origins, comma-separated
    CORS_ORIGINS: str = (
        "http://localhost:4200,https://localhost:4200,https://getintercall.vercel.app"
    )

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also write to file (empty = console only).
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


def get_settings() -> Settings:
    return Settings()
