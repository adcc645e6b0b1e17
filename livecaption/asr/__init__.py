"""ASR: swappable Whisper-compatible engines and the streaming snapshot adapter."""
from .base import ASREngine, ASRResult
from .local_whisper import LocalWhisperEngine, pcm_bytes_to_float32
from .cloudflare import CloudflareWhisperEngine
from .streaming import StreamingRecognizer

__all__ = [
    "ASREngine",
    "ASRResult",
    "LocalWhisperEngine",
    "CloudflareWhisperEngine",
    "StreamingRecognizer",
    "pcm_bytes_to_float32",
]
