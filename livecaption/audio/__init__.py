"""Audio pipeline: receive and frame PCM, VAD."""
from .receiver import AudioReceiver, audio_level_db
from .vad import VADProcessor

__all__ = [
    "AudioReceiver",
    "VADProcessor",
    "audio_level_db",
]
