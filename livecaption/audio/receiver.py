"""
AudioReceiver: accepts raw PCM audio from WebSocket and yields frames.

- Expects PCM 16-bit mono 16kHz.
- Emits fixed-size frames (e.g. 20ms = 640 bytes) for VAD.
- Chunks from the client have arbitrary sizes; the remainder is kept for the next feed.
"""
from __future__ import annotations

import math

import numpy as np

from livecaption.config import get_settings


def audio_level_db(pcm_bytes: bytes) -> float:
    """Mean absolute level of PCM 16-bit audio in dBFS (silence ~ -80 dB)."""
    usable = len(pcm_bytes) - (len(pcm_bytes) % 2)
    if usable <= 0:
        return -80.0
    samples = np.frombuffer(pcm_bytes[:usable], dtype=np.int16).astype(np.float32)
    normalized = float(np.mean(np.abs(samples))) / 32768.0
    return 20 * math.log10(normalized + 0.0001)


class AudioReceiver:
    """
    Buffers incoming binary WebSocket messages into fixed-size PCM frames.
    Any remainder is kept for the next iteration.
    """

    def __init__(self, frame_bytes: int | None = None) -> None:
        settings = get_settings()
        self._frame_bytes = frame_bytes or settings.FRAME_BYTES
        self._buffer = bytearray()

    def feed(self, data: bytes) -> None:
        """Append raw PCM bytes. Call from WebSocket handler."""
        self._buffer.extend(data)

    def drain_frames(self) -> list[bytes]:
        """Drain all complete frames from the buffer; remainder stays in buffer."""
        out: list[bytes] = []
        while len(self._buffer) >= self._frame_bytes:
            out.append(bytes(self._buffer[: self._frame_bytes]))
            del self._buffer[: self._frame_bytes]
        return out
