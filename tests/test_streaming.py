"""Tests for StreamingRecognizer: VAD-driven utterances, partial/final jobs, errors."""
from __future__ import annotations

import asyncio

from livecaption.asr.base import ASRResult
from livecaption.asr.streaming import StreamingRecognizer

from tests.conftest import SILENCE_FRAME, SPEECH_FRAME, FakeEngine, FakeVAD, settle

FRAME_SAMPLES = len(SPEECH_FRAME) // 2


def _recognizer(engine, snapshots, **kwargs):
    # 20 ms frames: partial every 5 frames, final after 5 silent frames
    params = dict(
        vad=FakeVAD(),
        partial_step_sec=0.1,
        min_utterance_sec=0.04,
        silence_commit_ms=100,
        max_utterance_sec=10.0,
        preroll_ms=0,
    )
    params.update(kwargs)
    return StreamingRecognizer(engine, on_snapshot=snapshots.append, **params)


class TestUtterances:
    def test_silence_commits_a_final_with_trailing_silence_trimmed(self):
        engine = FakeEngine([ASRResult("hola", language="es", language_probability=0.9)])
        snapshots = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots)
            await recognizer.start()
            recognizer.send_audio(SPEECH_FRAME * 10 + SILENCE_FRAME * 5)
            await recognizer.close()

        asyncio.run(scenario())
        # Both partials were superseded before the consumer ran
        assert engine.calls == [(10 * FRAME_SAMPLES, True)]
        assert len(snapshots) == 1
        snapshot = snapshots[0]
        assert snapshot.text == "hola"
        assert snapshot.is_final
        assert snapshot.language_hint == "es"
        assert snapshot.confidence == 0.9

    def test_partials_are_delivered_when_consumer_keeps_up(self):
        engine = FakeEngine([ASRResult("hola"), ASRResult("hola como")])
        snapshots = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots)
            await recognizer.start()
            recognizer.send_audio(SPEECH_FRAME * 5)
            await settle()
            recognizer.send_audio(SPEECH_FRAME * 5)
            await settle()
            partials = list(snapshots)
            await recognizer.close()
            return partials

        partials = asyncio.run(scenario())
        assert [(s.text, s.is_final) for s in partials] == [("hola", False), ("hola como", False)]
        assert engine.calls[-1] == (10 * FRAME_SAMPLES, True)
        assert snapshots[-1].is_final

    def test_close_finalizes_open_utterance(self):
        engine = FakeEngine([ASRResult("short")])
        snapshots = []
        closed = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots, on_close=lambda: closed.append(True))
            await recognizer.start()
            recognizer.send_audio(SPEECH_FRAME * 3)
            await recognizer.close()

        asyncio.run(scenario())
        assert engine.calls == [(3 * FRAME_SAMPLES, True)]
        assert closed == [True]

    def test_noise_blip_is_dropped(self):
        engine = FakeEngine([ASRResult("noise")])
        snapshots = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots, partial_step_sec=1.0)
            await recognizer.start()
            recognizer.send_audio(SPEECH_FRAME + SILENCE_FRAME * 5)
            await recognizer.close()

        asyncio.run(scenario())
        assert engine.calls == []
        assert snapshots == []

    def test_max_length_forces_a_final(self):
        engine = FakeEngine([ASRResult("long")])
        snapshots = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots, max_utterance_sec=0.2)
            await recognizer.start()
            recognizer.send_audio(SPEECH_FRAME * 10)
            await settle()
            return list(engine.calls)

        calls = asyncio.run(scenario())
        assert calls[-1] == (10 * FRAME_SAMPLES, True)

    def test_preroll_is_prepended_to_speech(self):
        engine = FakeEngine([ASRResult("hi")])
        snapshots = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots, preroll_ms=40)
            await recognizer.start()
            recognizer.send_audio(SILENCE_FRAME * 4 + SPEECH_FRAME * 3)
            await recognizer.close()

        asyncio.run(scenario())
        assert engine.calls == [(5 * FRAME_SAMPLES, True)]

    def test_partial_frames_are_buffered_across_sends(self):
        engine = FakeEngine([ASRResult("hi")])
        snapshots = []
        audio = SPEECH_FRAME * 3

        async def scenario():
            recognizer = _recognizer(engine, snapshots)
            await recognizer.start()
            recognizer.send_audio(audio[:1000])
            recognizer.send_audio(audio[1000:])
            await recognizer.close()

        asyncio.run(scenario())
        assert engine.calls == [(3 * FRAME_SAMPLES, True)]


class TestLifecycle:
    def test_audio_before_start_is_ignored(self):
        engine = FakeEngine([ASRResult("x")])
        snapshots = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots)
            recognizer.send_audio(SPEECH_FRAME * 10)
            await recognizer.start()
            await recognizer.close()

        asyncio.run(scenario())
        assert engine.calls == []

    def test_on_open_fires_on_start(self):
        opened = []

        async def scenario():
            recognizer = StreamingRecognizer(
                FakeEngine(), on_snapshot=lambda s: None, on_open=lambda: opened.append(True), vad=FakeVAD()
            )
            await recognizer.start()
            is_open = recognizer.is_open
            await recognizer.close()
            return is_open, recognizer.is_open

        assert asyncio.run(scenario()) == (True, False)
        assert opened == [True]

    def test_engine_error_stops_the_recognizer(self):
        engine = FakeEngine(error=RuntimeError("upstream down"))
        snapshots = []
        errors = []

        async def scenario():
            recognizer = _recognizer(engine, snapshots, on_error=errors.append)
            await recognizer.start()
            recognizer.send_audio(SPEECH_FRAME * 5)
            await settle()
            is_open = recognizer.is_open
            recognizer.send_audio(SPEECH_FRAME * 20)
            await recognizer.close(timeout=1.0)
            return is_open

        assert asyncio.run(scenario()) is False
        assert len(engine.calls) == 1
        assert [str(e) for e in errors] == ["upstream down"]
        assert snapshots == []
