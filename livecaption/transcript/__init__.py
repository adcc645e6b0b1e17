"""Transcript persistence: finalized caption turns per session."""
from .writer import NoOpTranscriptWriter, TranscriptWriter, TranscriptWriterBase, create_transcript_writer

__all__ = ["NoOpTranscriptWriter", "TranscriptWriter", "TranscriptWriterBase", "create_transcript_writer"]
