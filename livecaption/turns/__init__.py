"""Turn segmentation: snapshots in, ordered caption turn events out."""
from .language import LanguageDetector, detect_language, normalize_tag
from .models import Session, Snapshot, TurnEvent, TurnKind
from .segmenter import CorrectionOverlay, TurnSegmenter

__all__ = [
    "CorrectionOverlay",
    "LanguageDetector",
    "Session",
    "Snapshot",
    "TurnEvent",
    "TurnKind",
    "TurnSegmenter",
    "detect_language",
    "normalize_tag",
]
