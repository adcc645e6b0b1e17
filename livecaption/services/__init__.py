"""Application services (LLM correction overlay for finalized turns)."""
from livecaption.services.correction_service import CloudflareCorrectionOverlay, create_correction_overlay

__all__ = ["CloudflareCorrectionOverlay", "create_correction_overlay"]
