"""Infrastructure components for the vocal stress engine.

This module contains low-level technical components that provide
foundational capabilities for the session system.
"""

# Audio infrastructure
from .audio import SpectralAnalyzer, AcousticSignature, ZERO_SIGNATURE, SpeakerIdentifier

# Session data and archives
from .data import (
    SessionRecord, QuestionLog, EventLogItem, AnswerAnalysisResult,
    save_session, load_session, SessionArchiveError
)

__all__ = [
    # Audio analysis
    "SpectralAnalyzer", "AcousticSignature", "ZERO_SIGNATURE", "SpeakerIdentifier",

    # Session data
    "SessionRecord", "QuestionLog", "EventLogItem", "AnswerAnalysisResult",
    "save_session", "load_session", "SessionArchiveError"
]
