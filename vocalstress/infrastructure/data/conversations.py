"""
Session data structures.
Handles question-by-question answer records, the session event log and the
final verdict.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any

from ...config import COLOR_CYAN
from ..audio.voice_id.profiles import AcousticSignature, ZERO_SIGNATURE


class TestResult(str, Enum):
    """Final session verdict."""
    __test__ = False  # keep pytest from collecting this enum

    TRUTHFUL = "TRUTHFUL"
    DECEPTIVE = "DECEPTIVE"
    INCONCLUSIVE = "INCONCLUSIVE"


@dataclass
class AnswerAnalysisResult:
    """Acoustic analysis of one answer."""
    rms: float = 0.0
    pitch: float = 0.0
    timbre: float = 0.0
    stress_level: float = 0.0  # float32 precision
    is_deceptive: bool = False
    emotional_state: Dict[str, float] = field(default_factory=dict)


@dataclass
class QuestionLog:
    """One answered question: the text, the raw answer audio and its analysis."""
    question_text: str
    answer_audio: bytes
    analysis_result: AnswerAnalysisResult


@dataclass
class EventLogItem:
    """A timestamped entry of the session event log."""
    event_type: str
    details: str
    color_html: str = COLOR_CYAN
    timestamp: datetime = field(default_factory=datetime.now)
    # In-memory link to the QuestionLog this entry describes; never persisted
    tag: Optional[Any] = field(default=None, compare=False, repr=False)


@dataclass
class SessionRecord:
    """Complete record of a single session."""
    session_date: datetime = field(default_factory=datetime.now)
    questioner_signature: AcousticSignature = ZERO_SIGNATURE
    subject_signature: AcousticSignature = ZERO_SIGNATURE
    question_logs: List[QuestionLog] = field(default_factory=list)
    event_log: List[EventLogItem] = field(default_factory=list)
    final_result: Optional[TestResult] = None
    result_summary: str = ""
    micro_expression_count: int = 0
    average_stress: float = 0.0

    def log_event(self, event_type: str, details: str, color_html: str = COLOR_CYAN,
                  tag: Optional[Any] = None) -> EventLogItem:
        """Append an entry to the event log and return it."""
        item = EventLogItem(event_type=event_type, details=details, color_html=color_html, tag=tag)
        self.event_log.append(item)
        return item
