"""
Data models for the session system.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List

import numpy as np

from ..infrastructure.data.conversations import TestResult


class ExpectedAnswer(str, Enum):
    YES = "yes"
    NO = "no"


class SessionState(str, Enum):
    """Session lifecycle; strictly forward within one session."""
    IDLE = "Idle"
    CALIBRATING_QUESTIONER = "CalibratingQuestioner"
    CALIBRATING_SUBJECT = "CalibratingSubject"
    IN_PROGRESS = "InProgress"
    FINISHED = "Finished"

    @property
    def is_calibrating(self) -> bool:
        return self in (SessionState.CALIBRATING_QUESTIONER, SessionState.CALIBRATING_SUBJECT)


@dataclass(frozen=True)
class Question:
    """A scripted question and the answer a truthful subject gives."""
    text: str
    is_key_question: bool
    expected_answer: ExpectedAnswer


@dataclass(frozen=True)
class TestResultData:
    """Verdict and summary produced when a session ends."""
    __test__ = False

    result: TestResult
    summary: str


@dataclass
class VocalAnalysisData:
    """Live data pushed to the presentation layer on every tick."""
    vocal_stress_level: float = 0.0
    latest_spectrum: Optional[np.ndarray] = None
    emotional_state: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class DataPoint:
    """One point of a display history."""
    value: float
    is_stressed: bool = False


def build_default_questions(today: Optional[datetime] = None) -> List[Question]:
    """The fixed seven-question script; question 2 names the current weekday."""
    weekday = (today or datetime.now()).strftime("%A")
    return [
        Question("Is your name recorded as John Smith?", False, ExpectedAnswer.YES),
        Question(f"Is today {weekday}?", False, ExpectedAnswer.YES),
        Question("Have you ever told a lie?", True, ExpectedAnswer.YES),
        Question("Regarding the missing file, were you involved?", True, ExpectedAnswer.NO),
        Question("Are you in Wilton, Maine?", False, ExpectedAnswer.YES),
        Question("Did you access the file without authorization?", True, ExpectedAnswer.NO),
        Question("Have you answered all questions truthfully?", True, ExpectedAnswer.YES),
    ]
