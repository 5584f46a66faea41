"""Session engine components.

This module contains the session logic for vocal stress analysis: calibration,
adaptive baselining, answer scoring, micro-expression detection and the state
machine that sequences them.
"""

# Core state machine
from .orchestrator import SessionStateMachine, classify_verdict, build_summary

# Data models
from .models import (
    ExpectedAnswer, SessionState, Question, TestResultData,
    VocalAnalysisData, DataPoint, build_default_questions
)

# Analysis components
from .calibration import CalibrationController, CalibrationStep
from .baseline import AdaptiveBaselineTracker
from .analysis import DeceptionScorer, MicroExpressionDetector, stress_factor, is_verbal_mismatch
from .workers import AnalysisWorker

# Event system
from .events import (
    SessionEventBus, EventLogger, SessionMetrics,
    EventType, SessionEvent, SessionStartedEvent, StateChangedEvent,
    CalibrationCompleteEvent, DataUpdateEvent, QuestionAskedEvent,
    SpeakerIdentifiedEvent, AnswerScoredEvent, MicroExpressionDetectedEvent,
    SessionEndedEvent, SessionLoadedEvent, ErrorOccurredEvent
)

__all__ = [
    # State machine
    "SessionStateMachine", "classify_verdict", "build_summary",

    # Data models
    "ExpectedAnswer", "SessionState", "Question", "TestResultData",
    "VocalAnalysisData", "DataPoint", "build_default_questions",

    # Analysis
    "CalibrationController", "CalibrationStep", "AdaptiveBaselineTracker",
    "DeceptionScorer", "MicroExpressionDetector", "stress_factor",
    "is_verbal_mismatch", "AnalysisWorker",

    # Events
    "SessionEventBus", "EventLogger", "SessionMetrics",
    "EventType", "SessionEvent", "SessionStartedEvent", "StateChangedEvent",
    "CalibrationCompleteEvent", "DataUpdateEvent", "QuestionAskedEvent",
    "SpeakerIdentifiedEvent", "AnswerScoredEvent", "MicroExpressionDetectedEvent",
    "SessionEndedEvent", "SessionLoadedEvent", "ErrorOccurredEvent",
]
