"""
VocalStress: vocal-stress analysis and session-scoring engine.

Estimates a speaker's vocal stress from raw PCM audio, tells an enrolled
questioner and subject apart by acoustic signature, and scores a scripted
question/answer session into a final verdict.
"""

__version__ = "1.0.0"

# Main entry points
from .interview.orchestrator import SessionStateMachine
from .interview.models import SessionState, Question, TestResultData
from .infrastructure.data import SessionRecord, TestResult, save_session, load_session

__all__ = [
    "SessionStateMachine", "SessionState", "Question", "TestResultData",
    "SessionRecord", "TestResult", "save_session", "load_session"
]
