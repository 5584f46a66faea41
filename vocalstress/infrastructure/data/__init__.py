"""
Session records and archive persistence.
"""

from .conversations import (
    SessionRecord, QuestionLog, EventLogItem, AnswerAnalysisResult, TestResult
)
from .archive import (
    SessionArchive, SessionArchiveError, save_session, load_session,
    dumps_session, loads_session, default_archive_name
)

__all__ = [
    'SessionRecord',
    'QuestionLog',
    'EventLogItem',
    'AnswerAnalysisResult',
    'TestResult',
    'SessionArchive',
    'SessionArchiveError',
    'save_session',
    'load_session',
    'dumps_session',
    'loads_session',
    'default_archive_name'
]
