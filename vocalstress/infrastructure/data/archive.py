"""
Session archive (.vsa) persistence.

A session is stored as one JSON document validated with pydantic. Answer audio
is embedded as base64 bytes; the in-memory ``tag`` of event log entries is not
stored.
"""
import os
import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..audio.voice_id.profiles import AcousticSignature
from .conversations import (
    SessionRecord, QuestionLog, EventLogItem, AnswerAnalysisResult, TestResult
)

logger = logging.getLogger("session_archive")

ARCHIVE_EXTENSION = ".vsa"
ARCHIVE_FORMAT_VERSION = 1


class SessionArchiveError(ValueError):
    """Raised when an archive cannot be written, read or parsed."""


class SignatureModel(BaseModel):
    rms: float = 0.0
    fundamental_hz: float = 0.0
    spectral_centroid_hz: float = 0.0


class AnalysisModel(BaseModel):
    rms: float = 0.0
    pitch: float = 0.0
    timbre: float = 0.0
    stress_level: float = 0.0
    is_deceptive: bool = False
    emotional_state: Dict[str, float] = Field(default_factory=dict)


class QuestionLogModel(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    question_text: str
    answer_audio: bytes = b""
    analysis_result: AnalysisModel = Field(default_factory=AnalysisModel)


class EventLogModel(BaseModel):
    timestamp: datetime
    event_type: str
    details: str = ""
    color_html: str = ""


class SessionArchive(BaseModel):
    """On-disk representation of a SessionRecord."""
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    format_version: int = ARCHIVE_FORMAT_VERSION
    session_date: datetime
    questioner_signature: SignatureModel = Field(default_factory=SignatureModel)
    subject_signature: SignatureModel = Field(default_factory=SignatureModel)
    question_logs: List[QuestionLogModel] = Field(default_factory=list)
    event_log: List[EventLogModel] = Field(default_factory=list)
    final_result: Optional[TestResult] = None
    result_summary: str = ""
    micro_expression_count: int = 0
    average_stress: float = 0.0

    @classmethod
    def from_record(cls, record: SessionRecord) -> 'SessionArchive':
        return cls(
            session_date=record.session_date,
            questioner_signature=SignatureModel(**record.questioner_signature.to_dict()),
            subject_signature=SignatureModel(**record.subject_signature.to_dict()),
            question_logs=[
                QuestionLogModel(
                    question_text=log.question_text,
                    answer_audio=bytes(log.answer_audio or b""),
                    analysis_result=AnalysisModel(
                        rms=log.analysis_result.rms,
                        pitch=log.analysis_result.pitch,
                        timbre=log.analysis_result.timbre,
                        stress_level=log.analysis_result.stress_level,
                        is_deceptive=log.analysis_result.is_deceptive,
                        emotional_state=dict(log.analysis_result.emotional_state),
                    ),
                )
                for log in record.question_logs
            ],
            event_log=[
                EventLogModel(
                    timestamp=item.timestamp,
                    event_type=item.event_type,
                    details=item.details,
                    color_html=item.color_html,
                )
                for item in record.event_log
            ],
            final_result=record.final_result,
            result_summary=record.result_summary,
            micro_expression_count=record.micro_expression_count,
            average_stress=record.average_stress,
        )

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            session_date=self.session_date,
            questioner_signature=AcousticSignature(**self.questioner_signature.model_dump()),
            subject_signature=AcousticSignature(**self.subject_signature.model_dump()),
            question_logs=[
                QuestionLog(
                    question_text=log.question_text,
                    answer_audio=log.answer_audio,
                    analysis_result=AnswerAnalysisResult(**log.analysis_result.model_dump()),
                )
                for log in self.question_logs
            ],
            event_log=[
                EventLogItem(
                    event_type=item.event_type,
                    details=item.details,
                    color_html=item.color_html,
                    timestamp=item.timestamp,
                )
                for item in self.event_log
            ],
            final_result=self.final_result,
            result_summary=self.result_summary,
            micro_expression_count=self.micro_expression_count,
            average_stress=self.average_stress,
        )


def dumps_session(record: SessionRecord) -> str:
    """Serialize a session record to archive JSON."""
    return SessionArchive.from_record(record).model_dump_json(indent=2)


def loads_session(text: str) -> SessionRecord:
    """
    Parse archive JSON into a fully built SessionRecord.

    Raises:
        SessionArchiveError: If the document is malformed
    """
    try:
        archive = SessionArchive.model_validate_json(text)
    except ValidationError as e:
        raise SessionArchiveError(f"Malformed session archive: {e}") from e
    return archive.to_record()


def default_archive_name(when: Optional[datetime] = None) -> str:
    """Archive file name in the Session_YYYYMMDD_HHMM.vsa form."""
    return f"Session_{(when or datetime.now()):%Y%m%d_%H%M}{ARCHIVE_EXTENSION}"


def save_session(record: SessionRecord, path: str) -> str:
    """
    Write a session archive.

    Args:
        record: Session to persist
        path: Target file, or an existing directory to place a default-named file in

    Returns:
        Path of the written archive

    Raises:
        SessionArchiveError: If the file cannot be written
    """
    if os.path.isdir(path):
        path = os.path.join(path, default_archive_name(record.session_date))

    payload = dumps_session(record)
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(payload)
    except OSError as e:
        raise SessionArchiveError(f"Failed to save session to {path}: {e}") from e

    logger.info(f"Saved session archive: {path} ({len(record.question_logs)} answers)")
    return path


def load_session(path: str) -> SessionRecord:
    """
    Read a session archive.

    Raises:
        SessionArchiveError: If the file cannot be read or parsed
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
    except OSError as e:
        raise SessionArchiveError(f"Failed to load session from {path}: {e}") from e

    record = loads_session(text)
    logger.info(f"Loaded session archive: {path} ({len(record.question_logs)} answers)")
    return record
