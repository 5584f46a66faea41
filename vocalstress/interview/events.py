"""
Event-driven interface between the analysis core and the presentation layer.
"""
import logging
import threading
from abc import ABC
from typing import Dict, Any, List, Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of session events."""
    SESSION_STARTED = "session_started"
    STATE_CHANGED = "state_changed"
    CALIBRATION_COMPLETE = "calibration_complete"
    DATA_UPDATE = "data_update"
    QUESTION_ASKED = "question_asked"
    SPEAKER_IDENTIFIED = "speaker_identified"
    ANSWER_SCORED = "answer_scored"
    MICRO_EXPRESSION_DETECTED = "micro_expression_detected"
    SESSION_ENDED = "session_ended"
    SESSION_LOADED = "session_loaded"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class SessionEvent(ABC):
    """Base class for all session events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class SessionStartedEvent(SessionEvent):
    """Event fired when a new session begins."""
    def __init__(self, session_id: str, timestamp: float, question_count: int):
        super().__init__(
            event_type=EventType.SESSION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"question_count": question_count}
        )


@dataclass
class StateChangedEvent(SessionEvent):
    """Event fired on every state or phase transition, with a colour hint."""
    def __init__(self, session_id: str, timestamp: float, message: str, color: str, state: str):
        super().__init__(
            event_type=EventType.STATE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "message": message,
                "color": color,
                "state": state
            }
        )


@dataclass
class CalibrationCompleteEvent(SessionEvent):
    """Event fired when a speaker's voiceprint has been enrolled."""
    def __init__(self, session_id: str, timestamp: float, speaker_role: str, signature):
        super().__init__(
            event_type=EventType.CALIBRATION_COMPLETE,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "speaker_role": speaker_role,
                "signature": signature
            }
        )


@dataclass
class DataUpdateEvent(SessionEvent):
    """Event fired on each display tick with the latest live analysis."""
    def __init__(self, session_id: str, timestamp: float, stress_level: float,
                 latest_spectrum, emotional_state: Dict[str, float]):
        super().__init__(
            event_type=EventType.DATA_UPDATE,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "stress_level": stress_level,
                "latest_spectrum": latest_spectrum,
                "emotional_state": emotional_state
            }
        )


@dataclass
class QuestionAskedEvent(SessionEvent):
    """Event fired when the next scripted question is asked."""
    def __init__(self, session_id: str, timestamp: float, question_idx: int,
                 question: str, is_key_question: bool):
        super().__init__(
            event_type=EventType.QUESTION_ASKED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "question_idx": question_idx,
                "question": question,
                "is_key_question": is_key_question
            }
        )


@dataclass
class SpeakerIdentifiedEvent(SessionEvent):
    """Event fired when a speaker turn has been classified."""
    def __init__(self, session_id: str, timestamp: float, speaker_type: str, confidence: float):
        super().__init__(
            event_type=EventType.SPEAKER_IDENTIFIED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "speaker_type": speaker_type,
                "confidence": confidence
            }
        )


@dataclass
class AnswerScoredEvent(SessionEvent):
    """Event fired when a subject answer has been scored."""
    def __init__(self, session_id: str, timestamp: float, question: str,
                 response: str, stress_level: float, is_deceptive: bool):
        super().__init__(
            event_type=EventType.ANSWER_SCORED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "question": question,
                "response": response,
                "stress_level": stress_level,
                "is_deceptive": is_deceptive
            }
        )


@dataclass
class MicroExpressionDetectedEvent(SessionEvent):
    """Event fired when an abrupt pitch reversal is found in an answer."""
    def __init__(self, session_id: str, timestamp: float, description: str):
        super().__init__(
            event_type=EventType.MICRO_EXPRESSION_DETECTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"description": description}
        )


@dataclass
class SessionEndedEvent(SessionEvent):
    """Event fired when the verdict has been computed."""
    def __init__(self, session_id: str, timestamp: float, result: str, summary: str,
                 answer_count: int):
        super().__init__(
            event_type=EventType.SESSION_ENDED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "result": result,
                "summary": summary,
                "answer_count": answer_count
            }
        )


@dataclass
class SessionLoadedEvent(SessionEvent):
    """Event fired when an archived session is opened for review."""
    def __init__(self, session_id: str, timestamp: float, answer_count: int):
        super().__init__(
            event_type=EventType.SESSION_LOADED,
            session_id=session_id,
            timestamp=timestamp,
            data={"answer_count": answer_count}
        )


@dataclass
class ErrorOccurredEvent(SessionEvent):
    """Event fired when background analysis fails."""
    def __init__(self, session_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


EventHandler = Callable[[SessionEvent], None]


class SessionEventBus:
    """Event bus between the analysis core and its observers."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """
        Subscribe to all events.

        Args:
            handler: Function to call for any event
        """
        with self._lock:
            self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Unsubscribe from specific event type.

        Args:
            event_type: Type of event to stop listening for
            handler: Handler function to remove
        """
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: SessionEvent) -> None:
        """
        Emit an event to all subscribers.

        Handler exceptions are logged and never propagate into the core.

        Args:
            event: Event to emit
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        with self._lock:
            specific = list(self._handlers.get(event.event_type, []))
            global_handlers = list(self._global_handlers)

        for handler in specific:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        for handler in global_handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    # High-frequency events are logged at debug level only
    QUIET_EVENTS = {EventType.DATA_UPDATE}

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: SessionEvent) -> None:
        """Log event details."""
        level = logging.DEBUG if event.event_type in self.QUIET_EVENTS else logging.INFO
        if event.event_type == EventType.DATA_UPDATE:
            summary: Any = {"stress_level": event.data.get("stress_level")}
        else:
            summary = event.data
        self.logger.log(level, f"Event: {event.event_type.value} | Session: {event.session_id} | Data: {summary}")


class SessionMetrics:
    """Collects metrics from session events."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def handle_event(self, event: SessionEvent) -> None:
        """Update metrics based on event."""
        with self._lock:
            if event.event_type == EventType.SESSION_STARTED:
                self.sessions_started += 1
            elif event.event_type == EventType.SESSION_ENDED:
                self.sessions_completed += 1
            elif event.event_type == EventType.CALIBRATION_COMPLETE:
                self.calibrations_completed += 1
            elif event.event_type == EventType.QUESTION_ASKED:
                self.questions_asked += 1
            elif event.event_type == EventType.ANSWER_SCORED:
                self.answers_scored += 1
                if event.data.get("is_deceptive"):
                    self.deception_flags += 1
            elif event.event_type == EventType.MICRO_EXPRESSION_DETECTED:
                self.micro_expressions += 1
            elif event.event_type == EventType.ERROR_OCCURRED:
                self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        with self._lock:
            return {
                "sessions_started": self.sessions_started,
                "sessions_completed": self.sessions_completed,
                "calibrations_completed": self.calibrations_completed,
                "questions_asked": self.questions_asked,
                "answers_scored": self.answers_scored,
                "deception_flags": self.deception_flags,
                "micro_expressions": self.micro_expressions,
                "errors_occurred": self.errors_occurred
            }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        with self._lock:
            self.sessions_started = 0
            self.sessions_completed = 0
            self.calibrations_completed = 0
            self.questions_asked = 0
            self.answers_scored = 0
            self.deception_flags = 0
            self.micro_expressions = 0
            self.errors_occurred = 0
