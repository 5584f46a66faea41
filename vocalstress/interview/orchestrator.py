"""
Session state machine sequencing calibration, questioning, answer scoring
and the final verdict.
"""
import logging
import random
import threading
import time
from collections import deque
from concurrent.futures import Future
from typing import Optional, List, Dict, Any

import numpy as np

from .models import (
    SessionState, Question, TestResultData, VocalAnalysisData, DataPoint,
    build_default_questions
)
from .calibration import CalibrationController, CalibrationStep
from .baseline import AdaptiveBaselineTracker
from .analysis import DeceptionScorer, MicroExpressionDetector
from .workers import AnalysisWorker
from .events import (
    SessionEventBus, SessionEvent, EventLogger, SessionMetrics,
    SessionStartedEvent, StateChangedEvent, CalibrationCompleteEvent,
    DataUpdateEvent, QuestionAskedEvent, SpeakerIdentifiedEvent,
    AnswerScoredEvent, MicroExpressionDetectedEvent, SessionEndedEvent,
    SessionLoadedEvent, ErrorOccurredEvent
)
from ..infrastructure.audio.processing import SpectralAnalyzer
from ..infrastructure.audio.voice_id import SpeakerIdentifier, SpeakerIdentification, SpeakerType
from ..infrastructure.data.conversations import (
    SessionRecord, QuestionLog, AnswerAnalysisResult, TestResult
)
from ..utils import setup_logging
from ..config import (
    Config, STRESS_DISPLAY_FACTOR, PITCH_HISTORY_JITTER_HZ, TIMBRE_HISTORY_JITTER_HZ,
    COLOR_WHITE, COLOR_CYAN, COLOR_ORANGE, COLOR_GRAY, COLOR_YELLOW, COLOR_MAGENTA,
    COLOR_STRESS, COLOR_TRUTH, COLOR_FOREGROUND
)

logger = logging.getLogger("orchestrator")

_CALIBRATION_SPEAKERS = {
    SessionState.CALIBRATING_QUESTIONER: SpeakerType.QUESTIONER,
    SessionState.CALIBRATING_SUBJECT: SpeakerType.SUBJECT,
}

_RESULT_COLORS = {
    TestResult.TRUTHFUL: COLOR_TRUTH,
    TestResult.DECEPTIVE: COLOR_STRESS,
    TestResult.INCONCLUSIVE: COLOR_YELLOW,
}


def classify_verdict(spike_count: int, micro_expression_count: int, key_question_count: int) -> TestResult:
    """Final verdict from the session counters."""
    if spike_count > key_question_count // 2:
        return TestResult.DECEPTIVE
    if spike_count > 0 or micro_expression_count > key_question_count:
        return TestResult.INCONCLUSIVE
    return TestResult.TRUTHFUL


def build_summary(spike_count: int, key_question_count: int,
                  micro_expression_count: int, average_stress: float) -> str:
    return (f"Analysis complete.\n"
            f"{spike_count} stress events across {key_question_count} key questions.\n"
            f"{micro_expression_count} vocal micro-expressions detected.\n"
            f"Average subject stress: {average_stress:.2f} µt.")


class SessionStateMachine:
    """
    Drives one session at a time through
    Idle -> CalibratingQuestioner -> CalibratingSubject -> InProgress -> Finished.

    Audio is analyzed on a single background worker. Each queued job carries
    the session generation and state that were current when it was queued and
    is discarded if either has moved on by the time it runs. Observers receive
    everything through the event bus; the machine never references a UI.
    """

    def __init__(self,
                 config: Optional[Config] = None,
                 event_bus: Optional[SessionEventBus] = None,
                 analyzer: Optional[SpectralAnalyzer] = None,
                 rng: Optional[random.Random] = None,
                 questions: Optional[List[Question]] = None,
                 log_file: Optional[str] = None):

        self.config = config or Config()

        if log_file:
            setup_logging(log_file)

        # Initialize event system
        self.event_bus = event_bus or SessionEventBus()
        self.event_logger = EventLogger()
        self.metrics = SessionMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)

        self.rng = rng or random.Random()
        self.analyzer = analyzer or SpectralAnalyzer(self.config.sample_rate)
        self.questions: List[Question] = list(questions) if questions is not None else build_default_questions()
        self.key_question_count = sum(1 for q in self.questions if q.is_key_question)

        # Analysis components
        self.tracker = AdaptiveBaselineTracker(self.config.baseline_window)
        self.calibration = CalibrationController(self.analyzer, self.config.calibration_samples)
        self.identifier = SpeakerIdentifier(self.analyzer)
        self.detector = MicroExpressionDetector(self.analyzer, on_detect=self._on_micro_expression)
        self.scorer = DeceptionScorer(
            self.analyzer, self.tracker, self.detector,
            stress_threshold=self.config.stress_threshold, rng=self.rng
        )
        self.worker = AnalysisWorker(max_queue=self.config.worker_queue_size, on_error=self._on_worker_error)
        self.worker.start()

        # Display history rings
        self._stress_history: deque = deque(maxlen=self.config.history_points)
        self._pitch_history: deque = deque(maxlen=self.config.history_points)
        self._timbre_history: deque = deque(maxlen=self.config.history_points)

        self._lock = threading.RLock()
        self._answers_settled = threading.Condition(self._lock)
        self._pending_answers = 0
        self._outbox: List[SessionEvent] = []
        self._state = SessionState.IDLE
        self._session: Optional[SessionRecord] = None
        self._session_id = "unknown"
        self._generation = 0
        self._accepting = False
        self._question_index = -1
        self._last_scored_index = -1
        self._current_data = VocalAnalysisData()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def current_state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_calibrating(self) -> bool:
        return self.current_state.is_calibrating

    @property
    def current_session(self) -> Optional[SessionRecord]:
        with self._lock:
            return self._session

    @property
    def current_data(self) -> VocalAnalysisData:
        with self._lock:
            return self._current_data

    @property
    def question_index(self) -> int:
        with self._lock:
            return self._question_index

    @property
    def stress_threshold(self) -> float:
        return self.config.stress_threshold

    @property
    def last_identification(self) -> SpeakerIdentification:
        return self.identifier.last_identification

    @property
    def peak_stress_level(self) -> float:
        return self.scorer.peak_stress

    @property
    def spike_count(self) -> int:
        return self.scorer.spike_count

    @property
    def micro_expression_count(self) -> int:
        return self.detector.count

    @property
    def stress_history(self) -> List[DataPoint]:
        with self._lock:
            return list(self._stress_history)

    @property
    def pitch_history(self) -> List[DataPoint]:
        with self._lock:
            return list(self._pitch_history)

    @property
    def timbre_history(self) -> List[DataPoint]:
        with self._lock:
            return list(self._timbre_history)

    def is_test_finished(self) -> bool:
        with self._lock:
            return self._question_index >= len(self.questions) - 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current session metrics."""
        return self.metrics.get_metrics()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_session(self) -> SessionRecord:
        """Reset all live state and begin calibrating the questioner."""
        with self._lock:
            self._generation += 1
            self._reset_live_state()
            self._session = SessionRecord()
            self._session_id = self._session.session_date.strftime("%Y%m%d_%H%M%S")
            self._session.log_event("Session Start", "New session initiated.", COLOR_WHITE)
            self._state = SessionState.CALIBRATING_QUESTIONER
            self._accepting = True
            self._queue_event(SessionStartedEvent(self._session_id, time.time(), len(self.questions)))
            self._queue_state_change("QUESTIONER, please state your name and role for voice calibration.",
                                     COLOR_ORANGE)
            session = self._session

        logger.info(f"Session {self._session_id} started ({len(self.questions)} questions, "
                    f"{self.key_question_count} key)")
        self._flush_events()
        return session

    def submit_audio(self, buffer: bytes) -> Optional[Future]:
        """
        Hand a captured buffer to the background worker without blocking.

        While calibrating the buffer is a calibration sample; during the
        interview it refreshes the live analysis. Either way it is dropped,
        and not counted, when the worker is saturated.

        Returns:
            Future of the job, or None when the buffer is not accepted
        """
        with self._lock:
            generation, state, accepting = self._generation, self._state, self._accepting

        if not accepting:
            logger.debug(f"Audio ignored in state {state.value}")
            return None
        if state.is_calibrating:
            return self.worker.submit(self._calibrate_job, generation, state, buffer, drop_if_full=True)
        if state == SessionState.IN_PROGRESS:
            return self.worker.submit(self._live_audio_job, generation, state, buffer, drop_if_full=True)
        return None

    def calibrate(self, buffer: bytes) -> Optional[CalibrationStep]:
        """Submit one calibration sample on the calling thread."""
        with self._lock:
            generation, state = self._generation, self._state
        if not state.is_calibrating:
            logger.debug(f"Calibration sample ignored in state {state.value}")
            return None
        return self._calibrate_job(generation, state, buffer)

    def process_live_audio(self, buffer: bytes) -> Optional[VocalAnalysisData]:
        """Refresh the live analysis from a buffer on the calling thread."""
        with self._lock:
            generation, state = self._generation, self._state
        return self._live_audio_job(generation, state, buffer)

    def update(self) -> Optional[VocalAnalysisData]:
        """
        Display tick: extend the history rings and publish the live data.
        No-op while idle or finished.
        """
        with self._lock:
            if self._state in (SessionState.IDLE, SessionState.FINISHED) or self._session is None:
                return None
            baseline = self.tracker.current()
            peak = self.scorer.peak_stress
            self._stress_history.append(DataPoint(
                peak, peak > self.config.stress_threshold * STRESS_DISPLAY_FACTOR
            ))
            self._pitch_history.append(DataPoint(
                baseline.fundamental_hz + (self.rng.random() - 0.5) * PITCH_HISTORY_JITTER_HZ
            ))
            self._timbre_history.append(DataPoint(
                baseline.spectral_centroid_hz + (self.rng.random() - 0.5) * TIMBRE_HISTORY_JITTER_HZ
            ))
            data = self._current_data
            self._queue_event(DataUpdateEvent(
                self._session_id, time.time(), data.vocal_stress_level,
                data.latest_spectrum, dict(data.emotional_state)
            ))

        self._flush_events()
        return data

    def ask_next_question(self) -> Optional[str]:
        """
        Advance to the next question once every queued answer has been scored.

        Returns:
            The question text, or None when the questions are exhausted or the
            interview is not in progress
        """
        with self._lock:
            if self._state != SessionState.IN_PROGRESS:
                logger.debug("ask_next_question ignored: interview not in progress")
                return None
            self._await_pending_answers()
            if self._state != SessionState.IN_PROGRESS:
                return None
            self._question_index += 1
            self.scorer.reset_peak()
            if self._question_index >= len(self.questions):
                logger.info("All questions have been asked")
                return None
            question = self.questions[self._question_index]
            self._session.log_event("Question", question.text, COLOR_GRAY)
            self._queue_event(QuestionAskedEvent(
                self._session_id, time.time(), self._question_index,
                question.text, question.is_key_question
            ))
            logger.info(f"Question {self._question_index + 1}/{len(self.questions)}: {question.text}")

        self._flush_events()
        return question.text

    def handle_response(self, verbal_response: str, buffer: bytes) -> Optional[Future]:
        """
        Queue a recognized speaker turn: identify who spoke and score the
        answer when it came from the subject.

        Returns:
            Future resolving to the AnswerAnalysisResult (None for a
            questioner turn), or None when no turn is expected
        """
        with self._lock:
            if self._state != SessionState.IN_PROGRESS or not self._accepting:
                logger.debug(f"Response ignored in state {self._state.value}")
                return None
            job = (self._generation, self._state, self._question_index)
            self._pending_answers += 1
        return self._enqueue_answer(self._response_job, *job, verbal_response, buffer)

    def submit_answer(self, verbal_response: str, buffer: bytes) -> Optional[Future]:
        """Queue a subject answer for scoring against the current question."""
        with self._lock:
            if not self._accepting:
                return None
            job = (self._generation, self._state, self._question_index)
            self._pending_answers += 1
        return self._enqueue_answer(self._score_job, *job, verbal_response, buffer)

    def process_answer(self, verbal_response: str, buffer: bytes) -> Optional[AnswerAnalysisResult]:
        """Score a subject answer on the calling thread."""
        with self._lock:
            if not self._accepting:
                return None
            job = (self._generation, self._state, self._question_index)
        return self._score_job(*job, verbal_response, buffer)

    def end_session(self) -> Optional[TestResultData]:
        """
        Stop accepting audio, wait for queued analysis, then compute the
        verdict and seal the session record.
        """
        with self._lock:
            if self._session is None or self._state in (SessionState.IDLE, SessionState.FINISHED):
                logger.debug(f"end_session ignored in state {self._state.value}")
                return None
            self._accepting = False

        self.worker.wait_idle()

        with self._lock:
            self._await_pending_answers()
            self._state = SessionState.FINISHED
            spikes = self.scorer.spike_count
            micro = self.detector.count
            result = classify_verdict(spikes, micro, self.key_question_count)

            session = self._session
            stresses = [log.analysis_result.stress_level for log in session.question_logs]
            average_stress = float(np.mean(stresses)) if stresses else 0.0
            summary = build_summary(spikes, self.key_question_count, micro, average_stress)

            session.average_stress = average_stress
            session.micro_expression_count = micro
            session.final_result = result
            session.result_summary = summary

            color = _RESULT_COLORS[result]
            session.log_event("Session End", f"Final Analysis: {result.value}", color)
            self._queue_state_change(f"Session finished: {result.value}", color)
            self._queue_event(SessionEndedEvent(
                self._session_id, time.time(), result.value, summary, len(session.question_logs)
            ))

        logger.info(f"Session {self._session_id} ended: {result.value} "
                    f"(spikes={spikes}, micro={micro}, avg stress={average_stress:.2f})")
        self._flush_events()
        return TestResultData(result, summary)

    def load_session(self, record: SessionRecord) -> None:
        """Adopt an archived record read-only (review mode)."""
        if not isinstance(record, SessionRecord):
            raise TypeError(f"Expected SessionRecord, got {type(record).__name__}")

        with self._lock:
            self._generation += 1
            self._reset_live_state()
            self._session = record
            self._session_id = record.session_date.strftime("%Y%m%d_%H%M%S")
            self._state = SessionState.FINISHED
            self._accepting = False
            self._queue_event(SessionLoadedEvent(self._session_id, time.time(), len(record.question_logs)))
            self._queue_state_change("Review mode: archived session loaded.", COLOR_CYAN)

        logger.info(f"Loaded session {self._session_id} for review")
        self._flush_events()

    def load_question_data_for_review(self, log: QuestionLog) -> None:
        """Fill the history rings with a synthetic trace of one answer."""
        result = log.analysis_result
        points = self.config.history_points
        with self._lock:
            self._stress_history.clear()
            self._pitch_history.clear()
            self._timbre_history.clear()
            for i in range(points):
                progress = i / points
                self._stress_history.append(DataPoint(result.stress_level * progress, result.is_deceptive))
                self._pitch_history.append(DataPoint(result.pitch))
                self._timbre_history.append(DataPoint(result.timbre))

    def shutdown(self) -> None:
        """Stop the background worker."""
        with self._lock:
            self._accepting = False
        self.worker.stop()

    # ------------------------------------------------------------------
    # Worker jobs
    # ------------------------------------------------------------------

    def _calibrate_job(self, generation: int, state: SessionState, buffer: bytes) -> Optional[CalibrationStep]:
        with self._lock:
            if not self._is_current(generation, state):
                logger.debug("Discarding stale calibration sample")
                return None

            speaker = _CALIBRATION_SPEAKERS[state]
            step = self.calibration.submit(buffer, speaker)
            if step is None:
                return None

            self._queue_state_change(f"Calibrating... {step.percent}%", COLOR_ORANGE)
            if step.completed:
                self._finish_calibration(step)

        self._flush_events()
        return step

    def _finish_calibration(self, step: CalibrationStep) -> None:
        signature = step.signature
        session = self._session
        if step.speaker == SpeakerType.QUESTIONER:
            session.questioner_signature = signature
            session.log_event("Calibration", "Questioner calibration complete.", COLOR_ORANGE)
            self._state = SessionState.CALIBRATING_SUBJECT
            self._queue_event(CalibrationCompleteEvent(self._session_id, time.time(), step.speaker.value, signature))
            self._queue_state_change("SUBJECT, please state your name for voice calibration.", COLOR_CYAN)
        else:
            session.subject_signature = signature
            self.tracker.seed(signature)
            session.log_event("Calibration", "All calibrations complete.", COLOR_TRUTH)
            self._state = SessionState.IN_PROGRESS
            self._queue_event(CalibrationCompleteEvent(self._session_id, time.time(), step.speaker.value, signature))
            self._queue_state_change("Calibration complete. Press 'Next Question' to proceed.", COLOR_TRUTH)

    def _live_audio_job(self, generation: int, state: SessionState, buffer: bytes) -> Optional[VocalAnalysisData]:
        if state != SessionState.IN_PROGRESS:
            return None
        spectrum = self.analyzer.spectrum(buffer)
        analysis = self.analyzer.analyze(buffer)
        magnitudes = np.abs(spectrum[:len(spectrum) // 2]) if spectrum is not None else None

        with self._lock:
            if not self._is_current(generation, state):
                return None
            self._current_data = VocalAnalysisData(
                vocal_stress_level=self.scorer.live_stress_level(analysis),
                latest_spectrum=magnitudes,
                emotional_state=self.scorer.emotional_state(analysis),
            )
            return self._current_data

    def _response_job(self, generation: int, state: SessionState, question_index: int,
                      verbal_response: str, buffer: bytes) -> Optional[AnswerAnalysisResult]:
        with self._lock:
            if not self._is_current(generation, state):
                return None
            questioner = self._session.questioner_signature
            subject = self._session.subject_signature

        identification = self.identifier.identify(buffer, questioner, subject)

        with self._lock:
            if not self._is_current(generation, state):
                return None
            self._session.log_event("Voice ID", f"Speaker identified as {identification.type.value}")
            self._queue_event(SpeakerIdentifiedEvent(
                self._session_id, time.time(), identification.type.value, identification.confidence
            ))
        self._flush_events()

        if identification.type != SpeakerType.SUBJECT:
            logger.info("Questioner detected, awaiting subject response")
            return None
        return self._score_job(generation, state, question_index, verbal_response, buffer)

    def _score_job(self, generation: int, state: SessionState, question_index: int,
                   verbal_response: str, buffer: bytes) -> Optional[AnswerAnalysisResult]:
        with self._lock:
            if not self._is_current(generation, state):
                logger.debug("Discarding stale answer")
                return None
            if (state != SessionState.IN_PROGRESS or not 0 <= question_index < len(self.questions)
                    or not self._session.subject_signature.is_calibrated):
                logger.debug("Answer received with no active question")
                return AnswerAnalysisResult()
            if question_index <= self._last_scored_index:
                logger.debug(f"Question {question_index + 1} already answered")
                return None

            question = self.questions[question_index]
            result = self.scorer.score(question, verbal_response, buffer)
            self._last_scored_index = question_index

            log = QuestionLog(question.text, bytes(buffer), result)
            self._session.question_logs.append(log)
            stressed = result.stress_level > self.config.stress_threshold * STRESS_DISPLAY_FACTOR
            self._session.log_event(
                "Subject Answer",
                f"'{(verbal_response or '').upper()}' | Peak Stress: {result.stress_level:.2f}",
                COLOR_STRESS if stressed else COLOR_FOREGROUND,
                tag=log
            )
            self._queue_event(AnswerScoredEvent(
                self._session_id, time.time(), question.text, verbal_response or "",
                result.stress_level, result.is_deceptive
            ))

        self._flush_events()
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_current(self, generation: int, state: SessionState) -> bool:
        return generation == self._generation and state == self._state

    def _enqueue_answer(self, job, *args) -> Future:
        """Queue an answer job already counted in ``_pending_answers``."""
        try:
            return self.worker.submit(self._run_answer_job, job, *args)
        except RuntimeError:
            self._answer_settled()
            raise

    def _run_answer_job(self, job, *args) -> Optional[AnswerAnalysisResult]:
        try:
            return job(*args)
        finally:
            self._answer_settled()

    def _answer_settled(self) -> None:
        with self._lock:
            self._pending_answers -= 1
            self._answers_settled.notify_all()

    def _await_pending_answers(self) -> None:
        """Block until every accepted answer has been scored. Caller holds the lock."""
        if self.worker.is_worker_thread():
            return
        while self._pending_answers > 0:
            self._answers_settled.wait()

    def _reset_live_state(self) -> None:
        self._question_index = -1
        self._last_scored_index = -1
        self.scorer.reset()
        self.detector.reset()
        self.calibration.reset()
        self.tracker.clear()
        self.identifier.reset()
        self._stress_history.clear()
        self._pitch_history.clear()
        self._timbre_history.clear()
        self._current_data = VocalAnalysisData()

    def _on_micro_expression(self, description: str) -> None:
        with self._lock:
            if self._session is not None:
                self._session.log_event("Micro-Expression", description, COLOR_MAGENTA)
            self._queue_event(MicroExpressionDetectedEvent(self._session_id, time.time(), description))

    def _on_worker_error(self, error: BaseException, component: str) -> None:
        self.event_bus.emit(ErrorOccurredEvent(
            self._session_id, time.time(), type(error).__name__, str(error), component
        ))

    def _queue_state_change(self, message: str, color: str) -> None:
        self._queue_event(StateChangedEvent(self._session_id, time.time(), message, color, self._state.value))

    def _queue_event(self, event: SessionEvent) -> None:
        with self._lock:
            self._outbox.append(event)

    def _flush_events(self) -> None:
        """Emit queued events outside the machine lock, in order."""
        while True:
            with self._lock:
                if not self._outbox:
                    return
                pending: List[Any] = self._outbox
                self._outbox = []
            for event in pending:
                self.event_bus.emit(event)
