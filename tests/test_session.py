"""
Session state machine tests: lifecycle, questioning, answer scoring, verdict,
review mode and the ordering of background analysis.
"""

import threading
import time

import numpy as np
import pytest

from vocalstress.infrastructure.audio.voice_id import AcousticSignature, SpeakerType
from vocalstress.infrastructure.data import SessionRecord, AnswerAnalysisResult, QuestionLog, TestResult
from vocalstress.config import Config
from vocalstress.interview import (
    SessionStateMachine, SessionState, EventType, classify_verdict, build_summary, build_default_questions
)
from vocalstress.interview.testing import (
    StubAnalyzer, FixedRandom, chunked_tone_pcm, create_test_questions
)

from tests.conftest import VOICE, QUESTIONER_SIG, SUBJECT_SIG

FUTURE_TIMEOUT = 5.0


def answer_all(machine, loud_keys=()):
    """Ask every question and answer it truthfully; ``loud_keys`` are shouted."""
    for idx, question in enumerate(machine.questions):
        assert machine.ask_next_question() == question.text
        if idx in loud_keys:
            machine.analyzer.queue(AcousticSignature(0.2, 120.0, 1500.0))
        machine.process_answer(question.expected_answer.value, VOICE)


class TestVerdict:

    @pytest.mark.parametrize("spikes,micro,expected", [
        (0, 0, TestResult.TRUTHFUL),
        (0, 4, TestResult.TRUTHFUL),
        (0, 5, TestResult.INCONCLUSIVE),
        (1, 0, TestResult.INCONCLUSIVE),
        (2, 0, TestResult.INCONCLUSIVE),
        (3, 0, TestResult.DECEPTIVE),
        (4, 9, TestResult.DECEPTIVE),
    ])
    def test_four_key_questions(self, spikes, micro, expected):
        assert classify_verdict(spikes, micro, 4) == expected

    def test_summary_text(self):
        assert build_summary(1, 4, 2, 3.456) == (
            "Analysis complete.\n"
            "1 stress events across 4 key questions.\n"
            "2 vocal micro-expressions detected.\n"
            "Average subject stress: 3.46 µt."
        )


class TestDefaultQuestions:

    def test_script(self):
        from datetime import datetime
        questions = build_default_questions(datetime(2024, 1, 1))
        assert len(questions) == 7
        assert questions[1].text == "Is today Monday?"
        assert [i for i, q in enumerate(questions) if q.is_key_question] == [2, 3, 5, 6]


class TestLifecycle:

    def test_starts_idle(self, machine):
        assert machine.current_state == SessionState.IDLE
        assert machine.current_session is None
        assert machine.question_index == -1

    def test_start_session(self, machine, recorder):
        record = machine.start_session()

        assert machine.current_state == SessionState.CALIBRATING_QUESTIONER
        assert machine.current_session is record
        assert record.event_log[0].event_type == "Session Start"
        assert record.event_log[0].details == "New session initiated."
        assert recorder.data(EventType.SESSION_STARTED) == [{"question_count": 7}]
        changed = recorder.data(EventType.STATE_CHANGED)[0]
        assert changed["color"] == "#FFA500"

    def test_ask_outside_interview_is_noop(self, machine):
        assert machine.ask_next_question() is None
        machine.start_session()
        assert machine.ask_next_question() is None
        assert machine.question_index == -1

    def test_questions_in_order(self, calibrated_machine, recorder):
        texts = [calibrated_machine.ask_next_question() for _ in range(7)]
        assert texts == [q.text for q in calibrated_machine.questions]
        asked = recorder.data(EventType.QUESTION_ASKED)
        assert [a["question_idx"] for a in asked] == list(range(7))
        assert asked[2]["is_key_question"]

    def test_exhausted_questions(self, calibrated_machine):
        for _ in range(7):
            calibrated_machine.ask_next_question()
        assert calibrated_machine.is_test_finished()
        assert calibrated_machine.ask_next_question() is None
        assert calibrated_machine.question_index == 7

    def test_is_test_finished(self, calibrated_machine):
        for _ in range(6):
            calibrated_machine.ask_next_question()
        assert not calibrated_machine.is_test_finished()
        calibrated_machine.ask_next_question()
        assert calibrated_machine.is_test_finished()

    def test_new_session_resets_state(self, calibrated_machine):
        answer_all(calibrated_machine, loud_keys=(2,))
        calibrated_machine.end_session()

        calibrated_machine.start_session()
        assert calibrated_machine.spike_count == 0
        assert calibrated_machine.question_index == -1
        assert calibrated_machine.current_session.question_logs == []
        assert len(calibrated_machine.tracker) == 0


class TestAnswers:

    def test_answer_before_question_is_empty(self, calibrated_machine):
        result = calibrated_machine.process_answer("yes", VOICE)
        assert result == AnswerAnalysisResult()
        assert calibrated_machine.current_session.question_logs == []

    def test_answer_before_calibration_is_empty(self, machine):
        machine.start_session()
        assert machine.process_answer("yes", VOICE) == AnswerAnalysisResult()

    def test_loud_key_answer_spikes(self, calibrated_machine):
        machine = calibrated_machine
        for _ in range(3):
            machine.ask_next_question()
        machine.analyzer.queue(AcousticSignature(0.1, 120.0, 1500.0))

        result = machine.process_answer("yes", VOICE)

        assert result.is_deceptive
        assert result.stress_level == pytest.approx(5.0)
        assert machine.spike_count == 1
        assert machine.peak_stress_level == pytest.approx(5.0)

    def test_answer_logged_with_audio(self, calibrated_machine, recorder):
        machine = calibrated_machine
        machine.ask_next_question()
        result = machine.process_answer("yes", VOICE)

        log = machine.current_session.question_logs[0]
        assert log.question_text == machine.questions[0].text
        assert log.answer_audio == VOICE
        assert log.analysis_result is result

        entry = machine.current_session.event_log[-1]
        assert entry.event_type == "Subject Answer"
        assert entry.details == "'YES' | Peak Stress: 2.50"
        assert entry.tag is log
        assert recorder.data(EventType.ANSWER_SCORED)[0]["response"] == "yes"

    def test_high_stress_answer_logged_red(self, calibrated_machine):
        machine = calibrated_machine
        machine.ask_next_question()
        machine.analyzer.queue(AcousticSignature(0.2, 120.0, 1500.0))
        machine.process_answer("yes", VOICE)
        assert machine.current_session.event_log[-1].color_html == "#FF3232"

    def test_one_answer_per_question(self, calibrated_machine):
        machine = calibrated_machine
        machine.ask_next_question()
        assert machine.process_answer("yes", VOICE) is not None
        assert machine.process_answer("yes", VOICE) is None
        assert len(machine.current_session.question_logs) == 1

    def test_non_key_answers_feed_baseline(self, calibrated_machine):
        machine = calibrated_machine
        for _ in range(2):
            machine.ask_next_question()
            machine.process_answer("yes", VOICE)
        assert len(machine.tracker) == 3

        machine.ask_next_question()
        machine.process_answer("yes", VOICE)
        assert len(machine.tracker) == 3

    def test_micro_expression_in_answer(self, calibrated_machine, recorder):
        machine = calibrated_machine
        machine.ask_next_question()
        machine.process_answer("yes", chunked_tone_pcm([3, 5, 3], chunk_samples=512, amplitude=0.3))

        assert machine.micro_expression_count == 1
        assert recorder.data(EventType.MICRO_EXPRESSION_DETECTED) == [
            {"description": "Sudden pitch instability detected at 0.06s"}
        ]
        assert any(e.event_type == "Micro-Expression" for e in machine.current_session.event_log)


class TestHandleResponse:

    def test_questioner_turn_is_not_scored(self, calibrated_machine, recorder):
        machine = calibrated_machine
        machine.ask_next_question()
        machine.analyzer.signature = QUESTIONER_SIG

        future = machine.handle_response("yes", VOICE)

        assert future.result(timeout=FUTURE_TIMEOUT) is None
        assert machine.last_identification.type == SpeakerType.QUESTIONER
        assert machine.current_session.question_logs == []
        assert machine.current_session.event_log[-1].details == "Speaker identified as Questioner"

    def test_subject_turn_is_scored(self, calibrated_machine, recorder):
        machine = calibrated_machine
        machine.ask_next_question()

        result = machine.handle_response("yes", VOICE).result(timeout=FUTURE_TIMEOUT)

        assert result is not None
        assert machine.last_identification.type == SpeakerType.SUBJECT
        assert len(machine.current_session.question_logs) == 1
        assert recorder.data(EventType.SPEAKER_IDENTIFIED)[0]["speaker_type"] == "Subject"

    def test_ignored_before_interview(self, machine):
        machine.start_session()
        assert machine.handle_response("yes", VOICE) is None

    def test_next_question_waits_for_scoring(self, calibrated_machine):
        machine = calibrated_machine
        gate = threading.Event()
        machine.ask_next_question()
        machine.worker.submit(gate.wait)
        future = machine.handle_response("yes", VOICE)

        threading.Timer(0.1, gate.set).start()
        machine.ask_next_question()

        assert machine.question_index == 1
        assert future.result(timeout=FUTURE_TIMEOUT) is not None
        assert machine.current_session.question_logs[0].question_text == machine.questions[0].text


class TestEndSession:

    def test_truthful_session(self, calibrated_machine, recorder):
        machine = calibrated_machine
        answer_all(machine)

        outcome = machine.end_session()

        assert outcome.result == TestResult.TRUTHFUL
        assert outcome.summary == (
            "Analysis complete.\n"
            "0 stress events across 4 key questions.\n"
            "0 vocal micro-expressions detected.\n"
            "Average subject stress: 2.50 µt."
        )
        session = machine.current_session
        assert machine.current_state == SessionState.FINISHED
        assert session.final_result == TestResult.TRUTHFUL
        assert session.result_summary == outcome.summary
        assert session.average_stress == pytest.approx(2.5)
        assert session.event_log[-1].details == "Final Analysis: TRUTHFUL"
        assert recorder.data(EventType.SESSION_ENDED)[0]["answer_count"] == 7

    def test_deceptive_session(self, calibrated_machine):
        machine = calibrated_machine
        answer_all(machine, loud_keys=(2, 3, 5))
        outcome = machine.end_session()
        assert outcome.result == TestResult.DECEPTIVE
        assert machine.current_session.event_log[-1].color_html == "#FF3232"

    def test_inconclusive_session(self, calibrated_machine):
        machine = calibrated_machine
        answer_all(machine, loud_keys=(6,))
        assert machine.end_session().result == TestResult.INCONCLUSIVE

    def test_average_of_empty_session(self, calibrated_machine):
        outcome = calibrated_machine.end_session()
        assert calibrated_machine.current_session.average_stress == 0.0
        assert outcome.result == TestResult.TRUTHFUL

    def test_nothing_accepted_after_end(self, calibrated_machine):
        machine = calibrated_machine
        machine.ask_next_question()
        machine.end_session()

        assert machine.process_answer("yes", VOICE) is None
        assert machine.submit_audio(VOICE) is None
        assert machine.handle_response("yes", VOICE) is None
        assert machine.ask_next_question() is None
        assert machine.end_session() is None
        assert machine.update() is None

    def test_queued_answer_counts_toward_verdict(self, calibrated_machine):
        machine = calibrated_machine
        for _ in range(3):
            machine.ask_next_question()
        gate = threading.Event()
        machine.worker.submit(gate.wait)
        machine.analyzer.queue(AcousticSignature(0.2, 120.0, 1500.0))
        machine.submit_answer("yes", VOICE)

        threading.Timer(0.1, gate.set).start()
        outcome = machine.end_session()

        assert len(machine.current_session.question_logs) == 1
        assert outcome.result == TestResult.INCONCLUSIVE

    def test_end_session_when_idle(self, machine):
        assert machine.end_session() is None


class TestLiveData:

    def test_live_audio_only_during_interview(self, machine):
        machine.start_session()
        assert machine.process_live_audio(VOICE) is None

    def test_live_audio(self, calibrated_machine):
        data = calibrated_machine.process_live_audio(VOICE)

        assert data.vocal_stress_level == pytest.approx(2.5)
        assert set(data.emotional_state) == {"Agitation", "Cognitive Load", "Hesitation", "Confidence"}
        assert len(data.latest_spectrum) == 128
        assert calibrated_machine.current_data is data

    def test_update_idle_is_noop(self, machine, recorder):
        assert machine.update() is None
        assert recorder.of_type(EventType.DATA_UPDATE) == []

    def test_update_extends_history(self, calibrated_machine, recorder):
        machine = calibrated_machine
        for _ in range(3):
            machine.update()

        assert len(machine.stress_history) == 3
        # a fixed random draw of 0.5 gives no jitter
        assert machine.pitch_history[0].value == pytest.approx(SUBJECT_SIG.fundamental_hz)
        assert machine.timbre_history[0].value == pytest.approx(SUBJECT_SIG.spectral_centroid_hz)
        assert len(recorder.of_type(EventType.DATA_UPDATE)) == 3

    def test_stressed_history_point(self, calibrated_machine):
        machine = calibrated_machine
        for _ in range(3):
            machine.ask_next_question()
        machine.analyzer.queue(AcousticSignature(0.2, 120.0, 1500.0))
        machine.process_answer("yes", VOICE)
        machine.update()

        point = machine.stress_history[-1]
        assert point.value == pytest.approx(10.0)
        assert point.is_stressed

    def test_history_is_bounded(self, calibrated_machine):
        for _ in range(calibrated_machine.config.history_points + 20):
            calibrated_machine.update()
        assert len(calibrated_machine.stress_history) == calibrated_machine.config.history_points

    def test_queued_live_audio(self, calibrated_machine):
        future = calibrated_machine.submit_audio(VOICE)
        data = future.result(timeout=FUTURE_TIMEOUT)
        assert data.vocal_stress_level == pytest.approx(2.5)


class TestReviewMode:

    def _record(self):
        result = AnswerAnalysisResult(0.1, 130.0, 1600.0, 3.0, True, {"Agitation": 0.5})
        record = SessionRecord(question_logs=[QuestionLog("Have you ever told a lie?", VOICE, result)])
        record.final_result = TestResult.DECEPTIVE
        return record

    def test_load_session(self, calibrated_machine, recorder):
        record = self._record()
        calibrated_machine.load_session(record)

        assert calibrated_machine.current_state == SessionState.FINISHED
        assert calibrated_machine.current_session is record
        assert calibrated_machine.process_answer("yes", VOICE) is None
        assert recorder.data(EventType.SESSION_LOADED) == [{"answer_count": 1}]

    def test_load_rejects_non_record(self, machine):
        with pytest.raises(TypeError):
            machine.load_session({"question_logs": []})

    def test_review_history(self, machine):
        record = self._record()
        machine.load_session(record)
        machine.load_question_data_for_review(record.question_logs[0])

        stress = machine.stress_history
        assert len(stress) == 150
        assert stress[0].value == 0.0
        assert stress[75].value == pytest.approx(1.5)
        assert all(p.is_stressed for p in stress)
        assert {p.value for p in machine.pitch_history} == {130.0}


class TestConcurrency:

    def test_stale_job_discarded_after_restart(self, machine):
        machine.start_session()
        gate = threading.Event()
        machine.worker.submit(gate.wait)
        future = machine.submit_audio(VOICE)

        machine.start_session()
        gate.set()

        assert future.result(timeout=FUTURE_TIMEOUT) is None
        assert machine.calibration.count == 0

    def test_buffer_attributed_to_enqueue_state(self, machine):
        machine.start_session()
        gate = threading.Event()
        machine.worker.submit(gate.wait)
        futures = [machine.submit_audio(VOICE) for _ in range(51)]
        gate.set()

        results = [f.result(timeout=FUTURE_TIMEOUT) for f in futures]

        assert results[49].completed
        assert results[50] is None
        assert machine.current_state == SessionState.CALIBRATING_SUBJECT
        assert machine.calibration.count == 0

    def test_calibration_capture_never_blocks(self):
        machine = SessionStateMachine(
            config=Config(worker_queue_size=2),
            analyzer=StubAnalyzer(SUBJECT_SIG),
            rng=FixedRandom(0.5),
            questions=create_test_questions(),
        )
        started, gate = threading.Event(), threading.Event()

        def hold():
            started.set()
            gate.wait()

        results = []
        capture = threading.Thread(
            target=lambda: results.extend(machine.submit_audio(VOICE) for _ in range(5))
        )
        try:
            machine.start_session()
            machine.worker.submit(hold)
            assert started.wait(FUTURE_TIMEOUT)

            capture.start()
            capture.join(timeout=1.0)

            assert not capture.is_alive()
            accepted = [f for f in results if f is not None]
            assert len(accepted) == 2
            assert results[2:] == [None, None, None]

            gate.set()
            for future in accepted:
                future.result(timeout=FUTURE_TIMEOUT)
            # dropped buffers are not counted
            assert machine.calibration.count == 2
        finally:
            gate.set()
            machine.shutdown()

    def _delay_enqueue(self, machine, monkeypatch):
        """Hold every worker submission until ``release`` is set."""
        entered, release = threading.Event(), threading.Event()
        submit = machine.worker.submit

        def delayed_submit(*args, **kwargs):
            entered.set()
            release.wait(FUTURE_TIMEOUT)
            return submit(*args, **kwargs)

        monkeypatch.setattr(machine.worker, "submit", delayed_submit)
        return entered, release

    def test_next_question_waits_for_answer_still_being_queued(self, calibrated_machine,
                                                               recorder, monkeypatch):
        machine = calibrated_machine
        machine.ask_next_question()
        entered, release = self._delay_enqueue(machine, monkeypatch)

        responder = threading.Thread(target=machine.handle_response, args=("yes", VOICE))
        responder.start()
        assert entered.wait(FUTURE_TIMEOUT)
        asker = threading.Thread(target=machine.ask_next_question)
        asker.start()
        asker.join(timeout=0.2)

        assert asker.is_alive()
        assert machine.question_index == 0

        release.set()
        responder.join(FUTURE_TIMEOUT)
        asker.join(FUTURE_TIMEOUT)

        assert not asker.is_alive()
        assert machine.question_index == 1
        logs = machine.current_session.question_logs
        assert [log.question_text for log in logs] == [machine.questions[0].text]
        order = [e.event_type for e in recorder.events
                 if e.event_type in (EventType.QUESTION_ASKED, EventType.ANSWER_SCORED)]
        assert order == [EventType.QUESTION_ASKED, EventType.ANSWER_SCORED, EventType.QUESTION_ASKED]

    def test_end_session_waits_for_answer_still_being_queued(self, calibrated_machine, monkeypatch):
        machine = calibrated_machine
        for _ in range(3):
            machine.ask_next_question()
        # identification reads the first signature, scoring the second
        machine.analyzer.queue(SUBJECT_SIG, AcousticSignature(0.2, 120.0, 1500.0))
        entered, release = self._delay_enqueue(machine, monkeypatch)

        responder = threading.Thread(target=machine.handle_response, args=("yes", VOICE))
        responder.start()
        assert entered.wait(FUTURE_TIMEOUT)
        outcomes = []
        ender = threading.Thread(target=lambda: outcomes.append(machine.end_session()))
        ender.start()
        ender.join(timeout=0.2)

        assert ender.is_alive()
        assert machine.current_state == SessionState.IN_PROGRESS

        release.set()
        responder.join(FUTURE_TIMEOUT)
        ender.join(FUTURE_TIMEOUT)

        assert len(machine.current_session.question_logs) == 1
        assert outcomes[0].result == TestResult.INCONCLUSIVE

    def test_worker_error_reported(self, calibrated_machine, recorder):
        def broken():
            raise RuntimeError("boom")

        future = calibrated_machine.worker.submit(broken)
        with pytest.raises(RuntimeError):
            future.result(timeout=FUTURE_TIMEOUT)
        calibrated_machine.worker.wait_idle()
        errors = recorder.data(EventType.ERROR_OCCURRED)
        assert errors[0]["error_type"] == "RuntimeError"
        assert errors[0]["component"] == "broken"

    def test_concurrent_live_and_answers(self, calibrated_machine):
        machine = calibrated_machine
        stop = threading.Event()

        def produce():
            while not stop.is_set():
                machine.submit_audio(VOICE)
                machine.update()
                time.sleep(0.001)

        producer = threading.Thread(target=produce, daemon=True)
        producer.start()
        try:
            answer_all(machine)
        finally:
            stop.set()
            producer.join(timeout=FUTURE_TIMEOUT)

        outcome = machine.end_session()
        assert len(machine.current_session.question_logs) == 7
        assert outcome.result == TestResult.TRUTHFUL
        assert np.isfinite(machine.current_session.average_stress)
