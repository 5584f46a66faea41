"""
VocalStress Test Configuration

Provides analyzers, synthetic voices and session machines for testing.
"""

import pytest

from vocalstress.config import Config
from vocalstress.infrastructure.audio.processing import SpectralAnalyzer
from vocalstress.infrastructure.audio.voice_id import AcousticSignature
from vocalstress.interview import SessionStateMachine
from vocalstress.interview.testing import (
    StubAnalyzer, FixedRandom, EventRecorder, create_test_questions, silence_pcm
)

SAMPLE_RATE = 16000

QUESTIONER_SIG = AcousticSignature(0.08, 220.0, 1800.0)
SUBJECT_SIG = AcousticSignature(0.05, 120.0, 1500.0)

# Non-empty placeholder audio; StubAnalyzer decides the signature
VOICE = silence_pcm(256)


def calibrate(machine, analyzer: StubAnalyzer,
              questioner: AcousticSignature = QUESTIONER_SIG,
              subject: AcousticSignature = SUBJECT_SIG) -> None:
    """Run both calibration phases synchronously."""
    analyzer.signature = questioner
    for _ in range(machine.calibration.samples_needed):
        machine.calibrate(VOICE)
    analyzer.signature = subject
    for _ in range(machine.calibration.samples_needed):
        machine.calibrate(VOICE)


@pytest.fixture
def analyzer() -> SpectralAnalyzer:
    return SpectralAnalyzer(SAMPLE_RATE)


@pytest.fixture
def stub_analyzer() -> StubAnalyzer:
    return StubAnalyzer(SUBJECT_SIG, SAMPLE_RATE)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def machine(stub_analyzer, recorder):
    """Idle session machine with a stub analyzer and a fixed random source."""
    m = SessionStateMachine(
        config=Config(),
        analyzer=stub_analyzer,
        rng=FixedRandom(0.5),
        questions=create_test_questions(),
    )
    m.event_bus.subscribe_all(recorder)
    yield m
    m.shutdown()


@pytest.fixture
def calibrated_machine(machine, stub_analyzer):
    """Session machine with both speakers enrolled, ready for questions."""
    machine.start_session()
    calibrate(machine, stub_analyzer)
    stub_analyzer.signature = SUBJECT_SIG
    return machine
