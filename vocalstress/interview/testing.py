"""
Testing infrastructure: synthetic PCM, deterministic stand-ins and event
capture for exercising the session engine without a microphone.
"""
import random
from typing import Dict, Any, List, Optional, Sequence

import numpy as np

from .events import SessionEvent, EventType
from .models import Question, ExpectedAnswer
from ..config import SAMPLE_RATE
from ..infrastructure.audio.processing import SpectralAnalyzer, float_to_pcm16
from ..infrastructure.audio.voice_id import AcousticSignature


def tone_pcm(frequency: float, amplitude: float = 0.1, samples: int = 4096,
             sample_rate: int = SAMPLE_RATE) -> bytes:
    """Sine tone as 16-bit PCM."""
    t = np.arange(samples) / sample_rate
    return float_to_pcm16(amplitude * np.sin(2 * np.pi * frequency * t))


def bin_tone_pcm(bin_index: int, size: int, amplitude: float = 0.1,
                 sample_rate: int = SAMPLE_RATE) -> bytes:
    """Tone centred exactly on FFT bin ``bin_index`` of a ``size``-point transform."""
    return tone_pcm(bin_index * sample_rate / size, amplitude, size, sample_rate)


def chunked_tone_pcm(bins: Sequence[int], chunk_samples: int = 512, amplitude: float = 0.1,
                     sample_rate: int = SAMPLE_RATE) -> bytes:
    """Consecutive chunks, each a bin-centred tone, for pitch-sequence tests."""
    return b"".join(bin_tone_pcm(b, chunk_samples, amplitude, sample_rate) for b in bins)


def silence_pcm(samples: int = 1024) -> bytes:
    return bytes(2 * samples)


class StubAnalyzer(SpectralAnalyzer):
    """
    Analyzer returning preset signatures.

    Queued signatures are returned first, one per ``analyze`` call; after that
    the default signature is returned. Spectra and pitches are still computed
    from the real buffer.
    """

    def __init__(self, signature: Optional[AcousticSignature] = None,
                 sample_rate: int = SAMPLE_RATE):
        super().__init__(sample_rate)
        self.signature = signature or AcousticSignature(0.05, 120.0, 1500.0)
        self.queued: List[AcousticSignature] = []
        self.calls = 0

    def queue(self, *signatures: AcousticSignature) -> None:
        self.queued.extend(signatures)

    def analyze(self, buffer: bytes) -> AcousticSignature:
        self.calls += 1
        if self.queued:
            return self.queued.pop(0)
        return self.signature


class FixedRandom(random.Random):
    """Random source whose ``random()`` always returns the same value."""

    def __init__(self, value: float = 0.5):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class EventRecorder:
    """Global event-bus subscriber keeping every event it sees."""

    def __init__(self):
        self.events: List[SessionEvent] = []

    def __call__(self, event: SessionEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[SessionEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def data(self, event_type: EventType) -> List[Dict[str, Any]]:
        return [e.data for e in self.of_type(event_type)]

    def clear(self) -> None:
        self.events.clear()


def create_test_questions() -> List[Question]:
    """Four key and three non-key questions in the default order, with a fixed weekday."""
    return [
        Question("Is your name recorded as John Smith?", False, ExpectedAnswer.YES),
        Question("Is today Monday?", False, ExpectedAnswer.YES),
        Question("Have you ever told a lie?", True, ExpectedAnswer.YES),
        Question("Regarding the missing file, were you involved?", True, ExpectedAnswer.NO),
        Question("Are you in Wilton, Maine?", False, ExpectedAnswer.YES),
        Question("Did you access the file without authorization?", True, ExpectedAnswer.NO),
        Question("Have you answered all questions truthfully?", True, ExpectedAnswer.YES),
    ]


def calibrate_machine(machine, questioner_buffer: bytes, subject_buffer: bytes) -> None:
    """Run both calibration phases synchronously with the given buffers."""
    for _ in range(machine.calibration.samples_needed):
        machine.calibrate(questioner_buffer)
    for _ in range(machine.calibration.samples_needed):
        machine.calibrate(subject_buffer)
