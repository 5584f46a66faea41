"""
Per-answer stress scoring and pitch micro-expression detection.
Handles stress ratios against the adaptive baseline, the emotional-state
vector, deception flags and abrupt pitch reversals inside an answer.
"""
import logging
import random
import threading
from typing import Callable, Dict, List, Optional

import numpy as np

from ..config import (
    STRESS_THRESHOLD, STRESS_LEVEL_SCALE, SAMPLE_RATE,
    MICRO_EXPRESSION_CHUNK_SIZE, MICRO_EXPRESSION_MIN_CHUNK, MICRO_EXPRESSION_PITCH_JUMP_HZ
)
from ..infrastructure.audio.processing import SpectralAnalyzer
from ..infrastructure.audio.voice_id import AcousticSignature
from ..infrastructure.data.conversations import AnswerAnalysisResult
from .baseline import AdaptiveBaselineTracker
from .models import Question, ExpectedAnswer

logger = logging.getLogger("interview_analysis")


def _f32(value: float) -> float:
    """Round to single precision, the precision stored for scores."""
    return float(np.float32(value))


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def stress_factor(analysis: AcousticSignature, baseline: AcousticSignature) -> float:
    """Answer RMS over baseline RMS; exactly 1.0 when the baseline RMS is 0."""
    return analysis.rms / baseline.rms if baseline.rms > 0 else 1.0


def is_verbal_mismatch(expected: ExpectedAnswer, verbal_response: Optional[str]) -> bool:
    """True when the spoken answer is not the one a truthful subject gives."""
    return verbal_response != expected.value


class MicroExpressionDetector:
    """
    Scans an answer buffer in fixed-size chunks for a local pitch peak or
    valley steeper than the jump threshold.

    At most one detection is reported per buffer.
    """

    def __init__(self, analyzer: SpectralAnalyzer,
                 chunk_size: int = MICRO_EXPRESSION_CHUNK_SIZE,
                 min_chunk: int = MICRO_EXPRESSION_MIN_CHUNK,
                 pitch_jump_hz: float = MICRO_EXPRESSION_PITCH_JUMP_HZ,
                 on_detect: Optional[Callable[[str], None]] = None):
        self.analyzer = analyzer
        self.chunk_size = chunk_size
        self.min_chunk = min_chunk
        self.pitch_jump_hz = pitch_jump_hz
        self.on_detect = on_detect
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def reset(self) -> None:
        with self._lock:
            self._count = 0

    def chunk_pitches(self, buffer: bytes) -> List[float]:
        """Fundamental frequency of each chunk; a short trailing chunk ends the scan."""
        pitches = []
        for start in range(0, len(buffer), self.chunk_size):
            chunk = buffer[start:start + self.chunk_size]
            if len(chunk) < self.min_chunk:
                break
            pitches.append(self.analyzer.pitch(chunk))
        return pitches

    def find_pitch_reversal(self, pitches: List[float]) -> Optional[int]:
        """
        Index of the first interior chunk whose pitch jumped by more than the
        threshold and then reversed direction. None if there is none.
        """
        if len(pitches) < 3:
            return None
        for i in range(1, len(pitches) - 1):
            rise = pitches[i] - pitches[i - 1]
            following = pitches[i + 1] - pitches[i]
            if abs(rise) > self.pitch_jump_hz and np.sign(rise) != np.sign(following):
                return i
        return None

    def detect(self, buffer: bytes) -> Optional[str]:
        """
        Look for a micro-expression in an answer buffer.

        Returns:
            Description of the detection, or None
        """
        index = self.find_pitch_reversal(self.chunk_pitches(buffer))
        if index is None:
            return None

        seconds = index * self.chunk_size / self.analyzer.sample_rate
        description = f"Sudden pitch instability detected at {seconds:.2f}s"
        with self._lock:
            self._count += 1
        logger.info(description)

        if self.on_detect is not None:
            self.on_detect(description)
        return description


class DeceptionScorer:
    """
    Scores subject answers against the adaptive baseline.

    Owns the session-wide spike counter and the peak stress of the current
    question. Non-key answers feed the baseline; key answers never do.
    """

    def __init__(self, analyzer: SpectralAnalyzer,
                 tracker: AdaptiveBaselineTracker,
                 detector: MicroExpressionDetector,
                 stress_threshold: float = STRESS_THRESHOLD,
                 rng: Optional[random.Random] = None):
        self.analyzer = analyzer
        self.tracker = tracker
        self.detector = detector
        self.stress_threshold = stress_threshold
        self.rng = rng or random.Random()
        self._spike_count = 0
        self._peak_stress = 0.0
        self._lock = threading.Lock()

    @property
    def spike_count(self) -> int:
        with self._lock:
            return self._spike_count

    @property
    def peak_stress(self) -> float:
        with self._lock:
            return self._peak_stress

    def reset_peak(self) -> None:
        with self._lock:
            self._peak_stress = 0.0

    def reset(self) -> None:
        with self._lock:
            self._spike_count = 0
            self._peak_stress = 0.0

    def emotional_state(self, analysis: AcousticSignature,
                        baseline: Optional[AcousticSignature] = None) -> Dict[str, float]:
        """
        Emotional-state vector from loudness and pitch ratios against the baseline.

        Every value is clamped to [0, 1]; Hesitation draws from the injected
        random source.
        """
        if baseline is None:
            baseline = self.tracker.current()
        rms_ratio = analysis.rms / baseline.rms if baseline.rms > 0 else 1.0
        pitch_ratio = (analysis.fundamental_hz / baseline.fundamental_hz
                       if baseline.fundamental_hz > 0 else 1.0)

        agitation = _clamp01((rms_ratio - 1.0) * 2.0 + (pitch_ratio - 1.0))
        cognitive_load = _clamp01(abs(1.0 - pitch_ratio) * 1.5)
        with self._lock:
            draw = self.rng.random()
        hesitation = _clamp01(draw * agitation * 0.5)
        confidence = _clamp01(1.0 - cognitive_load * 0.8)

        return {
            "Agitation": _f32(agitation),
            "Cognitive Load": _f32(cognitive_load),
            "Hesitation": _f32(hesitation),
            "Confidence": _f32(confidence),
        }

    def live_stress_level(self, analysis: AcousticSignature) -> float:
        """Instantaneous stress of live audio against the current baseline."""
        return _f32(stress_factor(analysis, self.tracker.current()) * STRESS_LEVEL_SCALE)

    def score(self, question: Question, verbal_response: Optional[str], buffer: bytes) -> AnswerAnalysisResult:
        """
        Score one subject answer.

        Args:
            question: The active question
            verbal_response: Recognized answer text ("yes", "no", ...)
            buffer: Raw PCM of the answer

        Returns:
            AnswerAnalysisResult for the answer
        """
        analysis = self.analyzer.analyze(buffer)
        baseline = self.tracker.current()

        factor = stress_factor(analysis, baseline)
        mismatch = is_verbal_mismatch(question.expected_answer, verbal_response)
        is_deceptive = question.is_key_question and (factor > self.stress_threshold or mismatch)
        stress_level = _f32(factor * STRESS_LEVEL_SCALE)

        with self._lock:
            if is_deceptive:
                self._spike_count += 1
            self._peak_stress = max(self._peak_stress, stress_level)

        result = AnswerAnalysisResult(
            rms=analysis.rms,
            pitch=analysis.fundamental_hz,
            timbre=analysis.spectral_centroid_hz,
            stress_level=stress_level,
            is_deceptive=is_deceptive,
            emotional_state=self.emotional_state(analysis, baseline),
        )

        if not question.is_key_question:
            self.tracker.push(analysis)

        logger.info(f"Scored answer to '{question.text}': factor={factor:.3f}, "
                    f"stress={stress_level:.2f}, mismatch={mismatch}, deceptive={is_deceptive}")

        self.detector.detect(buffer)
        return result
