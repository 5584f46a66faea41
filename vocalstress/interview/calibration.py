"""
Voice calibration: enrolment of the questioner and subject signatures.
"""
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..config import (
    CALIBRATION_SAMPLES_NEEDED, DEFAULT_CALIBRATION_RMS,
    DEFAULT_CALIBRATION_FREQUENCY, DEFAULT_CALIBRATION_TIMBRE
)
from ..infrastructure.audio.processing import SpectralAnalyzer, sample_count
from ..infrastructure.audio.voice_id import AcousticSignature, SpeakerType

logger = logging.getLogger("calibration")


@dataclass(frozen=True)
class CalibrationStep:
    """Outcome of one accepted calibration sample."""
    speaker: SpeakerType
    count: int
    percent: int
    signature: Optional[AcousticSignature] = None

    @property
    def completed(self) -> bool:
        return self.signature is not None


def _mean_or(values: List[float], default: float) -> float:
    return float(np.mean(values)) if values else default


class CalibrationController:
    """
    Accumulates analyzed samples for the speaker being calibrated and produces
    an averaged signature once the target count is reached.

    The session machine owns the state; this class only keeps the readings.
    """

    def __init__(self, analyzer: SpectralAnalyzer,
                 samples_needed: int = CALIBRATION_SAMPLES_NEEDED):
        if samples_needed <= 0:
            raise ValueError(f"samples_needed must be positive, got {samples_needed}")
        self.analyzer = analyzer
        self.samples_needed = samples_needed
        self._rms_readings: List[float] = []
        self._freq_readings: List[float] = []
        self._timbre_readings: List[float] = []
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._rms_readings)

    def percent(self, count: int) -> int:
        return int(round(count * 100 / self.samples_needed))

    def submit(self, buffer: bytes, speaker: SpeakerType) -> Optional[CalibrationStep]:
        """
        Add one calibration buffer for a speaker.

        Args:
            buffer: Raw PCM of the calibrating speaker
            speaker: QUESTIONER or SUBJECT

        Returns:
            CalibrationStep, with the averaged signature when this sample
            completed the calibration; None if the buffer held no samples
        """
        if speaker not in (SpeakerType.QUESTIONER, SpeakerType.SUBJECT):
            raise ValueError(f"Cannot calibrate speaker {speaker}")
        if sample_count(buffer) == 0:
            logger.debug("Calibration buffer ignored: no PCM samples")
            return None

        analysis = self.analyzer.analyze(buffer)

        with self._lock:
            self._rms_readings.append(analysis.rms)
            self._freq_readings.append(analysis.fundamental_hz)
            self._timbre_readings.append(analysis.spectral_centroid_hz)
            count = len(self._rms_readings)

            if count < self.samples_needed:
                return CalibrationStep(speaker, count, self.percent(count))

            signature = AcousticSignature(
                rms=_mean_or(self._rms_readings, DEFAULT_CALIBRATION_RMS),
                fundamental_hz=_mean_or(self._freq_readings, DEFAULT_CALIBRATION_FREQUENCY),
                spectral_centroid_hz=_mean_or(self._timbre_readings, DEFAULT_CALIBRATION_TIMBRE),
            )
            self._clear_locked()

        logger.info(f"{speaker.value} calibration complete: rms={signature.rms:.4f}, "
                    f"pitch={signature.fundamental_hz:.1f}Hz, timbre={signature.spectral_centroid_hz:.1f}Hz")
        return CalibrationStep(speaker, count, self.percent(count), signature)

    def reset(self) -> None:
        with self._lock:
            self._clear_locked()

    def _clear_locked(self) -> None:
        self._rms_readings.clear()
        self._freq_readings.clear()
        self._timbre_readings.clear()
