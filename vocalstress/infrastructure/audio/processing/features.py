"""
Spectral feature extraction from raw PCM buffers.
"""
import logging
from typing import Optional

import numpy as np

from ....config import SAMPLE_RATE
from ..voice_id.profiles import AcousticSignature, ZERO_SIGNATURE
from .processing import pcm16_to_float, calculate_rms, fft_size_for, hann_window

logger = logging.getLogger("spectral_analyzer")


class SpectralAnalyzer:
    """
    Windowed FFT analysis producing RMS, fundamental frequency and spectral
    centroid for a 16-bit little-endian mono PCM buffer.

    Instances hold only the sample rate, so a single analyzer can be shared
    between threads.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = sample_rate

    def spectrum(self, buffer: bytes) -> Optional[np.ndarray]:
        """
        Hann-windowed complex FFT of the first N samples, N being the largest
        power of two that fits. None when the buffer holds fewer than 2 samples.
        """
        samples = pcm16_to_float(buffer)
        size = fft_size_for(samples.size)
        if size == 0:
            return None
        return np.fft.fft(samples[:size] * hann_window(size))

    @staticmethod
    def rms(buffer: bytes) -> float:
        return calculate_rms(buffer)

    def _band(self, fft_result: np.ndarray):
        """Magnitudes and frequencies of bins 1 .. N/2 - 1."""
        n = len(fft_result)
        bins = np.arange(1, n // 2)
        magnitudes = np.abs(fft_result[1:n // 2])
        return bins, magnitudes, bins * self.sample_rate / n

    def fundamental_frequency(self, fft_result: Optional[np.ndarray]) -> float:
        """Frequency of the strongest bin in the lower half (bin 0 excluded)."""
        if fft_result is None or len(fft_result) < 2:
            return 0.0
        bins, magnitudes, _ = self._band(fft_result)
        if magnitudes.size == 0 or magnitudes.max() <= 0:
            return 0.0
        # argmax keeps the first of equal maxima
        index = int(bins[int(np.argmax(magnitudes))])
        return float(index * self.sample_rate / len(fft_result))

    def spectral_centroid(self, fft_result: Optional[np.ndarray]) -> float:
        """Magnitude-weighted mean frequency over the same bins."""
        if fft_result is None or len(fft_result) < 2:
            return 0.0
        _, magnitudes, frequencies = self._band(fft_result)
        total = float(magnitudes.sum())
        if total <= 0:
            return 0.0
        return float(np.dot(frequencies, magnitudes) / total)

    def analyze(self, buffer: bytes) -> AcousticSignature:
        """
        Compute the acoustic signature of a buffer.

        Degenerate buffers never raise: fewer than 2 bytes gives the zero
        signature, fewer than 2 samples gives RMS only.
        """
        if not buffer or len(buffer) < 2:
            return ZERO_SIGNATURE
        fft_result = self.spectrum(buffer)
        return AcousticSignature(
            rms=self.rms(buffer),
            fundamental_hz=self.fundamental_frequency(fft_result),
            spectral_centroid_hz=self.spectral_centroid(fft_result),
        )

    def pitch(self, buffer: bytes) -> float:
        """Fundamental frequency of a buffer (0 when it cannot be computed)."""
        return self.fundamental_frequency(self.spectrum(buffer))
