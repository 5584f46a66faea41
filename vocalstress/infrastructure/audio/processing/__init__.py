"""Audio processing and spectral feature extraction."""

# PCM helpers (numpy/scipy only)
from .processing import (
    sample_count,
    pcm16_to_float,
    float_to_pcm16,
    calculate_rms,
    fft_size_for,
    hann_window
)

from .features import SpectralAnalyzer

__all__ = [
    "SpectralAnalyzer",
    "sample_count",
    "pcm16_to_float",
    "float_to_pcm16",
    "calculate_rms",
    "fft_size_for",
    "hann_window"
]
