"""
Basic PCM processing functions: decoding, loudness and FFT framing.
"""
import numpy as np
from scipy.signal import windows

from ....config import BYTES_PER_SAMPLE, PCM_FULL_SCALE


def sample_count(buffer: bytes) -> int:
    """Number of whole 16-bit samples in a buffer."""
    return len(buffer) // BYTES_PER_SAMPLE if buffer else 0


def pcm16_to_float(buffer: bytes) -> np.ndarray:
    """Decode 16-bit little-endian mono PCM into floats in [-1, 1)."""
    count = sample_count(buffer)
    if count == 0:
        return np.zeros(0, dtype=np.float64)
    samples = np.frombuffer(buffer, dtype="<i2", count=count)
    return samples.astype(np.float64) / PCM_FULL_SCALE


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Encode floats in [-1, 1] as 16-bit little-endian PCM (hard clipped)."""
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 32767.0 / PCM_FULL_SCALE)
    return (clipped * PCM_FULL_SCALE).astype("<i2").tobytes()


def calculate_rms(buffer: bytes) -> float:
    """Root-mean-square of the normalized samples; 0 for buffers under 2 bytes."""
    samples = pcm16_to_float(buffer)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples ** 2)))


def fft_size_for(count: int) -> int:
    """
    Largest power of two not exceeding the sample count.

    Returns 0 when there are fewer than 2 samples (no transform possible).
    """
    if count < 2:
        return 0
    size = 2
    while size * 2 <= count:
        size *= 2
    return size


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window, w[i] = 0.5 * (1 - cos(2*pi*i / (size - 1)))."""
    return windows.hann(size, sym=True)
