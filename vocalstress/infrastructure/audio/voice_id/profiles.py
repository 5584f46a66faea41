"""
Acoustic signatures: the three-number voice profile used for enrolment,
baselining and speaker comparison.
"""
from dataclasses import dataclass, asdict
from typing import Dict, Iterable

import numpy as np


@dataclass(frozen=True)
class AcousticSignature:
    """
    Summarized voice profile (loudness, pitch, brightness).

    A signature with ``rms == 0`` is the "not yet calibrated" sentinel.
    """
    rms: float = 0.0
    fundamental_hz: float = 0.0
    spectral_centroid_hz: float = 0.0

    @property
    def is_calibrated(self) -> bool:
        return self.rms > 0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def mean_of(cls, signatures: Iterable['AcousticSignature']) -> 'AcousticSignature':
        """Element-wise mean; the zero signature for an empty input."""
        rows = [(s.rms, s.fundamental_hz, s.spectral_centroid_hz) for s in signatures]
        if not rows:
            return ZERO_SIGNATURE
        rms, freq, timbre = np.mean(np.asarray(rows, dtype=np.float64), axis=0)
        return cls(float(rms), float(freq), float(timbre))


ZERO_SIGNATURE = AcousticSignature()
