"""
Voice distance calculation module.
Compares an instantaneous acoustic signature against an enrolled one.
"""
import logging
from typing import Dict, Tuple

from ....config import SPEAKER_ID_RMS_WEIGHT, SPEAKER_ID_PITCH_WEIGHT, SPEAKER_ID_TIMBRE_WEIGHT
from .profiles import AcousticSignature

logger = logging.getLogger("voice_similarity")

# Feature importance weights for speaker identification
SPEAKER_ID_FEATURE_WEIGHTS = {
    "rms": SPEAKER_ID_RMS_WEIGHT,
    "pitch": SPEAKER_ID_PITCH_WEIGHT,
    "timbre": SPEAKER_ID_TIMBRE_WEIGHT,
}


def relative_difference(value: float, target: float) -> float:
    """|value - target| / target, or 0 when the target is not positive."""
    return abs(value - target) / target if target > 0 else 0.0


def feature_differences(candidate: AcousticSignature,
                        enrolled: AcousticSignature) -> Dict[str, float]:
    """Per-feature relative differences of a candidate against an enrolled signature."""
    return {
        "rms": relative_difference(candidate.rms, enrolled.rms),
        "pitch": relative_difference(candidate.fundamental_hz, enrolled.fundamental_hz),
        "timbre": relative_difference(candidate.spectral_centroid_hz, enrolled.spectral_centroid_hz),
    }


def weighted_distance(differences: Dict[str, float],
                      weights: Dict[str, float] = SPEAKER_ID_FEATURE_WEIGHTS) -> float:
    """Weighted sum of per-feature differences (lower means closer)."""
    return sum(weights[name] * differences[name] for name in weights)


def normalize_confidence(questioner_diff: float, subject_diff: float) -> Tuple[float, float]:
    """
    Turn a pair of distances into a (questioner, subject) confidence pair.

    The closer candidate gets the larger share; equal zero distances split evenly.
    """
    total = questioner_diff + subject_diff
    if total > 0:
        return 1.0 - questioner_diff / total, 1.0 - subject_diff / total
    return 0.5, 0.5
