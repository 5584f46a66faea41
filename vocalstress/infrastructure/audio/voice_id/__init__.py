"""Acoustic signatures and speaker identification."""

from .profiles import AcousticSignature, ZERO_SIGNATURE
from .identification import SpeakerIdentifier, SpeakerIdentification, SpeakerType
from .similarity import relative_difference, weighted_distance, normalize_confidence

__all__ = [
    "AcousticSignature",
    "ZERO_SIGNATURE",
    "SpeakerIdentifier",
    "SpeakerIdentification",
    "SpeakerType",
    "relative_difference",
    "weighted_distance",
    "normalize_confidence"
]
