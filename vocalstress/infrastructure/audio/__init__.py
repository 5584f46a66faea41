"""
Audio analysis for the vocal stress engine.

This module contains all audio-related functionality organized into clear submodules:
- processing: PCM decoding and spectral feature extraction
- voice_id: Acoustic signatures and speaker identification
"""

# Convenient imports from submodules
from .processing import SpectralAnalyzer
from .voice_id import AcousticSignature, ZERO_SIGNATURE, SpeakerIdentifier

__all__ = [
    "SpectralAnalyzer",
    "AcousticSignature",
    "ZERO_SIGNATURE",
    "SpeakerIdentifier"
]
