"""
Speaker identification between the two enrolled session participants.
Classifies a speaker turn as questioner or subject by weighted acoustic distance.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Optional, TYPE_CHECKING

from .profiles import AcousticSignature, ZERO_SIGNATURE
from .similarity import (
    SPEAKER_ID_FEATURE_WEIGHTS, feature_differences, weighted_distance, normalize_confidence
)

if TYPE_CHECKING:
    from ..processing.features import SpectralAnalyzer

logger = logging.getLogger("speaker_id")


class SpeakerType(str, Enum):
    UNKNOWN = "Unknown"
    QUESTIONER = "Questioner"
    SUBJECT = "Subject"


ConfidencePair = Tuple[float, float]


@dataclass(frozen=True)
class SpeakerIdentification:
    """Classification of one speaker turn with a per-feature confidence breakdown."""
    type: SpeakerType = SpeakerType.UNKNOWN
    confidence: float = 0.0
    rms_confidence: ConfidencePair = (0.0, 0.0)
    pitch_confidence: ConfidencePair = (0.0, 0.0)
    timbre_confidence: ConfidencePair = (0.0, 0.0)


UNKNOWN_IDENTIFICATION = SpeakerIdentification()


class SpeakerIdentifier:
    """
    Compares an instantaneous signature against the enrolled questioner and
    subject signatures.

    Keeps the most recent identification for display; it never touches
    session data.
    """

    def __init__(self, analyzer: 'SpectralAnalyzer', weights=SPEAKER_ID_FEATURE_WEIGHTS):
        self.analyzer = analyzer
        self.weights = dict(weights)
        self._lock = threading.Lock()
        self._last = UNKNOWN_IDENTIFICATION

    @property
    def last_identification(self) -> SpeakerIdentification:
        with self._lock:
            return self._last

    def reset(self) -> None:
        with self._lock:
            self._last = UNKNOWN_IDENTIFICATION

    def identify(self, buffer: bytes,
                 questioner: Optional[AcousticSignature],
                 subject: Optional[AcousticSignature]) -> SpeakerIdentification:
        """
        Identify the speaker of a buffer.

        Args:
            buffer: Raw PCM of one speaker turn
            questioner: Enrolled questioner signature
            subject: Enrolled subject signature

        Returns:
            SpeakerIdentification; Unknown with zero confidence when the buffer
            is empty or either speaker is not enrolled yet
        """
        questioner = questioner or ZERO_SIGNATURE
        subject = subject or ZERO_SIGNATURE
        if not buffer or not questioner.is_calibrated or not subject.is_calibrated:
            logger.debug("Identification skipped: empty buffer or speakers not enrolled")
            return UNKNOWN_IDENTIFICATION

        result = self.classify(self.analyzer.analyze(buffer), questioner, subject)
        with self._lock:
            self._last = result
        return result

    def classify(self, candidate: AcousticSignature,
                 questioner: AcousticSignature,
                 subject: AcousticSignature) -> SpeakerIdentification:
        """Classify an already analyzed signature."""
        q_diff = feature_differences(candidate, questioner)
        s_diff = feature_differences(candidate, subject)
        q_score = weighted_distance(q_diff, self.weights)
        s_score = weighted_distance(s_diff, self.weights)

        # Ties favour the questioner
        speaker = SpeakerType.SUBJECT if s_score < q_score else SpeakerType.QUESTIONER
        total = q_score + s_score
        confidence = 1.0 - (min(q_score, s_score) / total) if total > 0 else 1.0

        logger.debug(f"Speaker scores: questioner={q_score:.4f}, subject={s_score:.4f} "
                     f"-> {speaker.value} ({confidence:.2f})")

        return SpeakerIdentification(
            type=speaker,
            confidence=confidence,
            rms_confidence=normalize_confidence(q_diff["rms"], s_diff["rms"]),
            pitch_confidence=normalize_confidence(q_diff["pitch"], s_diff["pitch"]),
            timbre_confidence=normalize_confidence(q_diff["timbre"], s_diff["timbre"]),
        )
