"""
Vocal Stress Analyzer Configuration
===================================

This file contains ALL configuration for the vocal stress analysis engine.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
import json
import logging
from dataclasses import dataclass, asdict, fields
from typing import Optional

logger = logging.getLogger("config")


# =============================================================================
# USER SETTINGS - Edit these to customize the analyzer
# =============================================================================

# Audio input
SAMPLE_RATE = 16000
AUDIO_DEVICE_INDEX = 0

# Scoring
STRESS_THRESHOLD = 1.5

# Storage
WORKDIR = "./_sessions"
SETTINGS_FILE = "app_settings.json"

# Logging
LOG_FILE = "./_sessions/vocalstress.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# PCM format
BYTES_PER_SAMPLE = 2
PCM_FULL_SCALE = 32768.0

# Calibration
CALIBRATION_SAMPLES_NEEDED = 50
DEFAULT_CALIBRATION_RMS = 0.01
DEFAULT_CALIBRATION_FREQUENCY = 150.0
DEFAULT_CALIBRATION_TIMBRE = 1500.0

# Adaptive baseline
ADAPTIVE_BASELINE_WINDOW = 5

# Display history
MAX_HISTORY_POINTS = 150
PITCH_HISTORY_JITTER_HZ = 10.0
TIMBRE_HISTORY_JITTER_HZ = 50.0

# Stress scoring
STRESS_LEVEL_SCALE = 2.5
STRESS_DISPLAY_FACTOR = 1.5  # stress > threshold * factor is drawn as "stressed"

# Micro-expression detection
MICRO_EXPRESSION_CHUNK_SIZE = 1024
MICRO_EXPRESSION_MIN_CHUNK = 512
MICRO_EXPRESSION_PITCH_JUMP_HZ = 25.0

# Speaker identification weights (rms, pitch, timbre)
SPEAKER_ID_RMS_WEIGHT = 0.2
SPEAKER_ID_PITCH_WEIGHT = 0.4
SPEAKER_ID_TIMBRE_WEIGHT = 0.4

# Analysis worker
WORKER_QUEUE_SIZE = 64
WORKER_JOIN_TIMEOUT = 5.0

# Colour hints for the presentation layer (HTML notation)
COLOR_WHITE = "#FFFFFF"
COLOR_CYAN = "#00FFFF"
COLOR_ORANGE = "#FFA500"
COLOR_GRAY = "#808080"
COLOR_YELLOW = "#FFFF00"
COLOR_MAGENTA = "#FF00FF"
COLOR_STRESS = "#FF3232"
COLOR_TRUTH = "#00FF96"
COLOR_FOREGROUND = "#00FFFF"


# =============================================================================
# PERSISTED APPLICATION SETTINGS
# =============================================================================

@dataclass
class AppSettings:
    """Settings the presentation layer lets the operator change and persist."""
    audio_device_index: int = AUDIO_DEVICE_INDEX
    sample_rate: int = SAMPLE_RATE
    stress_threshold: float = STRESS_THRESHOLD

    def save(self, path: str = SETTINGS_FILE) -> bool:
        """
        Write settings as JSON.

        Returns:
            True if the file was written, False if it could not be
        """
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self), f, indent=2)
            return True
        except OSError as e:
            logger.warning(f"Failed to save settings to {path}: {e}")
            return False

    @classmethod
    def load(cls, path: str = SETTINGS_FILE) -> 'AppSettings':
        """Load settings from JSON, falling back to defaults."""
        if not os.path.isfile(path):
            return cls()
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            known = {f.name for f in fields(cls)}
            return cls(**{k: v for k, v in data.items() if k in known})
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load settings from {path}, using defaults: {e}")
            return cls()


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    sample_rate: int = SAMPLE_RATE
    stress_threshold: float = STRESS_THRESHOLD
    audio_device_index: int = AUDIO_DEVICE_INDEX
    workdir: str = WORKDIR
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL
    calibration_samples: int = CALIBRATION_SAMPLES_NEEDED
    baseline_window: int = ADAPTIVE_BASELINE_WINDOW
    history_points: int = MAX_HISTORY_POINTS
    worker_queue_size: int = WORKER_QUEUE_SIZE

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.stress_threshold <= 0:
            raise ValueError(f"stress_threshold must be positive, got {self.stress_threshold}")
        if self.calibration_samples <= 0:
            raise ValueError(f"calibration_samples must be positive, got {self.calibration_samples}")
        if self.baseline_window <= 0:
            raise ValueError(f"baseline_window must be positive, got {self.baseline_window}")

    @classmethod
    def from_settings(cls, settings: AppSettings, **overrides) -> 'Config':
        """Build a config from persisted application settings."""
        return cls(
            sample_rate=settings.sample_rate,
            stress_threshold=settings.stress_threshold,
            audio_device_index=settings.audio_device_index,
            **overrides
        )


def _env(name: str, cast, default):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}")


def get_config(settings_path: Optional[str] = None) -> Config:
    """
    Load configuration.

    Persisted settings (if any) are applied first, then environment overrides.
    """
    settings = AppSettings.load(settings_path) if settings_path else AppSettings()

    return Config(
        sample_rate=_env("VSA_SAMPLE_RATE", int, settings.sample_rate),
        stress_threshold=_env("VSA_STRESS_THRESHOLD", float, settings.stress_threshold),
        audio_device_index=_env("VSA_AUDIO_DEVICE_INDEX", int, settings.audio_device_index),
        workdir=_env("VSA_WORKDIR", str, WORKDIR),
        log_level=_env("VSA_LOG_LEVEL", str, LOG_LEVEL),
    )
