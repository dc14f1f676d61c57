#!/usr/bin/env python3
"""
Diarization Configuration
-------------------------
Default constants and the configuration object consumed by the pipeline.

Values can be passed directly or read from environment variables with
``DiarizationConfig.from_env()``.
"""
import os
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Any

from diarize_pipeline.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Audio defaults
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_SIMILARITY_THRESHOLD = 0.01
DEFAULT_MAX_SPEAKERS = 10

# User-facing threshold range accepted before it reaches the core
MIN_USER_THRESHOLD = 0.01
MAX_USER_THRESHOLD = 0.8

# Segmentation constants
MIN_SEGMENT_DURATION = 2.0
TARGET_EMBEDDING_DURATION = 3.0
CHANGE_POINT_MERGE_DISTANCE = 1.0
FALLBACK_CHANGE_INTERVAL = 30.0
FALLBACK_CHANGE_MARGIN = 10.0
FALLBACK_LONG_AUDIO = 30.0
FALLBACK_SEGMENT_DURATION = 25.0
FALLBACK_SEGMENT_TAIL = 5.0
DEFAULT_PRE_EMPHASIS = 0.97

# Phase thresholds
DETECTION_THRESHOLD_SCALE = 0.1
DETECTION_THRESHOLD_MIN = 0.001
ASSIGNMENT_THRESHOLD_MIN = 0.3


@dataclass
class DiarizationConfig:
    """Tunable parameters of a diarization run"""
    sample_rate: int = DEFAULT_SAMPLE_RATE
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    max_speakers: int = DEFAULT_MAX_SPEAKERS
    min_segment_duration: float = MIN_SEGMENT_DURATION
    target_embedding_duration: float = TARGET_EMBEDDING_DURATION
    pre_emphasis: float = DEFAULT_PRE_EMPHASIS
    # Independent overrides for the two phases; None derives them from similarity_threshold
    detection_threshold: Optional[float] = None
    assignment_threshold: Optional[float] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check configuration values

        Raises:
            ConfigurationError: if any value is out of range
        """
        if self.sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.max_speakers < 1:
            raise ConfigurationError(f"max_speakers must be >= 1, got {self.max_speakers}")
        if self.min_segment_duration < 0:
            raise ConfigurationError("min_segment_duration must not be negative")
        if self.target_embedding_duration <= 0:
            raise ConfigurationError("target_embedding_duration must be positive")
        if not 0.0 <= self.pre_emphasis < 1.0:
            raise ConfigurationError(f"pre_emphasis must be in [0, 1), got {self.pre_emphasis}")

    def effective_detection_threshold(self) -> float:
        """Loose threshold handed to change point detection"""
        if self.detection_threshold is not None:
            return self.detection_threshold
        return max(DETECTION_THRESHOLD_MIN, self.similarity_threshold * DETECTION_THRESHOLD_SCALE)

    def effective_assignment_threshold(self) -> float:
        """Strict threshold handed to speaker clustering"""
        if self.assignment_threshold is not None:
            return self.assignment_threshold
        return max(ASSIGNMENT_THRESHOLD_MIN, self.similarity_threshold)

    @property
    def target_embedding_length(self) -> int:
        return int(self.target_embedding_duration * self.sample_rate)

    @classmethod
    def from_env(cls, **overrides) -> "DiarizationConfig":
        """
        Build a configuration from DIARIZE_* environment variables

        Args:
            **overrides: Values that take precedence over the environment

        Returns:
            DiarizationConfig instance
        """
        values: Dict[str, Any] = {
            "sample_rate": int(os.getenv("DIARIZE_SAMPLE_RATE", DEFAULT_SAMPLE_RATE)),
            "similarity_threshold": float(os.getenv("DIARIZE_THRESHOLD", DEFAULT_SIMILARITY_THRESHOLD)),
            "max_speakers": int(os.getenv("DIARIZE_MAX_SPEAKERS", DEFAULT_MAX_SPEAKERS)),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def default_model_paths() -> Dict[str, Optional[str]]:
    """Model locations taken from the environment, if set"""
    return {
        "segment_model": os.getenv("DIARIZE_SEGMENT_MODEL"),
        "embedding_model": os.getenv("DIARIZE_EMBEDDING_MODEL"),
    }


def clamp_threshold(value: float) -> float:
    """
    Clamp a user supplied similarity threshold to the supported range

    Args:
        value: Requested threshold

    Returns:
        Threshold within [MIN_USER_THRESHOLD, MAX_USER_THRESHOLD]
    """
    if value > MAX_USER_THRESHOLD:
        logger.warning(f"Threshold {value} is very high, adjusting to {MAX_USER_THRESHOLD}")
        return MAX_USER_THRESHOLD
    if value < MIN_USER_THRESHOLD:
        logger.warning(f"Threshold {value} is very low, adjusting to {MIN_USER_THRESHOLD}")
        return MIN_USER_THRESHOLD
    return value
