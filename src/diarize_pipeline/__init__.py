"""
Diarize Pipeline
----------------
Offline speaker diarization: change point detection, segmentation and
online speaker clustering over neural model outputs.
"""
from diarize_pipeline.config import DiarizationConfig
from diarize_pipeline.diarization.segmenter import Segment
from diarize_pipeline.exceptions import (
    ConfigurationError,
    DiarizationError,
    InvalidAudioError,
    ModelUnavailableError,
    SegmentProcessingError,
)
from diarize_pipeline.pipeline.diarization_pipeline import (
    DiarizationPipeline,
    DiarizationResult,
    SpeakerStats,
)

__version__ = "0.1.0"

__all__ = [
    "DiarizationConfig",
    "DiarizationPipeline",
    "DiarizationResult",
    "Segment",
    "SpeakerStats",
    "DiarizationError",
    "ConfigurationError",
    "InvalidAudioError",
    "ModelUnavailableError",
    "SegmentProcessingError",
]
