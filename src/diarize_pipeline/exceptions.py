#!/usr/bin/env python3
"""
Diarization Errors
------------------
Exception hierarchy shared by the diarization pipeline components.
"""
from typing import Optional


class DiarizationError(Exception):
    """Base class for all diarization failures"""


class ConfigurationError(DiarizationError):
    """Raised when pipeline configuration values are out of range"""


class ModelUnavailableError(DiarizationError):
    """Raised when a segmentation or embedding model is not ready for inference"""


class InvalidAudioError(DiarizationError):
    """Raised for malformed audio buffers; aborts the whole run"""


class SegmentProcessingError(DiarizationError):
    """Failure while embedding or clustering a single segment"""

    def __init__(self, segment_index: int, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"Segment {segment_index}: {message}")
        self.segment_index = segment_index
        self.cause = cause
