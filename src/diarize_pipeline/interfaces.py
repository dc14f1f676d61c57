#!/usr/bin/env python3
"""
Model Interfaces
----------------
Abstract contracts for the two neural models the pipeline depends on.

Backends live next to the component that uses them:
``diarization.onnx_segmentation`` and ``speaker.embeddings``.
"""
from abc import ABC, abstractmethod

import numpy as np


class SegmentationModel(ABC):
    """Frame-level speaker class scores for fixed-length audio windows"""

    #: Window length and hop in samples, fixed by the model
    window_size: int
    hop_size: int
    sample_rate: int

    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether the model is ready for inference."""

    @abstractmethod
    def classify(self, window: np.ndarray) -> np.ndarray:
        """Return raw class scores shaped (time_steps, num_classes) for one window."""


class EmbeddingModel(ABC):
    """Fixed-length speaker embeddings for audio segments"""

    sample_rate: int

    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether the model is ready for inference."""

    @abstractmethod
    def embed(self, samples: np.ndarray) -> np.ndarray:
        """Return the raw (unnormalized) embedding vector for prepared samples."""
