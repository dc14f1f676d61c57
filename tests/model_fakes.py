"""
In-memory stand-ins for the segmentation and embedding models used in tests
"""
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence, Set

import numpy as np

# Add the src directory to the path to import the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from diarize_pipeline.interfaces import EmbeddingModel, SegmentationModel


class ScriptedSegmentationModel(SegmentationModel):
    """
    Reports a dominant class per frame from a function of absolute time

    Windows are assumed to arrive in scan order (offset = calls * hop_size),
    which is how the change detector invokes the model.
    """

    def __init__(self, class_at: Callable[[float], int], sample_rate: int = 1000,
                 window_size: int = 1000, hop_size: int = 500, num_frames: int = 10,
                 num_classes: int = 3, loaded: bool = True):
        self.class_at = class_at
        self.sample_rate = sample_rate
        self.window_size = window_size
        self.hop_size = hop_size
        self.num_frames = num_frames
        self.num_classes = num_classes
        self.loaded = loaded
        self.calls = 0
        self.windows = []

    def rewind(self):
        self.calls = 0
        self.windows = []

    def is_loaded(self) -> bool:
        return self.loaded

    def classify(self, window: np.ndarray) -> np.ndarray:
        offset = self.calls * self.hop_size
        self.calls += 1
        self.windows.append(window)
        frame_step = self.window_size / self.num_frames
        scores = np.zeros((self.num_frames, self.num_classes))
        for j in range(self.num_frames):
            t = (offset + j * frame_step) / self.sample_rate
            scores[j, self.class_at(t)] = 2.0
        return scores


class SequenceEmbeddingModel(EmbeddingModel):
    """Returns predefined raw vectors in call order, optionally failing on some calls"""

    def __init__(self, vectors: Sequence[Sequence[float]], sample_rate: int = 1000,
                 fail_on: Optional[Set[int]] = None, loaded: bool = True):
        self.vectors = [np.asarray(v, dtype=np.float32) for v in vectors]
        self.sample_rate = sample_rate
        self.fail_on = fail_on or set()
        self.loaded = loaded
        self.calls = 0
        self.inputs = []

    def rewind(self):
        self.calls = 0
        self.inputs = []

    def is_loaded(self) -> bool:
        return self.loaded

    def embed(self, samples: np.ndarray) -> np.ndarray:
        index = self.calls
        self.calls += 1
        self.inputs.append(samples)
        if index in self.fail_on:
            raise RuntimeError(f"embedding failed for call {index}")
        return self.vectors[index % len(self.vectors)]


def unit(vector: Sequence[float]) -> np.ndarray:
    array = np.asarray(vector, dtype=np.float32)
    return array / np.linalg.norm(array)
