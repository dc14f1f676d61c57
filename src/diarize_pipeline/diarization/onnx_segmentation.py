#!/usr/bin/env python3
"""
ONNX Segmentation Model
-----------------------
Runs an ONNX export of the pyannote segmentation-3.0 model with onnxruntime.

The model takes a [batch, channels, samples] window and returns
[batch, time_steps, classes] scores (7 powerset classes for segmentation-3.0).
"""
import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from diarize_pipeline.config import DEFAULT_SAMPLE_RATE
from diarize_pipeline.exceptions import ModelUnavailableError
from diarize_pipeline.interfaces import SegmentationModel

logger = logging.getLogger(__name__)

try:
    import onnxruntime as ort
    ONNXRUNTIME_AVAILABLE = True
except ImportError:
    ONNXRUNTIME_AVAILABLE = False
    logger.warning("onnxruntime not available. ONNX model backends will be disabled.")

# segmentation-3.0 expects 3.2s windows at 16kHz, scanned with 50% overlap
WINDOW_DURATION = 3.2
HOP_DURATION = 1.6


def create_session(model_path: Union[str, Path], threads: int = 4):
    """
    Create an onnxruntime CPU inference session

    Args:
        model_path: Path to the .onnx file
        threads: Intra-op thread count

    Returns:
        onnxruntime.InferenceSession
    """
    options = ort.SessionOptions()
    options.intra_op_num_threads = threads
    options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    options.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
    return ort.InferenceSession(str(model_path), sess_options=options, providers=["CPUExecutionProvider"])


class OnnxSegmentationModel(SegmentationModel):
    """Speaker segmentation with an ONNX model"""

    def __init__(self, model_path: Union[str, Path], sample_rate: int = DEFAULT_SAMPLE_RATE, threads: int = 4):
        """
        Initialize the segmentation model wrapper

        Args:
            model_path: Path to the segmentation ONNX model
            sample_rate: Audio sample rate
            threads: Intra-op thread count for onnxruntime
        """
        self.model_path = Path(model_path)
        self.sample_rate = sample_rate
        self.window_size = int(round(WINDOW_DURATION * sample_rate))
        self.hop_size = int(round(HOP_DURATION * sample_rate))
        self.threads = threads
        self.session = None
        self.input_name: Optional[str] = None
        self.output_name: Optional[str] = None

    def load(self) -> bool:
        """
        Load the ONNX session

        Returns:
            True if the model is ready
        """
        if not ONNXRUNTIME_AVAILABLE:
            logger.error("Cannot load segmentation model: onnxruntime is not installed")
            return False

        try:
            logger.info(f"Loading segmentation model: {self.model_path}")
            self.session = create_session(self.model_path, threads=self.threads)
            self.input_name = self.session.get_inputs()[0].name
            self.output_name = self.session.get_outputs()[0].name
            logger.info(
                f"Segmentation model loaded (window={self.window_size} samples, hop={self.hop_size} samples)"
            )
            return True
        except Exception as e:
            logger.error(f"Failed to load segmentation model: {e}")
            self.session = None
            return False

    def is_loaded(self) -> bool:
        return self.session is not None

    def classify(self, window: np.ndarray) -> np.ndarray:
        if self.session is None:
            raise ModelUnavailableError("Segmentation model is not loaded")

        batch = np.ascontiguousarray(window, dtype=np.float32).reshape(1, 1, -1)
        outputs = self.session.run([self.output_name], {self.input_name: batch})
        scores = np.asarray(outputs[0])
        logger.debug(f"Segmentation output shape: {scores.shape}")
        # [1, time_steps, classes] -> [time_steps, classes]
        return scores[0]
