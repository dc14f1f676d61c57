#!/usr/bin/env python3
"""
Speaker Embedding Extractor
--------------------------
Extract unit-length speaker embeddings for audio segments.

Segments are padded or truncated to the fixed length the embedding model
expects and peak-normalized before inference; the raw model output is
L2-normalized afterwards. Two model backends are provided: SpeechBrain's
ECAPA-TDNN and ONNX exports run with onnxruntime.
"""
import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from diarize_pipeline.config import DEFAULT_SAMPLE_RATE, TARGET_EMBEDDING_DURATION
from diarize_pipeline.diarization.onnx_segmentation import ONNXRUNTIME_AVAILABLE, create_session
from diarize_pipeline.exceptions import ModelUnavailableError
from diarize_pipeline.interfaces import EmbeddingModel

logger = logging.getLogger(__name__)

try:
    import torch
    try:
        # SpeechBrain 1.0+ uses the inference module path
        from speechbrain.inference import EncoderClassifier
    except ImportError:
        # Fallback for older SpeechBrain versions
        from speechbrain.pretrained import EncoderClassifier
    SPEECHBRAIN_AVAILABLE = True
except ImportError:
    SPEECHBRAIN_AVAILABLE = False

# Default model cache for SpeechBrain downloads
DEFAULT_MODEL_PATH = Path("models/ecapa-tdnn")
DEFAULT_SPEECHBRAIN_SOURCE = "speechbrain/spkrec-ecapa-voxceleb"


def normalize_embedding(embedding: np.ndarray) -> np.ndarray:
    """
    Scale a vector to unit L2 norm

    Args:
        embedding: Raw embedding

    Returns:
        Unit-norm float32 vector; an all-zero input stays all-zero
    """
    vector = np.asarray(embedding, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return np.zeros_like(vector)
    return vector / norm


def prepare_segment_audio(samples: np.ndarray, target_length: int) -> np.ndarray:
    """
    Pad or truncate a segment to the model input length and peak-normalize it

    Args:
        samples: Segment samples
        target_length: Model input length in samples

    Returns:
        float32 array of exactly target_length samples
    """
    prepared = np.zeros(target_length, dtype=np.float32)
    copy_length = min(len(samples), target_length)
    prepared[:copy_length] = samples[:copy_length]

    peak = float(np.max(np.abs(prepared))) if target_length else 0.0
    if peak > 1e-6:
        prepared /= peak
    return prepared


class SpeakerEmbeddingExtractor:
    """Extract normalized speaker embeddings with a pluggable model"""

    def __init__(self, model: EmbeddingModel, sample_rate: int = DEFAULT_SAMPLE_RATE,
                 target_duration: float = TARGET_EMBEDDING_DURATION):
        """
        Initialize speaker embedding extractor

        Args:
            model: Embedding model backend
            sample_rate: Audio sample rate
            target_duration: Model input duration in seconds
        """
        self.model = model
        self.sample_rate = sample_rate
        self.target_length = int(target_duration * sample_rate)

    def is_ready(self) -> bool:
        return self.model.is_loaded()

    def extract(self, samples: np.ndarray) -> np.ndarray:
        """
        Extract embedding from a segment

        Args:
            samples: Segment samples

        Returns:
            Unit-norm speaker embedding

        Raises:
            ModelUnavailableError: if the model is not loaded
        """
        if not self.model.is_loaded():
            raise ModelUnavailableError("Embedding model is not loaded")

        prepared = prepare_segment_audio(samples, self.target_length)
        raw = self.model.embed(prepared)
        return normalize_embedding(raw)

    @staticmethod
    def compute_similarity(embedding1: np.ndarray, embedding2: np.ndarray) -> float:
        """
        Cosine similarity of two unit-norm embeddings

        Returns:
            Similarity clipped to [-1, 1]
        """
        similarity = float(np.dot(embedding1, embedding2))
        return max(-1.0, min(similarity, 1.0))


class SpeechBrainEmbeddingModel(EmbeddingModel):
    """Speaker embeddings from SpeechBrain's ECAPA-TDNN model"""

    def __init__(self, model_path: Optional[str] = None, cache_dir: Optional[str] = None,
                 sample_rate: int = DEFAULT_SAMPLE_RATE, device: str = "cpu"):
        """
        Initialize the SpeechBrain backend

        Args:
            model_path: Hugging Face source or local directory of the model
            cache_dir: Directory to cache model files
            sample_rate: Audio sample rate
            device: Torch device
        """
        self.model_path = model_path or DEFAULT_SPEECHBRAIN_SOURCE
        self.cache_dir = cache_dir or str(DEFAULT_MODEL_PATH)
        self.sample_rate = sample_rate
        self.device = device
        self.classifier = None

    def load(self) -> bool:
        """Load model (will download if needed)"""
        if not SPEECHBRAIN_AVAILABLE:
            logger.error("Cannot load embedding model: speechbrain is not installed")
            return False

        try:
            Path(self.cache_dir).mkdir(exist_ok=True, parents=True)
            self.classifier = EncoderClassifier.from_hparams(
                source=self.model_path,
                savedir=self.cache_dir,
                run_opts={"device": self.device}
            )
            logger.info(f"Loaded ECAPA-TDNN speaker embedding model on {self.classifier.device}")
            return True
        except Exception as e:
            logger.error(f"Failed to load embedding model {self.model_path}: {e}")
            self.classifier = None
            return False

    def is_loaded(self) -> bool:
        return self.classifier is not None

    def embed(self, samples: np.ndarray) -> np.ndarray:
        if self.classifier is None:
            raise ModelUnavailableError("Embedding model is not loaded")

        signal = torch.from_numpy(np.ascontiguousarray(samples, dtype=np.float32)).unsqueeze(0)
        with torch.no_grad():
            embedding = self.classifier.encode_batch(signal)
        return embedding.squeeze().cpu().numpy()


class OnnxEmbeddingModel(EmbeddingModel):
    """Speaker embeddings from an ONNX export (e.g. pyannote embedding)"""

    def __init__(self, model_path: Union[str, Path], sample_rate: int = DEFAULT_SAMPLE_RATE, threads: int = 4):
        self.model_path = Path(model_path)
        self.sample_rate = sample_rate
        self.threads = threads
        self.session = None
        self.input_name: Optional[str] = None
        self.output_name: Optional[str] = None

    def load(self) -> bool:
        """Load the ONNX session"""
        if not ONNXRUNTIME_AVAILABLE:
            logger.error("Cannot load embedding model: onnxruntime is not installed")
            return False

        try:
            logger.info(f"Loading embedding model: {self.model_path}")
            self.session = create_session(self.model_path, threads=self.threads)
            self.input_name = self.session.get_inputs()[0].name
            self.output_name = self.session.get_outputs()[0].name
            return True
        except Exception as e:
            logger.error(f"Failed to load embedding model: {e}")
            self.session = None
            return False

    def is_loaded(self) -> bool:
        return self.session is not None

    def embed(self, samples: np.ndarray) -> np.ndarray:
        if self.session is None:
            raise ModelUnavailableError("Embedding model is not loaded")

        # The embedding model takes [batch, samples]
        batch = np.ascontiguousarray(samples, dtype=np.float32).reshape(1, -1)
        outputs = self.session.run([self.output_name], {self.input_name: batch})
        return np.asarray(outputs[0]).reshape(-1)
