#!/usr/bin/env python3
"""
Audio Loading
-------------
Loads mono audio at the pipeline sample rate. Decoding and resampling are
delegated to librosa.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import numpy as np

from diarize_pipeline.config import DEFAULT_SAMPLE_RATE
from diarize_pipeline.exceptions import InvalidAudioError

logger = logging.getLogger(__name__)


@dataclass
class AudioBuffer:
    """Mono samples with their sample rate"""
    samples: np.ndarray = field(repr=False)
    sample_rate: int = DEFAULT_SAMPLE_RATE

    @property
    def duration(self) -> float:
        return len(self.samples) / float(self.sample_rate)


def normalize_audio(samples: np.ndarray) -> np.ndarray:
    """
    Peak-normalize samples to [-1, 1]

    Args:
        samples: Audio samples

    Returns:
        float32 copy with peak magnitude 1 (silence is returned unchanged)
    """
    audio = np.asarray(samples, dtype=np.float32).copy()
    if audio.size == 0:
        return audio
    peak = float(np.max(np.abs(audio)))
    if peak > 1e-6:
        audio /= peak
    return audio


def load_audio(audio_path: Union[str, Path], sample_rate: int = DEFAULT_SAMPLE_RATE) -> AudioBuffer:
    """
    Load an audio file as a normalized mono buffer

    Args:
        audio_path: Path to audio file
        sample_rate: Target sample rate

    Returns:
        AudioBuffer

    Raises:
        FileNotFoundError: if the file does not exist
        InvalidAudioError: if the file decodes to no samples
    """
    audio_path = Path(audio_path)
    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file not found: {audio_path}")

    import librosa

    samples, _ = librosa.load(str(audio_path), sr=sample_rate, mono=True)
    if samples.size == 0:
        raise InvalidAudioError(f"Audio file is empty: {audio_path}")

    buffer = AudioBuffer(samples=normalize_audio(samples), sample_rate=sample_rate)
    logger.info(f"Audio loaded: {len(buffer.samples)} samples, {buffer.duration:.2f} seconds")
    return buffer
