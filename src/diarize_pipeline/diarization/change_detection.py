#!/usr/bin/env python3
"""
Speaker Change Detection
------------------------
Turns frame-level class scores from the segmentation model into speaker
change timestamps.

The audio is scanned with overlapping windows. Every window yields a matrix of
raw class scores; a frame whose dominant class differs from the previous frame
of the same window is scored by the entropy of its class distribution. Peaks
of the concatenated score sequence above an adaptive threshold become change
points, which are then sorted and merged.
"""
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from diarize_pipeline.config import (
    CHANGE_POINT_MERGE_DISTANCE,
    DEFAULT_PRE_EMPHASIS,
    DEFAULT_SAMPLE_RATE,
    FALLBACK_CHANGE_INTERVAL,
    FALLBACK_CHANGE_MARGIN,
)
from diarize_pipeline.diarization.peaks import find_peaks
from diarize_pipeline.exceptions import ModelUnavailableError
from diarize_pipeline.interfaces import SegmentationModel

logger = logging.getLogger(__name__)

DETECTION_FLOOR_MIN = 0.01
DETECTION_FLOOR_SCALE = 0.1
ADAPTIVE_PEAK_RATIO = 0.2
TRANSITION_BOOST = 2.0
MIN_CLASS_PROBABILITY = 1e-6


@dataclass
class FrameClassDistribution:
    """Segmentation model output for one window"""
    offset: int
    timestamps: np.ndarray
    scores: np.ndarray

    @property
    def num_frames(self) -> int:
        return int(self.scores.shape[0])


def window_offsets(num_samples: int, window_size: int, hop_size: int) -> List[int]:
    """
    Start offsets of the sliding windows covering a buffer

    Full windows are placed every ``hop_size`` samples while they end strictly
    before the end of the buffer. One more (zero-padded) window is added so
    the tail is covered; a buffer shorter than one window gets a single
    padded window.

    Args:
        num_samples: Buffer length
        window_size: Window length in samples
        hop_size: Distance between window starts

    Returns:
        Ascending list of offsets
    """
    if window_size < 1 or hop_size < 1 or hop_size > window_size:
        raise ValueError(f"Invalid window/hop sizes: {window_size}/{hop_size}")
    if num_samples <= 0:
        return []

    offsets = list(range(0, num_samples - window_size, hop_size))
    if not offsets:
        return [0]
    if offsets[-1] + window_size < num_samples:
        offsets.append(offsets[-1] + hop_size)
    return offsets


def prepare_window(audio: np.ndarray, offset: int, window_size: int,
                   pre_emphasis: float = DEFAULT_PRE_EMPHASIS) -> np.ndarray:
    """
    Cut, pad and normalize one window for the segmentation model

    Args:
        audio: Full audio buffer
        offset: Window start sample
        window_size: Window length in samples
        pre_emphasis: Pre-emphasis coefficient (0 disables the filter)

    Returns:
        float32 window with peak amplitude at most 1
    """
    window = np.zeros(window_size, dtype=np.float32)
    chunk = audio[offset:offset + window_size]
    window[:len(chunk)] = chunk

    if pre_emphasis > 0:
        window[1:] = window[1:] - pre_emphasis * window[:-1]

    peak = float(np.max(np.abs(window))) if window_size else 0.0
    if peak > 1e-6:
        window /= peak
    return window


def frame_timestamps(offset: int, window_size: int, num_frames: int, sample_rate: int) -> np.ndarray:
    """Absolute time of each frame, spread linearly over the window"""
    frame_step = window_size / max(num_frames, 1)
    return (offset + np.arange(num_frames) * frame_step) / float(sample_rate)


def class_entropy(class_scores: np.ndarray) -> float:
    """Shannon entropy of the softmax of raw class scores"""
    shifted = np.asarray(class_scores, dtype=np.float64) - np.max(class_scores)
    exp_scores = np.exp(shifted)
    probabilities = exp_scores / np.sum(exp_scores)
    probabilities = probabilities[probabilities > MIN_CLASS_PROBABILITY]
    return float(-np.sum(probabilities * np.log(probabilities)))


def frame_change_scores(class_scores: np.ndarray) -> np.ndarray:
    """
    Change score of every frame in one window

    The first frame, and frames whose dominant class matches the previous
    frame, score 0. A class transition scores twice the normalized entropy of
    the frame's class distribution, clipped to 1.

    Args:
        class_scores: Raw scores shaped (time_steps, num_classes)

    Returns:
        Scores in [0, 1], one per frame
    """
    class_scores = np.asarray(class_scores, dtype=np.float64)
    num_frames = class_scores.shape[0]
    change_scores = np.zeros(num_frames, dtype=np.float64)
    if num_frames == 0 or class_scores.shape[1] < 2:
        return change_scores

    # argmax keeps the lowest index on ties
    dominant = np.argmax(class_scores, axis=1)
    max_entropy = np.log(class_scores.shape[1])

    for t in range(1, num_frames):
        if dominant[t] == dominant[t - 1]:
            continue
        normalized = min(1.0, class_entropy(class_scores[t]) / max_entropy)
        change_scores[t] = min(1.0, normalized * TRANSITION_BOOST)

    return change_scores


class ChangePointDetector:
    """Speaker change point detection over windowed segmentation output"""

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE,
                 merge_distance: float = CHANGE_POINT_MERGE_DISTANCE,
                 pre_emphasis: float = DEFAULT_PRE_EMPHASIS):
        """
        Initialize the detector

        Args:
            sample_rate: Audio sample rate
            merge_distance: Change points closer than this (seconds) are merged
            pre_emphasis: Pre-emphasis coefficient applied to each window
        """
        self.sample_rate = sample_rate
        self.merge_distance = merge_distance
        self.pre_emphasis = pre_emphasis

    def scan(self, audio: np.ndarray, model: SegmentationModel) -> List[FrameClassDistribution]:
        """
        Run the segmentation model over sliding windows in time order

        Args:
            audio: Normalized audio samples
            model: Segmentation model

        Returns:
            One distribution per successfully processed window

        Raises:
            ModelUnavailableError: if the model is not loaded
        """
        if not model.is_loaded():
            raise ModelUnavailableError("Segmentation model is not loaded")

        offsets = window_offsets(len(audio), model.window_size, model.hop_size)
        logger.debug(f"Scanning {len(audio)} samples with {len(offsets)} windows")

        distributions = []
        for index, offset in enumerate(offsets):
            window = prepare_window(audio, offset, model.window_size, self.pre_emphasis)
            try:
                scores = np.asarray(model.classify(window), dtype=np.float64)
            except ModelUnavailableError:
                raise
            except Exception as e:
                logger.error(f"Window processing failed at sample {offset}: {e}")
                continue

            if scores.ndim == 3 and scores.shape[0] == 1:
                scores = scores[0]
            if scores.ndim != 2 or scores.shape[0] == 0:
                logger.warning(f"Ignoring segmentation output with shape {scores.shape} at sample {offset}")
                continue

            timestamps = frame_timestamps(offset, model.window_size, scores.shape[0], self.sample_rate)
            distributions.append(FrameClassDistribution(offset=offset, timestamps=timestamps, scores=scores))

            if (index + 1) % 5 == 0:
                logger.debug(f"Segmentation progress: {100.0 * (index + 1) / len(offsets):.1f}%")

        return distributions

    def score(self, distributions: Sequence[FrameClassDistribution]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Concatenate per-window change scores in scan order

        Returns:
            Tuple of (timestamps, change_scores)
        """
        if not distributions:
            return np.zeros(0), np.zeros(0)
        timestamps = np.concatenate([d.timestamps for d in distributions])
        scores = np.concatenate([frame_change_scores(d.scores) for d in distributions])
        return timestamps, scores

    @staticmethod
    def adaptive_threshold(scores: np.ndarray, requested_threshold: float) -> float:
        """
        Peak threshold adapted to the score statistics of the whole buffer

        Args:
            scores: All change scores
            requested_threshold: Detection threshold requested by the caller

        Returns:
            Threshold used for peak picking
        """
        floor = max(DETECTION_FLOOR_MIN, requested_threshold * DETECTION_FLOOR_SCALE)
        if len(scores) == 0:
            return floor
        mean_score = float(np.mean(scores))
        max_score = float(np.max(scores))
        return max(floor, mean_score + ADAPTIVE_PEAK_RATIO * (max_score - mean_score))

    @staticmethod
    def fallback_change_points(duration: float) -> List[float]:
        """Evenly spaced change points for long audio without detected changes"""
        points = []
        t = FALLBACK_CHANGE_INTERVAL
        while t < duration - FALLBACK_CHANGE_MARGIN:
            points.append(t)
            t += FALLBACK_CHANGE_INTERVAL
        return points

    def deduplicate(self, change_points: Sequence[float], duration: float) -> List[float]:
        """
        Sort change points and merge those closer than the merge distance

        Points outside (0, duration) are dropped. Within a cluster of close
        points the earliest one is kept.
        """
        merged: List[float] = []
        for point in sorted(p for p in change_points if 0.0 < p < duration):
            if merged and point - merged[-1] < self.merge_distance:
                continue
            merged.append(float(point))
        return merged

    def detect(self, distributions: Sequence[FrameClassDistribution], duration: float,
               threshold: float) -> List[float]:
        """
        Detect speaker change points

        Args:
            distributions: Segmentation output of every window, in scan order
            duration: Total audio duration in seconds
            threshold: Requested detection threshold

        Returns:
            Ascending, deduplicated change point timestamps
        """
        timestamps, scores = self.score(distributions)
        change_points: List[float] = []

        if len(scores):
            adaptive = self.adaptive_threshold(scores, threshold)
            logger.debug(
                f"Change score stats: max={np.max(scores):.4f}, mean={np.mean(scores):.4f}, "
                f"adaptive threshold={adaptive:.4f}"
            )
            for index in find_peaks(scores, adaptive, min_distance=1):
                # Frames of the padded tail window can lie past the end of the audio
                if not 0.0 < timestamps[index] < duration:
                    continue
                change_points.append(float(timestamps[index]))
                logger.debug(f"Change point found at {timestamps[index]:.2f}s (score: {scores[index]:.4f})")

        if not change_points and duration > FALLBACK_CHANGE_MARGIN:
            logger.warning("No change points detected, creating artificial change points")
            change_points = self.fallback_change_points(duration)

        change_points = self.deduplicate(change_points, duration)
        logger.info(f"Found {len(change_points)} speaker change points")
        return change_points

    def detect_from_audio(self, audio: np.ndarray, model: SegmentationModel, threshold: float) -> List[float]:
        """Scan the audio with the model and detect change points"""
        distributions = self.scan(audio, model)
        return self.detect(distributions, len(audio) / float(self.sample_rate), threshold)
