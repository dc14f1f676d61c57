#!/usr/bin/env python3
"""
Diarization Pipeline
--------------------
Integrates change detection, segmentation and speaker clustering.

A run has two phases. The detection phase scans the audio with the
segmentation model using a deliberately loose threshold, so candidate
boundaries are over-detected. The clustering phase embeds each resulting
segment and assigns it to a speaker using a stricter threshold, so distinct
speakers are not merged. Failures on individual segments fall back to a
round-robin speaker id and never stop the run.
"""
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from diarize_pipeline.config import DiarizationConfig
from diarize_pipeline.diarization.change_detection import ChangePointDetector
from diarize_pipeline.diarization.segmenter import Segment, Segmenter
from diarize_pipeline.exceptions import InvalidAudioError, ModelUnavailableError, SegmentProcessingError
from diarize_pipeline.interfaces import EmbeddingModel, SegmentationModel
from diarize_pipeline.media.audio_loader import AudioBuffer, normalize_audio
from diarize_pipeline.speaker.clustering import DEFAULT_CONFIDENCE, ClusterState, SpeakerClusterer
from diarize_pipeline.speaker.embeddings import SpeakerEmbeddingExtractor

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class SegmentOutcome:
    """Speaker assignment result for one segment"""
    index: int
    speaker_id: int
    confidence: float
    error: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.error is not None


@dataclass
class SpeakerStats:
    """Aggregated statistics for one speaker"""
    speaker_id: int
    segment_count: int = 0
    total_duration: float = 0.0
    average_confidence: float = 0.0


@dataclass
class DiarizationResult:
    """Container for the complete diarization result"""
    segments: List[Segment]
    speakers: Dict[int, SpeakerStats]
    change_points: List[float] = field(default_factory=list)
    duration: float = 0.0
    sample_rate: int = 0
    outcomes: List[SegmentOutcome] = field(default_factory=list)
    state: ClusterState = field(default_factory=ClusterState.empty)
    processing_time: float = 0.0

    @property
    def num_speakers(self) -> int:
        return len(self.speakers)

    @property
    def is_empty(self) -> bool:
        return not self.segments


def aggregate_speaker_stats(segments: List[Segment]) -> Dict[int, SpeakerStats]:
    """
    Per-speaker segment count, total duration and mean confidence

    Args:
        segments: Labeled segments

    Returns:
        Statistics keyed by speaker id, in ascending id order
    """
    stats: Dict[int, SpeakerStats] = {}
    confidence_sums: Dict[int, float] = {}

    for segment in segments:
        speaker = stats.setdefault(segment.speaker_id, SpeakerStats(speaker_id=segment.speaker_id))
        speaker.segment_count += 1
        speaker.total_duration += segment.duration
        confidence_sums[segment.speaker_id] = confidence_sums.get(segment.speaker_id, 0.0) + segment.confidence

    for speaker_id, speaker in stats.items():
        speaker.average_confidence = confidence_sums[speaker_id] / speaker.segment_count

    return dict(sorted(stats.items()))


class DiarizationPipeline:
    """End-to-end speaker diarization over an in-memory audio buffer"""

    def __init__(
        self,
        segmentation_model: SegmentationModel,
        embedding_model: EmbeddingModel,
        config: Optional[DiarizationConfig] = None
    ):
        """
        Initialize the pipeline

        Args:
            segmentation_model: Model producing frame class scores per window
            embedding_model: Model producing speaker embeddings per segment
            config: Run configuration (defaults if omitted)
        """
        self.config = config or DiarizationConfig()
        self.segmentation_model = segmentation_model
        self.embedding_extractor = SpeakerEmbeddingExtractor(
            embedding_model,
            sample_rate=self.config.sample_rate,
            target_duration=self.config.target_embedding_duration
        )
        self.change_detector = ChangePointDetector(
            sample_rate=self.config.sample_rate,
            pre_emphasis=self.config.pre_emphasis
        )
        self.segmenter = Segmenter(
            sample_rate=self.config.sample_rate,
            min_segment_duration=self.config.min_segment_duration
        )
        self.clusterer = SpeakerClusterer(
            threshold=self.config.effective_assignment_threshold(),
            max_speakers=self.config.max_speakers
        )
        self.state = ClusterState.empty()

        logger.info(
            f"Diarization pipeline initialized: detection threshold={self.config.effective_detection_threshold()}, "
            f"assignment threshold={self.clusterer.threshold}, max speakers={self.config.max_speakers}"
        )

    def reset(self) -> None:
        """Forget all speaker profiles from previous runs"""
        self.state = ClusterState.empty()
        logger.debug("Speaker clustering state reset")

    def _prepare_audio(self, audio: Union[AudioBuffer, np.ndarray]) -> np.ndarray:
        if isinstance(audio, AudioBuffer):
            if audio.sample_rate != self.config.sample_rate:
                raise InvalidAudioError(
                    f"Audio sample rate {audio.sample_rate} does not match pipeline rate {self.config.sample_rate}"
                )
            audio = audio.samples

        samples = np.asarray(audio)
        if samples.ndim != 1:
            raise InvalidAudioError(f"Expected mono audio, got array with shape {samples.shape}")
        if samples.size == 0:
            raise InvalidAudioError("Audio buffer is empty")
        if not np.issubdtype(samples.dtype, np.number):
            raise InvalidAudioError(f"Audio samples must be numeric, got {samples.dtype}")
        if not np.all(np.isfinite(samples)):
            raise InvalidAudioError("Audio buffer contains NaN or infinite samples")
        return normalize_audio(samples)

    def detect_speaker_changes(self, audio: np.ndarray) -> List[float]:
        """
        Detection phase: change points found with the loose detection threshold

        An unavailable segmentation model yields no change points.
        """
        detection_threshold = self.config.effective_detection_threshold()
        logger.info(f"Using detection threshold: {detection_threshold}")
        try:
            return self.change_detector.detect_from_audio(audio, self.segmentation_model, detection_threshold)
        except ModelUnavailableError as e:
            logger.error(f"Speaker change detection skipped: {e}")
            return []

    def process_segment(self, state: ClusterState, index: int,
                        segment: Segment) -> Tuple[ClusterState, SegmentOutcome]:
        """
        Embed one segment and assign it to a speaker

        Any failure leaves the state unchanged and yields a fallback outcome.

        Returns:
            Tuple of (next state, outcome)
        """
        try:
            embedding = self.embedding_extractor.extract(segment.samples)
            assignment = self.clusterer.assign(state, embedding)
        except Exception as e:
            error = SegmentProcessingError(index, str(e), cause=e)
            logger.error(f"Speaker assignment failed: {error}")
            fallback_id = index % self.config.max_speakers
            return state, SegmentOutcome(index, fallback_id, DEFAULT_CONFIDENCE, error=str(error))

        return assignment.state, SegmentOutcome(index, assignment.speaker_id, assignment.confidence)

    def assign_speakers(self, segments: List[Segment],
                        state: ClusterState) -> Tuple[ClusterState, List[SegmentOutcome]]:
        """
        Clustering phase: fold the time-ordered segments through the clusterer

        Returns:
            Tuple of (final state, one outcome per segment)
        """
        outcomes = []
        for index, segment in enumerate(segments):
            state, outcome = self.process_segment(state, index, segment)
            outcomes.append(outcome)
            if index % 5 == 0:
                logger.debug(f"Speaker assignment progress: {100.0 * index / len(segments):.1f}%")
        return state, outcomes

    def process_audio(self, audio: Union[AudioBuffer, np.ndarray]) -> DiarizationResult:
        """
        Run diarization on a complete audio buffer

        Args:
            audio: Mono samples at the configured sample rate, or an AudioBuffer

        Returns:
            DiarizationResult with labeled segments and speaker statistics

        Raises:
            InvalidAudioError: if the buffer is malformed
        """
        start_time = time.time()
        samples = self._prepare_audio(audio)
        sample_rate = self.config.sample_rate
        duration = len(samples) / float(sample_rate)
        logger.info(f"Processing audio: {len(samples)} samples ({duration:.2f} seconds)")

        # Step 1: Detect speaker change points
        change_points = self.detect_speaker_changes(samples)

        # Step 2: Create segments
        segments = self.segmenter.create_segments(change_points, samples, duration)

        result = DiarizationResult(
            segments=[],
            speakers={},
            change_points=change_points,
            duration=duration,
            sample_rate=sample_rate,
            state=self.state
        )

        if not segments:
            logger.warning("No segments created, returning empty result")
            result.processing_time = time.time() - start_time
            return result

        if not self.embedding_extractor.is_ready():
            logger.error("Speaker embedding model not loaded, skipping speaker assignment")
            result.processing_time = time.time() - start_time
            return result

        # Step 3: Assign speakers
        assignment_threshold = self.clusterer.threshold
        logger.info(f"Using speaker assignment threshold: {assignment_threshold}")
        self.state, outcomes = self.assign_speakers(segments, self.state)

        labeled = [
            replace(segment, speaker_id=outcome.speaker_id, confidence=outcome.confidence)
            for segment, outcome in zip(segments, outcomes)
        ]

        result.segments = labeled
        result.outcomes = outcomes
        result.speakers = aggregate_speaker_stats(labeled)
        result.state = self.state
        result.processing_time = time.time() - start_time

        failures = sum(1 for outcome in outcomes if outcome.is_fallback)
        if failures:
            logger.warning(f"{failures} of {len(outcomes)} segments used fallback speaker assignment")
        logger.info(
            f"Diarization complete: {len(labeled)} segments, {result.num_speakers} speakers "
            f"in {result.processing_time:.2f}s"
        )
        return result
