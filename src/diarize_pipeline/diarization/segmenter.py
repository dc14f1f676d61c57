#!/usr/bin/env python3
"""
Audio Segmenter
---------------
Builds bounded audio segments from speaker change points.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from diarize_pipeline.config import (
    DEFAULT_SAMPLE_RATE,
    FALLBACK_LONG_AUDIO,
    FALLBACK_SEGMENT_DURATION,
    FALLBACK_SEGMENT_TAIL,
    MIN_SEGMENT_DURATION,
)

logger = logging.getLogger(__name__)

UNASSIGNED_SPEAKER = -1


@dataclass
class Segment:
    """A contiguous time interval of the recording"""
    start_time: float
    end_time: float
    samples: np.ndarray = field(repr=False)
    speaker_id: int = UNASSIGNED_SPEAKER
    confidence: float = 0.0
    text: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


class Segmenter:
    """Splits an audio buffer at change points"""

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE,
                 min_segment_duration: float = MIN_SEGMENT_DURATION):
        self.sample_rate = sample_rate
        self.min_segment_duration = min_segment_duration

    def _make_segment(self, audio: np.ndarray, start: float, end: float) -> Optional[Segment]:
        start_sample = int(start * self.sample_rate)
        end_sample = min(int(end * self.sample_rate), len(audio))
        if start_sample >= end_sample:
            return None
        return Segment(start_time=start, end_time=end, samples=audio[start_sample:end_sample])

    def fixed_length_segments(self, audio: np.ndarray, duration: float) -> List[Segment]:
        """
        Fixed-length segments for long audio with no change points

        Segments of FALLBACK_SEGMENT_DURATION seconds start at 0 and continue
        while the start is more than FALLBACK_SEGMENT_TAIL seconds before the
        end; the last one is clamped to the buffer end.
        """
        segments = []
        start = 0.0
        while start < duration - FALLBACK_SEGMENT_TAIL:
            end = min(start + FALLBACK_SEGMENT_DURATION, duration)
            segment = self._make_segment(audio, start, end)
            if segment is not None:
                segments.append(segment)
                logger.debug(f"Created segment: {start:.2f}s - {end:.2f}s")
            start += FALLBACK_SEGMENT_DURATION
        return segments

    def create_segments(self, change_points: Sequence[float], audio: np.ndarray,
                        duration: Optional[float] = None) -> List[Segment]:
        """
        Create segments between consecutive change points

        Args:
            change_points: Ascending change point timestamps (may be empty)
            audio: Audio buffer
            duration: Total duration in seconds (derived from the buffer if omitted)

        Returns:
            Segments in time order
        """
        if duration is None:
            duration = len(audio) / float(self.sample_rate)

        if not change_points:
            logger.warning("No change points detected, creating segments based on duration")
            if duration > FALLBACK_LONG_AUDIO:
                return self.fixed_length_segments(audio, duration)
            # Short audio is kept whole, whatever its length
            return [Segment(start_time=0.0, end_time=duration, samples=audio)]

        boundaries = [0.0] + [float(p) for p in change_points] + [duration]
        segments = []
        for start, end in zip(boundaries[:-1], boundaries[1:]):
            if end - start < self.min_segment_duration:
                # The interval is dropped, not merged into a neighbour
                logger.debug(f"Dropping short interval {start:.2f}s - {end:.2f}s")
                continue
            segment = self._make_segment(audio, start, end)
            if segment is not None:
                segments.append(segment)

        logger.info(f"Created {len(segments)} audio segments")
        return segments
