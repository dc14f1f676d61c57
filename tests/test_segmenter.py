#!/usr/bin/env python3
"""
Tests for building segments from change points
"""
import sys
import unittest
from pathlib import Path

import numpy as np

# Add the src directory to the path to import the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from diarize_pipeline.diarization.segmenter import UNASSIGNED_SPEAKER, Segment, Segmenter


def spans(segments):
    return [(round(s.start_time, 6), round(s.end_time, 6)) for s in segments]


class TestSegmenter(unittest.TestCase):
    """Test segment creation"""

    def setUp(self):
        self.sample_rate = 1000
        self.segmenter = Segmenter(sample_rate=self.sample_rate, min_segment_duration=2.0)

    def audio(self, seconds):
        return np.arange(int(seconds * self.sample_rate), dtype=np.float32)

    def test_short_audio_without_changes_is_one_segment(self):
        audio = self.audio(20.0)
        segments = self.segmenter.create_segments([], audio)
        self.assertEqual(spans(segments), [(0.0, 20.0)])
        self.assertEqual(len(segments[0].samples), len(audio))

    def test_very_short_audio_is_kept(self):
        segments = self.segmenter.create_segments([], self.audio(1.0))
        self.assertEqual(spans(segments), [(0.0, 1.0)])

    def test_long_audio_without_changes_uses_fixed_segments(self):
        self.assertEqual(
            spans(self.segmenter.create_segments([], self.audio(40.0))),
            [(0.0, 25.0), (25.0, 40.0)]
        )
        self.assertEqual(
            spans(self.segmenter.create_segments([], self.audio(60.0))),
            [(0.0, 25.0), (25.0, 50.0), (50.0, 60.0)]
        )

    def test_fixed_segments_skip_short_tail(self):
        # A start within 5 s of the end does not open a new segment
        self.assertEqual(
            spans(self.segmenter.create_segments([], self.audio(54.0))),
            [(0.0, 25.0), (25.0, 50.0)]
        )

    def test_split_at_change_point(self):
        audio = self.audio(30.0)
        segments = self.segmenter.create_segments([12.3], audio)
        self.assertEqual(spans(segments), [(0.0, 12.3), (12.3, 30.0)])
        self.assertEqual(len(segments[0].samples), 12300)
        self.assertEqual(len(segments[1].samples), 17700)
        self.assertEqual(float(segments[1].samples[0]), 12300.0)

    def test_short_intervals_are_dropped(self):
        segments = self.segmenter.create_segments([5.0, 6.0], self.audio(20.0))
        self.assertEqual(spans(segments), [(0.0, 5.0), (6.0, 20.0)])

    def test_segments_respect_minimum_duration(self):
        change_points = [1.5, 4.0, 5.0, 9.0, 10.5, 18.0]
        segments = self.segmenter.create_segments(change_points, self.audio(20.0))
        self.assertTrue(segments)
        for segment in segments:
            self.assertGreaterEqual(segment.duration, 2.0)
        for a, b in zip(segments, segments[1:]):
            self.assertLessEqual(a.end_time, b.start_time)

    def test_explicit_duration_clamps_samples(self):
        audio = self.audio(10.0)
        segments = self.segmenter.create_segments([4.0], audio, duration=12.0)
        self.assertEqual(spans(segments), [(0.0, 4.0), (4.0, 12.0)])
        self.assertEqual(len(segments[1].samples), 6000)

    def test_new_segments_are_unassigned(self):
        segment = self.segmenter.create_segments([], self.audio(3.0))[0]
        self.assertEqual(segment.speaker_id, UNASSIGNED_SPEAKER)
        self.assertEqual(segment.confidence, 0.0)
        self.assertIsNone(segment.text)

    def test_segment_duration(self):
        segment = Segment(start_time=1.5, end_time=4.0, samples=np.zeros(10))
        self.assertAlmostEqual(segment.duration, 2.5)


if __name__ == "__main__":
    unittest.main()
