#!/usr/bin/env python3
"""
End-to-end tests for the diarization pipeline
"""
import sys
import unittest
from pathlib import Path

import numpy as np

# Add the src directory to the path to import the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from diarize_pipeline import DiarizationConfig, DiarizationPipeline, InvalidAudioError
from diarize_pipeline.media.audio_loader import AudioBuffer
from diarize_pipeline.pipeline.diarization_pipeline import aggregate_speaker_stats
from diarize_pipeline.diarization.segmenter import Segment
from model_fakes import ScriptedSegmentationModel, SequenceEmbeddingModel

SAMPLE_RATE = 1000


def speech(seconds):
    """Synthetic signal long enough to cover the requested duration"""
    t = np.arange(int(seconds * SAMPLE_RATE)) / float(SAMPLE_RATE)
    return (0.3 * np.sin(2 * np.pi * 13.0 * t)).astype(np.float32)


def alternating(t):
    """Speaker A until 10 s, B until 20 s, then A again"""
    return 1 if 10.0 <= t < 20.0 else 0


def spans(result):
    return [(round(s.start_time, 6), round(s.end_time, 6)) for s in result.segments]


class TestPipeline(unittest.TestCase):
    """Test the complete diarization pipeline"""

    def setUp(self):
        """Set up test environment"""
        self.config = DiarizationConfig(sample_rate=SAMPLE_RATE, similarity_threshold=0.01, max_speakers=10)

    def make_pipeline(self, class_at, vectors, **embedding_kwargs):
        self.segmentation_model = ScriptedSegmentationModel(class_at, sample_rate=SAMPLE_RATE)
        self.embedding_model = SequenceEmbeddingModel(vectors, sample_rate=SAMPLE_RATE, **embedding_kwargs)
        return DiarizationPipeline(self.segmentation_model, self.embedding_model, config=self.config)

    def test_pipeline_initialization(self):
        """Test that the phase thresholds are derived from the similarity threshold"""
        pipeline = self.make_pipeline(lambda t: 0, [[1.0, 0.0]])
        self.assertAlmostEqual(pipeline.config.effective_detection_threshold(), 0.001)
        self.assertAlmostEqual(pipeline.clusterer.threshold, 0.3)
        self.assertEqual(pipeline.clusterer.max_speakers, 10)
        self.assertEqual(pipeline.state.num_speakers, 0)

    def test_two_speakers_split_at_change(self):
        pipeline = self.make_pipeline(lambda t: 0 if t < 12.3 else 1, [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        result = pipeline.process_audio(speech(30.0))

        self.assertEqual(len(result.change_points), 1)
        self.assertAlmostEqual(result.change_points[0], 12.3)
        self.assertEqual(spans(result), [(0.0, 12.3), (12.3, 30.0)])
        self.assertEqual([s.speaker_id for s in result.segments], [0, 1])
        self.assertEqual(result.num_speakers, 2)
        for segment in result.segments:
            self.assertAlmostEqual(segment.confidence, 1.0, places=5)

    def test_returning_speaker_reuses_id(self):
        pipeline = self.make_pipeline(alternating, [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 0.1, 0.0]])
        result = pipeline.process_audio(speech(30.0))

        self.assertEqual(spans(result), [(0.0, 10.0), (10.0, 20.0), (20.0, 30.0)])
        self.assertEqual([s.speaker_id for s in result.segments], [0, 1, 0])
        self.assertEqual(list(result.speakers), [0, 1])
        self.assertEqual(result.speakers[0].segment_count, 2)
        self.assertAlmostEqual(result.speakers[0].total_duration, 20.0)
        self.assertAlmostEqual(result.speakers[1].total_duration, 10.0)
        self.assertEqual(result.state.profiles[0].sample_count, 2)

    def test_constant_long_audio_uses_fixed_segments(self):
        pipeline = self.make_pipeline(lambda t: 0, [[1.0, 0.0, 0.0]])
        result = pipeline.process_audio(speech(40.0))

        self.assertEqual(result.change_points, [])
        self.assertEqual(spans(result), [(0.0, 25.0), (25.0, 40.0)])
        self.assertEqual([s.speaker_id for s in result.segments], [0, 0])

    def test_constant_audio_gets_artificial_change_points(self):
        pipeline = self.make_pipeline(lambda t: 0, [[1.0, 0.0, 0.0]])
        result = pipeline.process_audio(speech(45.0))

        self.assertEqual(result.change_points, [30.0])
        self.assertEqual(spans(result), [(0.0, 30.0), (30.0, 45.0)])

    def test_short_audio_is_single_segment(self):
        pipeline = self.make_pipeline(lambda t: 0, [[1.0, 0.0, 0.0]])
        result = pipeline.process_audio(speech(8.0))

        self.assertEqual(spans(result), [(0.0, 8.0)])
        self.assertEqual(result.segments[0].speaker_id, 0)

    def test_runs_are_deterministic(self):
        pipeline = self.make_pipeline(alternating, [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 0.1, 0.0]])
        audio = speech(30.0)
        first = pipeline.process_audio(audio)

        pipeline.reset()
        self.segmentation_model.rewind()
        self.embedding_model.rewind()
        second = pipeline.process_audio(audio)

        self.assertEqual(spans(first), spans(second))
        self.assertEqual(
            [(s.speaker_id, s.confidence) for s in first.segments],
            [(s.speaker_id, s.confidence) for s in second.segments]
        )

    def test_state_carries_over_until_reset(self):
        pipeline = self.make_pipeline(alternating, [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 0.1, 0.0]])
        audio = speech(30.0)
        pipeline.process_audio(audio)

        self.segmentation_model.rewind()
        self.embedding_model.rewind()
        second = pipeline.process_audio(audio)

        self.assertEqual([s.speaker_id for s in second.segments], [0, 1, 0])
        self.assertEqual(pipeline.state.num_speakers, 2)
        self.assertEqual(pipeline.state.profiles[0].sample_count, 4)

        pipeline.reset()
        self.assertEqual(pipeline.state.num_speakers, 0)

    def test_failed_segment_gets_fallback_speaker(self):
        pipeline = self.make_pipeline(alternating, [[1.0, 0.0, 0.0]], fail_on={1})
        result = pipeline.process_audio(speech(30.0))

        self.assertEqual([s.speaker_id for s in result.segments], [0, 1, 0])
        self.assertEqual(result.segments[1].confidence, 0.5)
        self.assertTrue(result.outcomes[1].is_fallback)
        self.assertFalse(result.outcomes[0].is_fallback)
        # The failed segment does not create a speaker profile
        self.assertEqual(result.state.num_speakers, 1)

    def test_fallback_speaker_wraps_at_cap(self):
        self.config = DiarizationConfig(sample_rate=SAMPLE_RATE, max_speakers=1)
        pipeline = self.make_pipeline(alternating, [[1.0, 0.0, 0.0]], fail_on={1})
        result = pipeline.process_audio(speech(30.0))
        self.assertEqual(result.segments[1].speaker_id, 0)

    def test_embedding_dimension_mismatch_falls_back(self):
        pipeline = self.make_pipeline(alternating, [[1.0, 0.0, 0.0], [0.0, 1.0], [1.0, 0.0, 0.0]])
        result = pipeline.process_audio(speech(30.0))

        self.assertTrue(result.outcomes[1].is_fallback)
        self.assertEqual(result.segments[1].confidence, 0.5)
        self.assertEqual(result.segments[2].speaker_id, 0)

    def test_unloaded_embedding_model_gives_empty_result(self):
        pipeline = self.make_pipeline(alternating, [[1.0, 0.0, 0.0]], loaded=False)
        result = pipeline.process_audio(speech(30.0))

        self.assertTrue(result.is_empty)
        self.assertEqual(result.num_speakers, 0)
        self.assertEqual(len(result.change_points), 2)

    def test_unloaded_segmentation_model_keeps_whole_audio(self):
        pipeline = self.make_pipeline(lambda t: 0, [[1.0, 0.0, 0.0]])
        self.segmentation_model.loaded = False
        result = pipeline.process_audio(speech(20.0))

        self.assertEqual(self.segmentation_model.calls, 0)
        self.assertEqual(spans(result), [(0.0, 20.0)])
        self.assertEqual(result.segments[0].speaker_id, 0)

    def test_speaker_ids_within_cap(self):
        self.config = DiarizationConfig(sample_rate=SAMPLE_RATE, max_speakers=2)
        rng = np.random.default_rng(5)
        pipeline = self.make_pipeline(lambda t: int(t // 5) % 3, list(rng.normal(size=(12, 8))))
        result = pipeline.process_audio(speech(60.0))

        self.assertTrue(result.segments)
        for segment in result.segments:
            self.assertTrue(0 <= segment.speaker_id < 2)
            self.assertTrue(0.0 <= segment.confidence <= 1.0)
            self.assertGreaterEqual(segment.duration, 2.0)

    def test_accepts_audio_buffer(self):
        pipeline = self.make_pipeline(lambda t: 0, [[1.0, 0.0, 0.0]])
        result = pipeline.process_audio(AudioBuffer(samples=speech(5.0), sample_rate=SAMPLE_RATE))
        self.assertEqual(len(result.segments), 1)
        self.assertEqual(result.sample_rate, SAMPLE_RATE)
        self.assertAlmostEqual(result.duration, 5.0)

    def test_invalid_audio(self):
        pipeline = self.make_pipeline(lambda t: 0, [[1.0, 0.0, 0.0]])
        invalid = [
            np.array([], dtype=np.float32),
            np.zeros((2, 1000), dtype=np.float32),
            np.array([0.0, np.nan, 0.1], dtype=np.float32),
            AudioBuffer(samples=speech(1.0), sample_rate=16000),
        ]
        for audio in invalid:
            with self.assertRaises(InvalidAudioError):
                pipeline.process_audio(audio)


class TestSpeakerStats(unittest.TestCase):
    """Test per-speaker aggregation"""

    def test_aggregate_speaker_stats(self):
        segments = [
            Segment(0.0, 4.0, np.zeros(1), speaker_id=2, confidence=0.9),
            Segment(4.0, 6.0, np.zeros(1), speaker_id=0, confidence=0.7),
            Segment(6.0, 9.0, np.zeros(1), speaker_id=2, confidence=0.5),
        ]
        stats = aggregate_speaker_stats(segments)
        self.assertEqual(list(stats), [0, 2])
        self.assertEqual(stats[2].segment_count, 2)
        self.assertAlmostEqual(stats[2].total_duration, 7.0)
        self.assertAlmostEqual(stats[2].average_confidence, 0.7)
        self.assertAlmostEqual(stats[0].average_confidence, 0.7)

    def test_no_segments(self):
        self.assertEqual(aggregate_speaker_stats([]), {})


if __name__ == "__main__":
    unittest.main()
