#!/usr/bin/env python3
"""
Basic Diarization Example
-------------------------
Demonstrates how to use the diarization pipeline on an audio file.
"""
import os
import logging
from pathlib import Path

from diarize_pipeline import DiarizationConfig, DiarizationPipeline
from diarize_pipeline.diarization.onnx_segmentation import OnnxSegmentationModel
from diarize_pipeline.media.audio_loader import load_audio
from diarize_pipeline.output.report import format_time
from diarize_pipeline.speaker.embeddings import SpeechBrainEmbeddingModel

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def main():
    """Diarize an audio file and print who spoke when"""
    segment_model_path = os.environ.get("DIARIZE_SEGMENT_MODEL")
    if not segment_model_path or not Path(segment_model_path).exists():
        logger.error("DIARIZE_SEGMENT_MODEL must point to a segmentation ONNX model")
        return

    # Path to your audio file
    audio_path = "path/to/your/audio/file.wav"

    # Check if the audio file exists
    if not Path(audio_path).exists():
        logger.error(f"Audio file not found: {audio_path}")
        logger.error("Please update the audio_path variable to a valid audio file path")
        return

    config = DiarizationConfig.from_env(
        max_speakers=4,            # Upper bound on distinct speakers
        similarity_threshold=0.4   # Higher values split speakers more eagerly
    )

    segmentation_model = OnnxSegmentationModel(segment_model_path, sample_rate=config.sample_rate)
    # Downloads speechbrain/spkrec-ecapa-voxceleb on first use
    embedding_model = SpeechBrainEmbeddingModel(sample_rate=config.sample_rate)
    if not segmentation_model.load() or not embedding_model.load():
        logger.error("Could not load diarization models")
        return

    pipeline = DiarizationPipeline(segmentation_model, embedding_model, config=config)
    result = pipeline.process_audio(load_audio(audio_path, sample_rate=config.sample_rate))

    # Print results
    print(f"Found {result.num_speakers} speakers in {result.duration:.1f}s of audio")
    for segment in result.segments:
        print(f"[{format_time(segment.start_time)} - {format_time(segment.end_time)}] "
              f"Speaker {segment.speaker_id} ({segment.confidence:.2f})")

    for stats in result.speakers.values():
        print(f"Speaker {stats.speaker_id}: {stats.segment_count} segments, "
              f"{stats.total_duration:.1f}s, average confidence {stats.average_confidence:.2f}")

if __name__ == "__main__":
    main()
