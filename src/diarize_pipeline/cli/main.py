#!/usr/bin/env python3
"""
Diarization CLI
---------------
Command-line interface for the speaker diarization pipeline
"""
import sys
import argparse
import logging
from collections import defaultdict
from pathlib import Path
from typing import List, Optional

from diarize_pipeline import __version__
from diarize_pipeline.config import DiarizationConfig, clamp_threshold, default_model_paths
from diarize_pipeline.diarization.onnx_segmentation import OnnxSegmentationModel
from diarize_pipeline.exceptions import DiarizationError
from diarize_pipeline.interfaces import EmbeddingModel
from diarize_pipeline.media.audio_loader import load_audio
from diarize_pipeline.output.report import build_report, format_time, write_report
from diarize_pipeline.pipeline.diarization_pipeline import DiarizationPipeline, DiarizationResult
from diarize_pipeline.speaker.embeddings import OnnxEmbeddingModel, SpeechBrainEmbeddingModel

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser"""
    env_models = default_model_paths()
    parser = argparse.ArgumentParser(
        description="Speaker diarization - find who spoke when in an audio recording",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument(
        "audio_path",
        help="Path to the audio file to process"
    )

    # Model options
    model_group = parser.add_argument_group("Model Options")
    model_group.add_argument(
        "--segment-model",
        default=env_models["segment_model"],
        help="Segmentation ONNX model (e.g. segmentation-3.0.onnx)"
    )
    model_group.add_argument(
        "--embedding-model",
        default=env_models["embedding_model"],
        help="Embedding ONNX model, or a SpeechBrain source/directory"
    )
    model_group.add_argument(
        "--device",
        default="cpu",
        help="Torch device for SpeechBrain embedding models"
    )

    # Diarization options
    diarization_group = parser.add_argument_group("Diarization Options")
    diarization_group.add_argument(
        "--max-speakers",
        type=int,
        default=10,
        help="Maximum number of speakers"
    )
    diarization_group.add_argument(
        "--threshold",
        type=float,
        default=0.01,
        help="Speaker similarity threshold; lower values detect more speakers (recommended 0.001-0.1)"
    )
    diarization_group.add_argument(
        "--sample-rate",
        type=int,
        default=16000,
        help="Sample rate the audio is resampled to"
    )

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--output",
        help="Output JSON file (default: stdout)"
    )
    output_group.add_argument(
        "--verbose", "--debug",
        action="store_true",
        help="Verbose output with detailed progress"
    )
    output_group.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    return parser


def create_embedding_model(source: str, sample_rate: int, device: str) -> EmbeddingModel:
    """ONNX backend for .onnx files, SpeechBrain for anything else"""
    if source.lower().endswith(".onnx"):
        return OnnxEmbeddingModel(source, sample_rate=sample_rate)
    return SpeechBrainEmbeddingModel(model_path=source, sample_rate=sample_rate, device=device)


def log_speaker_summary(result: DiarizationResult) -> None:
    """Log each speaker with its first few segments"""
    spans = defaultdict(list)
    for segment in result.segments:
        spans[segment.speaker_id].append((segment.start_time, segment.end_time))

    logger.info(f"Detected {result.num_speakers} speakers:")
    for speaker_id, stats in result.speakers.items():
        logger.info(
            f"  Speaker {speaker_id}: {stats.segment_count} segments, {stats.total_duration:.1f}s total"
        )
        for start, end in spans[speaker_id][:3]:
            logger.info(f"    {format_time(start)} - {format_time(end)}")
        if len(spans[speaker_id]) > 3:
            logger.info(f"    ... and {len(spans[speaker_id]) - 3} more segments")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.segment_model or not args.embedding_model:
        logger.error("--segment-model and --embedding-model are required")
        return 1

    # Check that input files exist
    audio_path = Path(args.audio_path)
    if not audio_path.exists():
        logger.error(f"Audio file not found: {audio_path}")
        return 1

    if not Path(args.segment_model).exists():
        logger.error(f"Segmentation model not found: {args.segment_model}")
        return 1

    if args.embedding_model.lower().endswith(".onnx") and not Path(args.embedding_model).exists():
        logger.error(f"Embedding model not found: {args.embedding_model}")
        return 1

    threshold = clamp_threshold(args.threshold)

    try:
        config = DiarizationConfig(
            sample_rate=args.sample_rate,
            similarity_threshold=threshold,
            max_speakers=args.max_speakers
        )

        segmentation_model = OnnxSegmentationModel(args.segment_model, sample_rate=config.sample_rate)
        embedding_model = create_embedding_model(args.embedding_model, config.sample_rate, args.device)
        if not segmentation_model.load() or not embedding_model.load():
            logger.error("Failed to initialize diarization models")
            return 1

        audio = load_audio(audio_path, sample_rate=config.sample_rate)

        pipeline = DiarizationPipeline(segmentation_model, embedding_model, config=config)
        result = pipeline.process_audio(audio)

        if result.is_empty:
            logger.error("No segments generated")
            return 1

        if args.verbose:
            log_speaker_summary(result)

        report = build_report(
            result,
            audio_path=audio_path,
            segment_model=args.segment_model,
            embedding_model=args.embedding_model,
            max_speakers=config.max_speakers,
            threshold=threshold
        )
        write_report(report, args.output)
        return 0

    except DiarizationError as e:
        logger.error(f"Diarization failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Error processing audio: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
