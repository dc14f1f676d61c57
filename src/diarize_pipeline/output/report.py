#!/usr/bin/env python3
"""
Diarization Report
------------------
Renders a diarization result as a JSON document.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from diarize_pipeline.pipeline.diarization_pipeline import DiarizationResult

logger = logging.getLogger(__name__)


def format_time(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm"""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, remainder = divmod(total_ms, 3600 * 1000)
    minutes, remainder = divmod(remainder, 60 * 1000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def build_report(
    result: DiarizationResult,
    audio_path: Optional[Union[str, Path]] = None,
    segment_model: Optional[str] = None,
    embedding_model: Optional[str] = None,
    max_speakers: Optional[int] = None,
    threshold: Optional[float] = None
) -> Dict[str, Any]:
    """
    Build the JSON-serializable report for a diarization result

    Args:
        result: Diarization result
        audio_path: Source audio file
        segment_model: Segmentation model used
        embedding_model: Embedding model used
        max_speakers: Speaker cap used
        threshold: Similarity threshold used

    Returns:
        Report dictionary
    """
    segments = []
    for segment in result.segments:
        entry = {
            "start_time": segment.start_time,
            "end_time": segment.end_time,
            "speaker_id": segment.speaker_id,
            "confidence": segment.confidence,
            "duration": segment.duration,
        }
        if segment.text:
            entry["text"] = segment.text
        segments.append(entry)

    speakers = [
        {
            "speaker_id": stats.speaker_id,
            "segment_count": stats.segment_count,
            "total_duration": stats.total_duration,
            "average_confidence": stats.average_confidence,
        }
        for stats in result.speakers.values()
    ]

    return {
        "segments": segments,
        "total_speakers": result.num_speakers,
        "total_duration": result.segments[-1].end_time if result.segments else 0.0,
        "audio_path": str(audio_path) if audio_path else "",
        "created_at": datetime.now(timezone.utc).isoformat(),
        "model_info": {
            "segment_model": segment_model or "",
            "embedding_model": embedding_model or "",
            "max_speakers": max_speakers,
            "threshold": threshold,
        },
        "speakers": speakers,
    }


def write_report(report: Dict[str, Any], output_file: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """
    Write a report to a file, or to stdout when no file is given

    If the file cannot be written the report goes to stdout instead.

    Returns:
        Path of the written file, or None when printed to stdout
    """
    content = json.dumps(report, indent=2)

    if output_file:
        output_path = Path(output_file)
        try:
            with open(output_path, "w") as f:
                f.write(content + "\n")
            logger.info(f"Results written to: {output_path}")
            return output_path
        except OSError as e:
            logger.error(f"Failed to write output file {output_path}: {e}")

    sys.stdout.write(content + "\n")
    return None
