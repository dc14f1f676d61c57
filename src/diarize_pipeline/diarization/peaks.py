#!/usr/bin/env python3
"""
Peak Finding
------------
Strict local-maxima extraction over a scored sequence.
"""
from typing import List, Sequence

import numpy as np


def find_peaks(scores: Sequence[float], threshold: float, min_distance: int = 1) -> List[int]:
    """
    Find indices of strict local maxima above a threshold

    An index qualifies when its score exceeds ``threshold`` and is strictly
    greater than every other score within ``min_distance`` positions on both
    sides. Equal neighbours disqualify a candidate. Indices closer than
    ``min_distance`` to either end of the sequence are never reported.

    Args:
        scores: Scored sequence
        threshold: Minimum (exclusive) peak height
        min_distance: Neighbourhood radius, at least 1

    Returns:
        Ascending list of peak indices
    """
    if min_distance < 1:
        raise ValueError(f"min_distance must be >= 1, got {min_distance}")

    values = np.asarray(scores, dtype=np.float64)
    peaks = []

    for i in range(min_distance, len(values) - min_distance):
        if values[i] <= threshold:
            continue
        neighbourhood = np.concatenate((
            values[i - min_distance:i],
            values[i + 1:i + min_distance + 1],
        ))
        if np.all(values[i] > neighbourhood):
            peaks.append(i)

    return peaks
