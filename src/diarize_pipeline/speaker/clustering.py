#!/usr/bin/env python3
"""
Online Speaker Clustering
-------------------------
Nearest-centroid assignment of segment embeddings to a bounded set of speakers.

Clustering is a fold over the segments in time order: every call to
``SpeakerClusterer.assign`` takes the current ``ClusterState`` and returns a
new one together with the assigned speaker id and confidence. States are never
modified in place, so each step can be replayed or tested on its own.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np

from diarize_pipeline.config import DEFAULT_MAX_SPEAKERS
from diarize_pipeline.speaker.embeddings import normalize_embedding

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5


def _frozen(vector: np.ndarray) -> np.ndarray:
    array = np.array(vector, dtype=np.float32).reshape(-1)
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class SpeakerProfile:
    """Running-mean centroid of one speaker"""
    centroid: np.ndarray
    sample_count: int = 1

    @classmethod
    def from_embedding(cls, embedding: np.ndarray) -> "SpeakerProfile":
        return cls(centroid=_frozen(embedding), sample_count=1)

    def updated(self, embedding: np.ndarray) -> "SpeakerProfile":
        """
        Profile with one more embedding folded into the centroid

        The centroid becomes the running mean of the embeddings, re-normalized
        to unit length.
        """
        centroid = (self.centroid * self.sample_count + embedding) / (self.sample_count + 1)
        return SpeakerProfile(centroid=_frozen(normalize_embedding(centroid)),
                              sample_count=self.sample_count + 1)


@dataclass(frozen=True)
class ClusterState:
    """Speaker profiles accumulated during one run; ids are tuple positions"""
    profiles: Tuple[SpeakerProfile, ...] = ()

    @classmethod
    def empty(cls) -> "ClusterState":
        return cls()

    @property
    def num_speakers(self) -> int:
        return len(self.profiles)

    def has_speaker(self, speaker_id: int) -> bool:
        return 0 <= speaker_id < len(self.profiles)

    def with_new_speaker(self, embedding: np.ndarray) -> Tuple["ClusterState", int]:
        speaker_id = len(self.profiles)
        return ClusterState(self.profiles + (SpeakerProfile.from_embedding(embedding),)), speaker_id

    def with_update(self, speaker_id: int, embedding: np.ndarray) -> "ClusterState":
        if not self.has_speaker(speaker_id):
            raise ValueError(f"Unknown speaker id {speaker_id} (have {len(self.profiles)} speakers)")
        profiles = list(self.profiles)
        profiles[speaker_id] = profiles[speaker_id].updated(embedding)
        return ClusterState(tuple(profiles))


@dataclass(frozen=True)
class Assignment:
    """Outcome of assigning one embedding"""
    state: ClusterState
    speaker_id: int
    confidence: float
    created: bool = False


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two unit-norm vectors, clipped to [-1, 1]"""
    return max(-1.0, min(1.0, float(np.dot(a, b))))


class SpeakerClusterer:
    """Online nearest-centroid speaker clustering with a speaker cap"""

    def __init__(self, threshold: float, max_speakers: int = DEFAULT_MAX_SPEAKERS):
        """
        Initialize the clusterer

        Args:
            threshold: Similarity a centroid must exceed to absorb an embedding
            max_speakers: Maximum number of speaker profiles
        """
        if max_speakers < 1:
            raise ValueError(f"max_speakers must be >= 1, got {max_speakers}")
        self.threshold = threshold
        self.max_speakers = max_speakers

    @staticmethod
    def best_match(state: ClusterState, embedding: np.ndarray) -> Tuple[int, float]:
        """
        Most similar existing speaker, scanning in creation order

        Returns:
            Tuple of (speaker_id, similarity); (-1, -1.0) for an empty state
        """
        best_id = -1
        best_similarity = -1.0
        for speaker_id, profile in enumerate(state.profiles):
            similarity = cosine_similarity(embedding, profile.centroid)
            # Strict comparison keeps the lowest id on ties
            if similarity > best_similarity:
                best_similarity = similarity
                best_id = speaker_id
        return best_id, best_similarity

    @staticmethod
    def confidence(state: ClusterState, embedding: np.ndarray, speaker_id: int) -> float:
        """
        Map the similarity to the speaker centroid from [-1, 1] to [0, 1]

        Unknown speaker ids get DEFAULT_CONFIDENCE.
        """
        if not state.has_speaker(speaker_id):
            return DEFAULT_CONFIDENCE
        similarity = cosine_similarity(embedding, state.profiles[speaker_id].centroid)
        return (similarity + 1.0) / 2.0

    def assign(self, state: ClusterState, embedding: np.ndarray) -> Assignment:
        """
        Assign an embedding to an existing or new speaker

        Args:
            state: Current clustering state (left untouched)
            embedding: Unit-norm segment embedding

        Returns:
            Assignment carrying the next state, speaker id and confidence
        """
        best_id, best_similarity = self.best_match(state, embedding)
        created = False

        if best_id >= 0 and best_similarity > self.threshold:
            speaker_id = best_id
            next_state = state.with_update(speaker_id, embedding)
        elif state.num_speakers < self.max_speakers:
            next_state, speaker_id = state.with_new_speaker(embedding)
            created = True
            logger.debug(f"Created new speaker {speaker_id} (similarity: {best_similarity:.4f})")
        elif best_id < 0:
            # Capacity reached and every centroid is opposite: speaker 0, no update
            speaker_id = 0
            next_state = state
            logger.debug("Speaker limit reached with no similar speaker, assigning to speaker 0")
        else:
            # Capacity reached: force-assign to the closest speaker
            speaker_id = best_id
            next_state = state.with_update(speaker_id, embedding)
            logger.debug(f"Speaker limit reached, assigning to speaker {speaker_id} "
                         f"(similarity: {best_similarity:.4f})")

        confidence = self.confidence(next_state, embedding, speaker_id)
        return Assignment(state=next_state, speaker_id=speaker_id, confidence=confidence, created=created)

    def fold(self, embeddings: Iterable[np.ndarray],
             state: Optional[ClusterState] = None) -> Tuple[ClusterState, List[Tuple[int, float]]]:
        """
        Assign a time-ordered sequence of embeddings

        Args:
            embeddings: Embeddings in segment order
            state: Starting state (empty if omitted)

        Returns:
            Tuple of (final state, [(speaker_id, confidence), ...])
        """
        if state is None:
            state = ClusterState.empty()
        labels = []
        for embedding in embeddings:
            assignment = self.assign(state, embedding)
            state = assignment.state
            labels.append((assignment.speaker_id, assignment.confidence))
        return state, labels
