"""
Speaker Change Detection and Segmentation
-----------------------------------------
Finds where the active speaker changes and cuts the audio into segments.

Change points come from frame-level class scores of a segmentation model,
scanned over overlapping windows of the full recording.
"""
