"""Segment materialization and the segmentation service."""
