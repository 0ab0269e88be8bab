"""Crop rectangle geometry."""
