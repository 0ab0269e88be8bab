"""
Core package init for the face capture flow.

Framing guidance, crop geometry, camera negotiation and the capture pipeline
that ties them together.
"""

__version__ = "0.1.0"

__all__ = [
    "camera",
    "detectors",
    "geometry",
    "guidance",
    "config",
    "encoding",
    "errors",
    "io_utils",
    "pipeline",
    "types",
]
