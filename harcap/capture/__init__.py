"""
Page capture: periodic screenshots and network activity recording.
"""

from harcap.capture.loop import Capture, CaptureLoop, CaptureSession, format_screenshot_path
from harcap.capture.recorder import ActivityRecorder, HARBuilder, ResourceInfo, timing_breakdown

__all__ = [
    "ActivityRecorder",
    "Capture",
    "CaptureLoop",
    "CaptureSession",
    "HARBuilder",
    "ResourceInfo",
    "format_screenshot_path",
    "timing_breakdown",
]
