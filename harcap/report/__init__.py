"""
Artifact assembly and persistence.
"""

from harcap.report.augmenter import HarAugmenter, write_artifact

__all__ = ["HarAugmenter", "write_artifact"]
