"""Media helpers used by the upload pipelines."""

from tubely.media.keys import StorageKey, derive_key
from tubely.media.probe import AspectRatio, FFprobeProber, MediaProber, ProbeResult, classify_aspect_ratio
from tubely.media.remux import FFmpegRemuxer, Remuxer

__all__ = [
    "AspectRatio",
    "FFprobeProber",
    "FFmpegRemuxer",
    "MediaProber",
    "ProbeResult",
    "Remuxer",
    "StorageKey",
    "classify_aspect_ratio",
    "derive_key",
]
