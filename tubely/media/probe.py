from __future__ import annotations

import enum
import json
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from tubely.core.errors import ProbeError

ASPECT_TOLERANCE = 0.01
LANDSCAPE_RATIO = 16 / 9
PORTRAIT_RATIO = 9 / 16


class AspectRatio(str, enum.Enum):
    landscape = "landscape"
    portrait = "portrait"
    other = "other"


@dataclass(slots=True, frozen=True)
class ProbeResult:
    """Geometry of the first stream reporting both a width and a height."""

    width: int
    height: int

    @property
    def classification(self) -> AspectRatio:
        return classify_aspect_ratio(self.width, self.height)


def classify_aspect_ratio(width: int, height: int) -> AspectRatio:
    """Bucket a frame size into landscape (16:9), portrait (9:16) or other.

    The tolerance is an absolute difference on ``width / height``.

    Args:
        width: Frame width in pixels.
        height: Frame height in pixels.

    Returns:
        The aspect ratio classification.
    """
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")
    ratio = width / height
    if abs(ratio - LANDSCAPE_RATIO) < ASPECT_TOLERANCE:
        return AspectRatio.landscape
    if abs(ratio - PORTRAIT_RATIO) < ASPECT_TOLERANCE:
        return AspectRatio.portrait
    return AspectRatio.other


def parse_probe_output(raw: Dict[str, Any]) -> ProbeResult:
    """Pick the first dimensioned stream out of ffprobe's ``-show_streams`` JSON.

    Args:
        raw: The decoded ffprobe JSON.

    Returns:
        The probe result for the first stream with a nonzero width and height.
    """
    streams = raw.get("streams") if isinstance(raw, dict) else None
    for stream in _iter_streams(streams):
        width = _positive_int(stream.get("width"))
        height = _positive_int(stream.get("height"))
        if width and height:
            return ProbeResult(width=width, height=height)
    raise ProbeError("no dimensioned stream")


def _iter_streams(streams: Any) -> Iterable[Dict[str, Any]]:
    if not isinstance(streams, list):
        return []
    return [stream for stream in streams if isinstance(stream, dict)]


def _positive_int(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class MediaProber(ABC):
    @abstractmethod
    def probe(self, path: Path) -> ProbeResult: ...


class FFprobeProber(MediaProber):
    """Runs ffprobe as a subprocess and reads stream geometry from its JSON output."""

    def __init__(self, binary: str = "ffprobe", timeout: float | None = None):
        self.binary = binary
        self.timeout = timeout

    def command(self, path: Path) -> list[str]:
        return [
            self.binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            str(path),
        ]

    def probe(self, path: Path) -> ProbeResult:
        try:
            proc = subprocess.run(
                self.command(path),
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as exc:
            raise ProbeError(detail=(exc.stderr or "").strip()) from exc
        except subprocess.TimeoutExpired as exc:
            raise ProbeError("probe_timed_out", detail=f"ffprobe exceeded {self.timeout}s") from exc
        except FileNotFoundError as exc:
            raise ProbeError("probe_unavailable", detail=str(exc)) from exc

        try:
            raw = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise ProbeError("probe_output_invalid", detail=str(exc)) from exc
        return parse_probe_output(raw)


__all__ = [
    "ASPECT_TOLERANCE",
    "AspectRatio",
    "ProbeResult",
    "MediaProber",
    "FFprobeProber",
    "classify_aspect_ratio",
    "parse_probe_output",
]
