from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from tubely.core.errors import RemuxError

FASTSTART_SUFFIX = ".faststart.mp4"


def faststart_output_path(source: Path) -> Path:
    """Sibling of ``source`` that inherits its unique temp-file name."""
    return source.with_name(source.stem + FASTSTART_SUFFIX)


class Remuxer(ABC):
    @abstractmethod
    def remux(self, path: Path) -> Path: ...


class FFmpegRemuxer(Remuxer):
    """Moves the MP4 index to the front of the file with a stream copy (no transcode)."""

    def __init__(self, binary: str = "ffmpeg", timeout: float | None = None):
        self.binary = binary
        self.timeout = timeout

    def command(self, source: Path, target: Path) -> list[str]:
        return [
            self.binary,
            "-nostdin",
            "-v",
            "error",
            "-y",
            "-i",
            str(source),
            "-movflags",
            "faststart",
            "-c",
            "copy",
            "-f",
            "mp4",
            str(target),
        ]

    def remux(self, path: Path) -> Path:
        target = faststart_output_path(path)
        try:
            subprocess.run(
                self.command(path, target),
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as exc:
            target.unlink(missing_ok=True)
            raise RemuxError(detail=(exc.stderr or "").strip()) from exc
        except subprocess.TimeoutExpired as exc:
            target.unlink(missing_ok=True)
            raise RemuxError("remux_timed_out", detail=f"ffmpeg exceeded {self.timeout}s") from exc
        except FileNotFoundError as exc:
            raise RemuxError("remux_unavailable", detail=str(exc)) from exc
        return target


__all__ = ["Remuxer", "FFmpegRemuxer", "faststart_output_path"]
