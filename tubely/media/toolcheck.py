from __future__ import annotations

import subprocess

TOOL_CHECK_TIMEOUT_S = 10.0


def tool_available(binary: str, *, timeout: float = TOOL_CHECK_TIMEOUT_S) -> bool:
    """Run ``<binary> -version`` and report whether it exited cleanly."""
    try:
        subprocess.run(
            [binary, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return True


__all__ = ["TOOL_CHECK_TIMEOUT_S", "tool_available"]
