from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Callable, Optional

from tubely.core.errors import EntropyError

__all__ = [
    "KEY_ENTROPY_BYTES",
    "StorageKey",
    "derive_key",
]

KEY_ENTROPY_BYTES = 32

EntropySource = Callable[[int], bytes]


@dataclass(slots=True, frozen=True)
class StorageKey:
    """A randomly named object key, optionally grouped under a prefix."""

    prefix: str
    random_component: str
    extension: str = ".mp4"

    def __str__(self) -> str:
        name = f"{self.random_component}{self.extension}"
        if self.prefix:
            return f"{self.prefix}/{name}"
        return name


def derive_key(
    prefix: Optional[str] = None,
    *,
    extension: str = ".mp4",
    entropy: EntropySource = secrets.token_bytes,
) -> StorageKey:
    """Build a storage key from 32 random bytes.

    Keys are not checked against existing objects; 256 bits of entropy make a
    collision negligible.

    Args:
        prefix: Optional grouping prefix, typically an aspect ratio classification.
        extension: File extension appended to the random component.
        entropy: Source of random bytes.

    Returns:
        The derived storage key.
    """
    try:
        raw = entropy(KEY_ENTROPY_BYTES)
    except (OSError, NotImplementedError) as exc:
        raise EntropyError(detail=str(exc)) from exc
    if len(raw) != KEY_ENTROPY_BYTES:
        raise EntropyError(detail=f"expected {KEY_ENTROPY_BYTES} random bytes, got {len(raw)}")
    return StorageKey(prefix=prefix or "", random_component=raw.hex(), extension=extension)
