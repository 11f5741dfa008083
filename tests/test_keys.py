from __future__ import annotations

import re

import pytest

from tubely.core.errors import EntropyError
from tubely.media.keys import KEY_ENTROPY_BYTES, StorageKey, derive_key

KEY_PATTERN = re.compile(r"^landscape/[0-9a-f]{64}\.mp4$")


def test_key_has_prefix_and_hex_name():
    key = derive_key("landscape")
    assert KEY_PATTERN.match(str(key))
    assert len(bytes.fromhex(key.random_component)) == KEY_ENTROPY_BYTES


def test_keys_do_not_repeat():
    keys = {str(derive_key("other")) for _ in range(50)}
    assert len(keys) == 50


@pytest.mark.parametrize("prefix", [None, ""])
def test_empty_prefix_yields_bare_name(prefix):
    key = derive_key(prefix, extension=".png")
    assert re.fullmatch(r"[0-9a-f]{64}\.png", str(key))


def test_key_uses_supplied_entropy():
    key = derive_key("portrait", entropy=lambda size: b"\x01" * size)
    assert str(key) == "portrait/" + "01" * 32 + ".mp4"
    assert key == StorageKey(prefix="portrait", random_component="01" * 32)


def test_entropy_failure():
    def broken(size: int) -> bytes:
        raise OSError("getrandom unavailable")

    with pytest.raises(EntropyError) as excinfo:
        derive_key("landscape", entropy=broken)
    assert excinfo.value.status_code == 500
    assert "getrandom" in excinfo.value.detail


def test_short_entropy_read():
    with pytest.raises(EntropyError):
        derive_key("landscape", entropy=lambda size: b"\x00" * (size - 1))
