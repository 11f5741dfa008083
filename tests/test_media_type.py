from __future__ import annotations

import pytest

from tubely.core.errors import BadInput
from tubely.services.ingest_service import parse_media_type, parse_video_id


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("video/mp4", "video/mp4"),
        ("Video/MP4", "video/mp4"),
        ("video/mp4; codecs=avc1", "video/mp4"),
        ("  image/png ", "image/png"),
        ("video/quicktime", "video/quicktime"),
    ],
)
def test_parse_media_type(raw, expected):
    assert parse_media_type(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_missing_media_type(raw):
    with pytest.raises(BadInput) as excinfo:
        parse_media_type(raw)
    assert excinfo.value.message == "missing_media_type"
    assert excinfo.value.status_code == 400


@pytest.mark.parametrize("raw", ["videomp4", "video/", "/mp4", "video/mp4/extra", "video /mp4", "; charset=utf-8"])
def test_malformed_media_type(raw):
    with pytest.raises(BadInput) as excinfo:
        parse_media_type(raw)
    assert excinfo.value.message == "invalid_media_type"


def test_parse_video_id():
    assert str(parse_video_id("6f1c2a4e-3b1d-4a44-9a55-1f0f1d6b9a10")) == "6f1c2a4e-3b1d-4a44-9a55-1f0f1d6b9a10"
    with pytest.raises(BadInput) as excinfo:
        parse_video_id("not-a-uuid")
    assert excinfo.value.message == "invalid_video_id"
