from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from tubely.core.errors import ExternalToolFailure, ProbeError
from tubely.media.probe import AspectRatio, FFprobeProber, classify_aspect_ratio, parse_probe_output


@pytest.mark.parametrize(
    "width, height, expected",
    [
        (1920, 1080, AspectRatio.landscape),
        (1280, 720, AspectRatio.landscape),
        (1778, 1000, AspectRatio.landscape),  # ratio 1.778, inside the tolerance
        (1760, 1000, AspectRatio.other),  # ratio 1.76, outside the tolerance
        (1080, 1920, AspectRatio.portrait),
        (563, 1000, AspectRatio.portrait),  # ratio 0.563
        (550, 1000, AspectRatio.other),  # ratio 0.55
        (800, 600, AspectRatio.other),
        (1000, 1000, AspectRatio.other),
    ],
)
def test_classify_aspect_ratio(width, height, expected):
    assert classify_aspect_ratio(width, height) is expected


def test_classify_tolerance_is_absolute_and_strict():
    # 16/9 + 0.0099 lands inside, 16/9 + 0.0101 lands outside.
    assert classify_aspect_ratio(17778 + 99, 10000) is AspectRatio.landscape
    assert classify_aspect_ratio(17778 + 101, 10000) is AspectRatio.other


def test_classify_rejects_empty_frames():
    with pytest.raises(ValueError):
        classify_aspect_ratio(0, 1080)


def test_parse_uses_first_dimensioned_stream():
    raw = {
        "streams": [
            {"index": 0, "codec_type": "audio"},
            {"index": 1, "codec_type": "video", "width": 0, "height": 0},
            {"index": 2, "codec_type": "video", "width": 1080, "height": 1920},
            {"index": 3, "codec_type": "video", "width": 1920, "height": 1080},
        ]
    }
    result = parse_probe_output(raw)
    assert (result.width, result.height) == (1080, 1920)
    assert result.classification is AspectRatio.portrait


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"streams": []},
        {"streams": [{"codec_type": "audio"}]},
        {"streams": [{"width": 1920, "height": 0}]},
        {"streams": "garbage"},
    ],
)
def test_parse_without_dimensioned_stream_fails(raw):
    with pytest.raises(ProbeError) as excinfo:
        parse_probe_output(raw)
    assert excinfo.value.message == "no dimensioned stream"
    assert isinstance(excinfo.value, ExternalToolFailure)


def test_ffprobe_command_requests_json_streams():
    command = FFprobeProber().command(Path("/tmp/clip.mp4"))
    assert command == ["ffprobe", "-v", "error", "-print_format", "json", "-show_streams", "/tmp/clip.mp4"]


def test_ffprobe_prober_parses_output(monkeypatch):
    payload = {"streams": [{"index": 0, "codec_type": "video", "width": 1920, "height": 1080}]}
    seen = {}

    def fake_run(command, **kwargs):
        seen.update(kwargs)
        return subprocess.CompletedProcess(command, 0, stdout=json.dumps(payload), stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = FFprobeProber(timeout=30).probe(Path("clip.mp4"))

    assert result.classification is AspectRatio.landscape
    assert seen["timeout"] == 30
    assert seen["check"] is True


def test_ffprobe_failure_carries_stderr(monkeypatch):
    def fake_run(command, **kwargs):
        raise subprocess.CalledProcessError(1, command, output="", stderr="clip.mp4: Invalid data found\n")

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(ProbeError) as excinfo:
        FFprobeProber().probe(Path("clip.mp4"))
    assert excinfo.value.detail == "clip.mp4: Invalid data found"


def test_ffprobe_unparseable_output(monkeypatch):
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda command, **kwargs: subprocess.CompletedProcess(command, 0, stdout="not json", stderr=""),
    )
    with pytest.raises(ProbeError) as excinfo:
        FFprobeProber().probe(Path("clip.mp4"))
    assert excinfo.value.message == "probe_output_invalid"


def test_ffprobe_timeout(monkeypatch):
    def fake_run(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs["timeout"])

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(ProbeError) as excinfo:
        FFprobeProber(timeout=0.5).probe(Path("clip.mp4"))
    assert excinfo.value.message == "probe_timed_out"


def test_missing_ffprobe_binary(tmp_path):
    with pytest.raises(ProbeError) as excinfo:
        FFprobeProber(binary=str(tmp_path / "no-ffprobe")).probe(tmp_path / "clip.mp4")
    assert excinfo.value.message == "probe_unavailable"
