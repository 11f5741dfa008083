import asyncio
import shutil
import subprocess
from pathlib import Path
from uuid import UUID, uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from tubely.core.config import get_settings
from tubely.core.db import Base, create_engine
from tubely.core.errors import ProbeError
from tubely.main import create_app
from tubely.media.probe import MediaProber, ProbeResult
from tubely.media.remux import Remuxer, faststart_output_path

JWT_SECRET = "test-secret"
JWT_ISSUER = "tubely-test"
JWT_AUDIENCE = "tubely"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default Tubely environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "tubely_test.db"

    monkeypatch.setenv("TUBELY_ENV", "test")
    monkeypatch.setenv("TUBELY_LOG_LEVEL", "debug")
    monkeypatch.setenv("TUBELY_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("TUBELY_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("TUBELY_LOCAL_STORAGE_BASE_PATH", str(tmp_path / "assets"))
    monkeypatch.setenv("TUBELY_STAGING_DIR", str(tmp_path / "staging"))
    monkeypatch.setenv("TUBELY_S3_BUCKET", "tubely-test")
    monkeypatch.setenv("TUBELY_PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("TUBELY_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("TUBELY_JWT_ISSUER", JWT_ISSUER)
    monkeypatch.setenv("TUBELY_JWT_AUDIENCE", JWT_AUDIENCE)

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


class FakeRemuxer(Remuxer):
    """Copies the staged file to the fast-start path instead of running ffmpeg."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[Path] = []

    def remux(self, path: Path) -> Path:
        self.calls.append(path)
        if self.error is not None:
            raise self.error
        target = faststart_output_path(path)
        shutil.copyfile(path, target)
        return target


class FakeProber(MediaProber):
    def __init__(self, width: int = 1920, height: int = 1080, error: Exception | None = None):
        self.width = width
        self.height = height
        self.error = error
        self.calls: list[Path] = []

    def probe(self, path: Path) -> ProbeResult:
        self.calls.append(path)
        assert path.exists(), "probe must run against a staged file"
        if self.error is not None:
            raise self.error
        if not self.width or not self.height:
            raise ProbeError("no dimensioned stream")
        return ProbeResult(width=self.width, height=self.height)


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def fake_media(client):
    """Swap the ffmpeg-backed tools on the running app for in-process fakes."""
    prober = FakeProber()
    remuxer = FakeRemuxer()
    client.app.state.prober = prober
    client.app.state.remuxer = remuxer
    return prober, remuxer


@pytest.fixture()
def storage(client):
    return client.app.state.storage


@pytest.fixture()
def staging_dir() -> Path:
    path = get_settings().staging_dir
    assert path is not None
    return path


def build_token(user_id: UUID, *, secret: str = JWT_SECRET, exp: int | None = None) -> str:
    payload: dict[str, object] = {"sub": str(user_id), "iss": JWT_ISSUER, "aud": JWT_AUDIENCE}
    if exp is not None:
        payload["exp"] = exp
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture()
def user_id() -> UUID:
    return uuid4()


@pytest.fixture()
def auth_headers(user_id) -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(user_id)}"}


@pytest.fixture()
def stranger_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(uuid4())}"}


@pytest.fixture()
def video_id(client, auth_headers) -> str:
    resp = client.post("/v1/videos", json={"title": "Boots", "description": "test clip"}, headers=auth_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


@pytest.fixture(scope="session")
def generated_video_file(tmp_path_factory) -> Path:
    """
    Generates a small, valid 16:9 MP4 video file for testing in a temporary directory.
    """
    if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
        pytest.skip("ffmpeg/ffprobe not installed")
    video_path = tmp_path_factory.mktemp("data") / "test_video.mp4"

    # Generate a 1-second video with a solid color
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", "color=c=black:s=192x108:r=30",
        "-t", "1",
        "-pix_fmt", "yuv420p",
        str(video_path),
    ]
    subprocess.run(command, check=True, capture_output=True)
    return video_path
