from __future__ import annotations

import re
from urllib.parse import urlparse

from tubely.core.storage import StorageReference

KEY_PATTERN = re.compile(r"^landscape/[0-9a-f]{64}\.mp4$")


def test_upload_with_real_ffmpeg(client, storage, staging_dir, auth_headers, video_id, generated_video_file):
    with generated_video_file.open("rb") as handle:
        resp = client.post(
            f"/v1/videos/{video_id}/upload",
            files={"video": ("clip.mp4", handle, "video/mp4")},
            headers=auth_headers,
        )
    assert resp.status_code == 200, resp.text

    keys = list(storage.list("tubely-test"))
    assert len(keys) == 1
    assert KEY_PATTERN.match(keys[0])
    assert urlparse(resp.json()["url"]).path == f"/v1/objects/tubely-test/{keys[0]}"

    stored = storage.open("tubely-test", keys[0]).read()
    assert stored.index(b"moov") < stored.index(b"mdat")
    assert list(staging_dir.iterdir()) == []

    record = client.get(f"/v1/videos/{video_id}", headers=auth_headers).json()
    assert record["video_url"].startswith("http://testserver/v1/objects/tubely-test/landscape/")
    assert StorageReference(bucket="tubely-test", key=keys[0]).to_uri().startswith("s3://tubely-test/landscape/")


def test_real_ffmpeg_rejects_non_mp4_payload(client, storage, staging_dir, auth_headers, video_id, generated_video_file):
    resp = client.post(
        f"/v1/videos/{video_id}/upload",
        files={"video": ("clip.mp4", b"this is not a movie", "video/mp4")},
        headers=auth_headers,
    )
    assert resp.status_code == 500
    assert resp.json()["detail"] == "remux_failed"
    assert list(storage.list("tubely-test")) == []
    assert list(staging_dir.iterdir()) == []
