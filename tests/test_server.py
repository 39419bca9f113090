import json
import urllib.error
import urllib.request
from pathlib import Path

import pytest

from dashboard.server import GalleryServer
from discovery import MediaFile
from orchestrator import ScanOrchestrator
from thumbnails import thumbnail_name


class PlaceholderCodec:
    def __init__(self, thumb_dir: Path) -> None:
        self.thumb_dir = thumb_dir

    def thumbnail_exists(self, file_id: str) -> bool:
        return (self.thumb_dir / thumbnail_name(file_id)).exists()

    def ensure_thumbnail(self, media, is_video: bool) -> bool:
        (self.thumb_dir / thumbnail_name(media.file_id)).write_bytes(b"jpeg-bytes")
        return True


@pytest.fixture
def running_server(tmp_path: Path, make_provider):
    root = tmp_path / "photos"
    root.mkdir()
    (root / "a.jpg").write_bytes(b"original-a")
    provider = make_provider([root])
    orchestrator = ScanOrchestrator(
        provider, codec_factory=lambda settings, logger: PlaceholderCodec(settings.thumb_dir)
    )
    server = GalleryServer(provider, orchestrator, port=0, heartbeat_seconds=0.2)
    server.start()
    host, port = server.address
    yield f"http://{host}:{port}", orchestrator, root
    server.stop()


def request(url: str, method: str = "GET", payload=None):
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(url, data=data, method=method)
    if data is not None:
        req.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(req, timeout=10) as response:
            return response.status, response.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


def test_scan_request_is_accepted_and_completes(running_server) -> None:
    base, orchestrator, root = running_server

    status, body = request(f"{base}/api/scan", method="POST")

    assert status == 202
    assert json.loads(body)["state"]["is_scanning"] is True
    assert orchestrator.wait(10)
    status, body = request(f"{base}/api/scan")
    state = json.loads(body)
    assert status == 200
    assert state["scanned"] == state["total"] == 1


def test_thumbnail_and_media_are_served(running_server) -> None:
    base, orchestrator, root = running_server
    orchestrator.start_scan(wait=True)
    media = MediaFile(file_path=root / "a.jpg", source_root=str(root))

    status, body = request(f"{base}/api/serve-thumb/{media.file_id}")
    assert status == 200 and body == b"jpeg-bytes"

    status, body = request(f"{base}/api/media/{media.file_id}")
    assert status == 200 and body == b"original-a"

    status, _ = request(f"{base}/api/serve-thumb/{'f' * 16}")
    assert status == 404


def test_thumbs_listing_and_bad_paging(running_server) -> None:
    base, _, _ = running_server

    status, body = request(f"{base}/api/thumbs?offset=0&limit=10")
    assert status == 200
    assert json.loads(body)["total"] == 1

    status, _ = request(f"{base}/api/thumbs?limit=ten")
    assert status == 400


def test_media_dirs_round_trip(running_server, tmp_path: Path) -> None:
    base, _, root = running_server
    extra = tmp_path / "extra"
    extra.mkdir()

    status, body = request(f"{base}/api/media-dirs", method="POST", payload={"roots": [str(root), str(extra)]})
    assert status == 200
    assert json.loads(body)["roots"] == [str(root), str(extra)]

    status, body = request(f"{base}/api/media-dirs")
    assert json.loads(body)["roots"] == [str(root), str(extra)]

    status, _ = request(f"{base}/api/media-dirs", method="POST", payload={"roots": [str(tmp_path / "nope")]})
    assert status == 400


def test_scan_without_roots_is_a_server_error(running_server) -> None:
    base, _, _ = running_server
    request(f"{base}/api/media-dirs", method="POST", payload={"roots": []})

    status, body = request(f"{base}/api/scan", method="POST")

    assert status == 500
    assert "media roots" in json.loads(body)["error"]


def test_progress_stream_greets_new_observer(running_server) -> None:
    base, _, _ = running_server

    with urllib.request.urlopen(f"{base}/api/scan-progress", timeout=10) as response:
        assert response.headers["Content-Type"] == "text/event-stream"
        first = response.readline().decode("utf-8")
        response.readline()
        heartbeat = response.readline().decode("utf-8")

    assert first.startswith("data: ")
    assert json.loads(first[len("data: "):])["type"] == "connected"
    assert heartbeat.startswith(": heartbeat")
