import hashlib
from pathlib import Path

from discovery import MediaFile, album_id, file_id, is_valid_file_id


def test_file_id_is_deterministic_and_short() -> None:
    first = file_id("/media/photos", "2023/beach.jpg")
    second = file_id("/media/photos", "2023/beach.jpg")

    assert first == second
    assert len(first) == 16
    assert is_valid_file_id(first)


def test_file_id_differs_across_roots() -> None:
    assert file_id("/media/a", "img.jpg") != file_id("/media/b", "img.jpg")


def test_file_id_matches_sha256_prefix() -> None:
    expected = hashlib.sha256(b"/media/photos/2023/beach.jpg").hexdigest()[:16]
    assert file_id("/media/photos", "2023/beach.jpg") == expected


def test_album_id_uses_same_derivation() -> None:
    assert album_id("/media/photos", "2023") == file_id("/media/photos", "2023")


def test_media_file_derives_relative_path_and_id(tmp_path: Path) -> None:
    root = tmp_path / "root"
    media = MediaFile(file_path=root / "trip" / "clip.MOV", source_root=str(root))

    assert media.relative_path == "trip/clip.MOV"
    assert media.file_id == file_id(str(root), "trip/clip.MOV")
    assert media.is_video
    assert media.media_type == "video"


def test_is_valid_file_id_rejects_paths() -> None:
    assert not is_valid_file_id("../etc/passwd")
    assert not is_valid_file_id("ABCDEF0123456789")
    assert not is_valid_file_id("")
