import logging
import os
from pathlib import Path

import pytest

from discovery import MediaWalker, count_by_kind


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"data")
    return path


def test_walker_finds_media_and_skips_hidden_entries(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    touch(root / "a.jpg")
    touch(root / "nested" / "b.MP4")
    touch(root / "nested" / "deeper" / "c.Heic")
    touch(root / ".DS_Store")
    touch(root / ".hidden" / "secret.jpg")
    touch(root / "Photos Library.photoslibrary" / "originals" / "x.jpg")
    touch(root / "notes.txt")

    files = MediaWalker().walk([str(root)])
    relative = sorted(media.relative_path for media in files)

    assert relative == ["a.jpg", "nested/b.MP4", "nested/deeper/c.Heic"]
    assert count_by_kind(files) == (2, 1)


def test_walker_keeps_root_identity_per_file(tmp_path: Path) -> None:
    first = tmp_path / "one"
    second = tmp_path / "two"
    touch(first / "same.jpg")
    touch(second / "same.jpg")

    files = MediaWalker().walk([str(first), str(second)])

    assert [media.source_root for media in files] == [str(first), str(second)]
    assert files[0].file_id != files[1].file_id


def test_walker_warns_on_missing_root(tmp_path: Path, caplog) -> None:
    present = tmp_path / "present"
    touch(present / "a.png")

    with caplog.at_level(logging.WARNING, logger="gallery"):
        files = MediaWalker().walk([str(tmp_path / "absent"), str(present)])

    assert [media.relative_path for media in files] == ["a.png"]
    assert "does not exist" in caplog.text


def test_walker_respects_configured_suffixes(tmp_path: Path) -> None:
    root = tmp_path / "root"
    touch(root / "Export.bundle" / "a.jpg")
    touch(root / "kept" / "b.jpg")

    files = MediaWalker(excluded_suffixes=(".bundle",)).walk([str(root)])

    assert [media.relative_path for media in files] == ["kept/b.jpg"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_walker_cuts_symlink_cycles(tmp_path: Path) -> None:
    root = tmp_path / "root"
    touch(root / "album" / "a.jpg")
    try:
        os.symlink(root, root / "album" / "loop", target_is_directory=True)
    except OSError:
        pytest.skip("cannot create symlink")

    not_followed = MediaWalker().walk([str(root)])
    followed = MediaWalker(follow_symlinks=True).walk([str(root)])

    assert [media.relative_path for media in not_followed] == ["album/a.jpg"]
    assert [media.relative_path for media in followed] == ["album/a.jpg"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_walker_includes_symlinked_files(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    target = touch(tmp_path / "elsewhere.jpg")
    try:
        os.symlink(target, root / "linked.jpg")
        os.symlink(tmp_path / "missing.jpg", root / "dangling.jpg")
    except OSError:
        pytest.skip("cannot create symlink")

    files = MediaWalker().walk([str(root)])

    assert [media.relative_path for media in files] == ["linked.jpg"]


def test_walker_skips_unreadable_directory(tmp_path: Path, monkeypatch, caplog) -> None:
    root = tmp_path / "root"
    touch(root / "kept.jpg")
    touch(root / "sibling" / "also.jpg")
    touch(root / "locked" / "hidden.jpg")
    real_scandir = os.scandir

    def guarded_scandir(path):
        if Path(path).name == "locked":
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", guarded_scandir)
    with caplog.at_level(logging.WARNING, logger="gallery"):
        files = MediaWalker().walk([str(root)])

    assert sorted(media.relative_path for media in files) == ["kept.jpg", "sibling/also.jpg"]
    assert "Cannot read directory" in caplog.text
