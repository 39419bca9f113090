from pathlib import Path

from discovery import MediaFile
from storage import FileLocationCache, MediaDateCache
from thumbnails import CacheReconciler, thumbnail_name


def write_thumb(thumb_dir: Path, file_id: str) -> Path:
    thumb_dir.mkdir(parents=True, exist_ok=True)
    path = thumb_dir / thumbnail_name(file_id)
    path.write_bytes(b"jpeg")
    return path


def test_clean_orphans_removes_only_unknown_thumbnails(tmp_path: Path) -> None:
    thumb_dir = tmp_path / "thumbs"
    ids = {"a" * 16, "b" * 16, "c" * 16}
    for file_id in ids:
        write_thumb(thumb_dir, file_id)
    (thumb_dir / "notes.txt").write_text("keep", encoding="utf-8")

    removed = CacheReconciler(thumb_dir).clean_orphans({"a" * 16, "c" * 16})

    assert removed == 1
    assert sorted(path.name for path in thumb_dir.iterdir()) == sorted(
        [thumbnail_name("a" * 16), thumbnail_name("c" * 16), "notes.txt"]
    )


def test_clean_orphans_tolerates_missing_directory(tmp_path: Path) -> None:
    assert CacheReconciler(tmp_path / "absent").clean_orphans(set()) == 0


def test_reconcile_clears_partials_temp_files_and_cache_entries(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    root.mkdir()
    kept = root / "kept.jpg"
    kept.write_bytes(b"x")
    gone = root / "gone.jpg"
    gone.write_bytes(b"x")
    kept_media = MediaFile(file_path=kept, source_root=str(root))
    gone_media = MediaFile(file_path=gone, source_root=str(root))

    thumb_dir = tmp_path / "thumbs"
    write_thumb(thumb_dir, kept_media.file_id)
    write_thumb(thumb_dir, gone_media.file_id)
    (thumb_dir / f".{kept_media.file_id}.partial.jpg").write_bytes(b"half")
    temp_dir = tmp_path / "temp"
    temp_dir.mkdir()
    (temp_dir / "leftover-heif_convert.jpg").write_bytes(b"tmp")

    location_cache = FileLocationCache(tmp_path / "file-cache.json")
    location_cache.rebuild([kept_media, gone_media])
    date_cache = MediaDateCache(tmp_path / "date-cache.json")
    date_cache.get(kept)
    date_cache.get(gone)
    date_cache.flush()
    gone.unlink()

    stats = CacheReconciler(
        thumb_dir,
        temp_dir=temp_dir,
        location_cache=location_cache,
        date_cache=date_cache,
    ).reconcile({kept_media.file_id})

    assert stats.orphan_thumbs == 1
    assert stats.partial_files == 1
    assert stats.temp_files == 1
    assert stats.location_entries == 1
    assert stats.date_entries == 1
    assert stats.errors == 0
    assert stats.total == 5
    assert [path.name for path in thumb_dir.iterdir()] == [thumbnail_name(kept_media.file_id)]
    assert FileLocationCache(tmp_path / "file-cache.json").get(gone_media.file_id) is None
    assert FileLocationCache(tmp_path / "file-cache.json").get(kept_media.file_id) == kept_media
