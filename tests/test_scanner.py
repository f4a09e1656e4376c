"""Tests for library scanning: discovery, diffing, sweep and concurrency."""

import io
import os
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest
from PIL import Image

from conftest import image_bytes, write_cbz, write_pages
from magz import thumbnails
from magz.archive import ContainerKind
from magz.config import LibraryConfig
from magz.context import build_context
from magz.exceptions import StoreUnavailable
from magz.library import list_pages
from magz.scanner import WorkItem, discover, item_labels, scan_library, trigger_scan
from magz.thumbnails import decode_data_uri


def _bump_mtime(path: Path, seconds: int = 120) -> None:
    st = path.stat()
    os.utime(path, (st.st_atime + seconds, st.st_mtime + seconds))


def _count_thumbnails(monkeypatch):
    calls = []
    original = thumbnails.make_thumbnail

    def _counting(image, max_size):
        calls.append(max_size)
        return original(image, max_size)

    monkeypatch.setattr("magz.thumbnails.make_thumbnail", _counting)
    return calls


def test_discover_finds_archives_and_image_dirs(library):
    write_pages(library / "Comics" / "Batman" / "Batman #1", ["001.jpg"])
    write_cbz(library / "Mags" / "issue.cbz", {"01.jpg": image_bytes()})
    write_cbz(library / "Mags" / "other.CBR", {"01.jpg": image_bytes()})
    (library / "Mags" / "notes.txt").write_text("x")
    write_pages(library / "@eaDir" / "thumbs", ["a.jpg"])
    (library / "Empty").mkdir()

    found = {item.path: item.kind for item in discover([library], ("@eaDir",))}
    assert found == {
        library / "Comics" / "Batman" / "Batman #1": ContainerKind.DIRECTORY,
        library / "Mags" / "issue.cbz": ContainerKind.ZIP,
        library / "Mags" / "other.CBR": ContainerKind.RAR,
    }


def test_discover_skips_duplicates_from_overlapping_roots(library):
    write_cbz(library / "Mags" / "issue.cbz", {"01.jpg": image_bytes()})
    items = list(discover([library, library / "Mags"], ()))
    assert [item.path for item in items] == [library / "Mags" / "issue.cbz"]


def test_item_labels():
    assert item_labels(WorkItem(Path("/lib/Cat/Issue 3.cbz"), ContainerKind.ZIP)) == ("Cat", "Issue 3")
    assert item_labels(WorkItem(Path("/lib/Cat/Issue 3"), ContainerKind.DIRECTORY)) == ("Cat", "Issue 3")


def test_directory_item_end_to_end(ctx, library):
    issue = write_pages(
        library / "Comics" / "Batman" / "Batman #1",
        ["001.jpg", "002.jpg", "cover.jpg"],
    )

    stats = scan_library(ctx)
    assert (stats.created, stats.updated, stats.deleted) == (1, 0, 0)

    entry = ctx.store.get_by_path(str(issue))
    assert entry.category == "Batman"
    assert entry.title == "Batman #1"
    assert entry.cover == "cover.jpg"
    assert entry.cover_data.startswith("data:image/jpeg;base64,")
    snapshot = dict(ctx.store.list_all())
    assert snapshot[str(issue)] == datetime.fromtimestamp(issue.stat().st_mtime, tz=timezone.utc)


def test_archive_item_end_to_end(ctx, library):
    archive = write_cbz(
        library / "Death to Pachuco" / "Death to Pachuco 001.cbz",
        {
            "p2.jpg": image_bytes(color="blue"),
            "p1.jpg": image_bytes(color="red", size=(60, 40)),
        },
    )

    scan_library(ctx)

    entry = ctx.store.get_by_path(str(archive))
    assert entry.category == "Death to Pachuco"
    assert entry.title == "Death to Pachuco 001"
    assert entry.cover == "(cbz internal)"

    thumb = Image.open(io.BytesIO(decode_data_uri(entry.cover_data))).convert("RGB")
    assert thumb.size == (64, 43)
    r, g, b = thumb.getpixel((32, 20))
    assert r > 200 and g < 60 and b < 60


def test_second_scan_is_a_no_op(ctx, library, monkeypatch):
    write_pages(library / "Cat" / "Dir issue", ["01.jpg", "02.jpg"])
    write_cbz(library / "Cat" / "issue.cbz", {"01.jpg": image_bytes()})
    scan_library(ctx)
    before = {e.path: (e.id, e.updated_at, e.cover_data) for e in ctx.store.list_entries()}

    calls = _count_thumbnails(monkeypatch)
    stats = scan_library(ctx)

    assert (stats.created, stats.updated, stats.deleted) == (0, 0, 0)
    assert stats.unchanged == 2
    assert calls == []
    after = {e.path: (e.id, e.updated_at, e.cover_data) for e in ctx.store.list_entries()}
    assert after == before


def test_modified_item_is_updated(ctx, library, monkeypatch):
    archive = write_cbz(library / "Cat" / "issue.cbz", {"01.jpg": image_bytes()})
    scan_library(ctx)
    original = ctx.store.get_by_path(str(archive))

    _bump_mtime(archive)
    calls = _count_thumbnails(monkeypatch)
    stats = scan_library(ctx)

    assert (stats.created, stats.updated) == (0, 1)
    assert len(calls) == 1
    entry = ctx.store.get_by_path(str(archive))
    assert entry.id == original.id
    assert entry.last_modified > original.last_modified


def test_removed_item_is_swept(ctx, library):
    keep = write_cbz(library / "Cat" / "keep.cbz", {"01.jpg": image_bytes()})
    gone = write_cbz(library / "Cat" / "gone.cbz", {"01.jpg": image_bytes()})
    scan_library(ctx)

    gone.unlink()
    stats = scan_library(ctx)

    assert stats.deleted == 1
    assert [e.path for e in ctx.store.list_entries()] == [str(keep)]


def test_corrupt_archive_is_still_cataloged(ctx, library):
    broken = library / "Cat" / "broken.cbz"
    broken.parent.mkdir()
    broken.write_bytes(b"definitely not a zip")

    stats = scan_library(ctx)

    assert stats.created == 1
    entry = ctx.store.get_by_path(str(broken))
    assert entry.cover == "(cbz internal)"
    assert entry.cover_data == ""


def test_undecodable_cover_leaves_empty_thumbnail(ctx, library):
    issue = library / "Cat" / "Issue"
    issue.mkdir(parents=True)
    (issue / "01.jpg").write_bytes(b"garbage")

    scan_library(ctx)

    entry = ctx.store.get_by_path(str(issue))
    assert entry.cover == "01.jpg"
    assert entry.cover_data == ""


def test_many_items_with_worker_pool(make_config, library):
    for i in range(15):
        write_pages(library / "Cat" / f"Issue {i}", ["01.jpg"])
    ctx = build_context(make_config(workers=3, thumbnail_workers=2, queue_size=2))
    try:
        stats = scan_library(ctx)
        assert stats.created == 15
        assert ctx.store.count() == 15
        assert not ctx.scan_in_progress()
    finally:
        ctx.close()


def test_thumbnail_gate_caps_concurrent_encodes(make_config, library, monkeypatch):
    for i in range(12):
        write_pages(library / "Cat" / f"Issue {i}", ["01.jpg"])
    active = 0
    peak = 0
    counter_lock = threading.Lock()
    original = thumbnails.make_thumbnail

    def _slow(image, max_size):
        nonlocal active, peak
        with counter_lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.05)
        try:
            return original(image, max_size)
        finally:
            with counter_lock:
                active -= 1

    monkeypatch.setattr("magz.thumbnails.make_thumbnail", _slow)
    ctx = build_context(make_config(workers=4, thumbnail_workers=2, queue_size=4))
    try:
        stats = scan_library(ctx)
    finally:
        ctx.close()

    assert stats.created == 12
    assert 1 <= peak <= 2


def test_relative_root_items_are_readable(make_config, library, tmp_path, monkeypatch):
    issue = write_pages(library / "Cat" / "Issue", ["02.jpg", "01.jpg"])
    monkeypatch.chdir(tmp_path)
    config = make_config()
    config.library = LibraryConfig(paths=(Path(library.name),), name="Relative")
    ctx = build_context(config)
    try:
        scan_library(ctx)
        entry = ctx.store.list_entries()[0]
        assert os.path.isabs(entry.path)
        assert os.path.samefile(entry.path, issue)
        assert list_pages(ctx, entry.path) == ["01.jpg", "02.jpg"]
    finally:
        ctx.close()


def test_unexpected_item_error_is_counted(ctx, library, monkeypatch):
    write_cbz(library / "Cat" / "a.cbz", {"01.jpg": image_bytes()})
    write_cbz(library / "Cat" / "b.cbz", {"01.jpg": image_bytes()})

    def _boom(item):
        raise RuntimeError("boom")

    monkeypatch.setattr("magz.scanner.item_labels", _boom)
    stats = scan_library(ctx)

    assert stats.failed == 2
    assert ctx.store.count() == 0


def test_busy_scan_lock_skips_without_waiting(ctx, library):
    write_cbz(library / "Cat" / "a.cbz", {"01.jpg": image_bytes()})
    ctx.scan_lock.acquire()
    try:
        assert ctx.scan_in_progress()
        assert trigger_scan(ctx, wait=False) is None
    finally:
        ctx.scan_lock.release()
    assert ctx.store.count() == 0


def test_store_unavailable_aborts_pass(ctx, library, monkeypatch):
    write_cbz(library / "Cat" / "a.cbz", {"01.jpg": image_bytes()})

    def _unavailable():
        raise StoreUnavailable("disk gone")

    monkeypatch.setattr(ctx.store, "list_all", _unavailable)
    with pytest.raises(StoreUnavailable):
        trigger_scan(ctx)
    assert not ctx.scan_in_progress()
