"""Tests for the library root path guard."""

from pathlib import Path

import pytest

from magz.exceptions import Unauthorized
from magz.path_utils import authorize_path, is_path_allowed, normalize, short_path

ROOTS = ["/lib", "/mnt/mags/"]


@pytest.mark.parametrize(
    "path",
    [
        "/lib",
        "/lib/Batman/Batman #1",
        "/lib/./sub/../item.cbz",
        "/mnt/mags/x.cbr",
    ],
)
def test_allowed_paths(path):
    assert is_path_allowed(path, ROOTS)


@pytest.mark.parametrize(
    "path",
    [
        "/lib/../etc/passwd",
        "/library/item.cbz",
        "/etc/passwd",
        "lib/item.cbz",
        "",
        "/lib/item\x00.cbz",
    ],
)
def test_rejected_paths(path):
    assert not is_path_allowed(path, ROOTS)


def test_no_roots_rejects_everything():
    assert not is_path_allowed("/lib/item.cbz", [])


def test_normalize():
    assert normalize("/a/b/../c") == Path("/a/c")
    assert normalize("relative") is None


def test_authorize_path():
    assert authorize_path("/lib/a/../b.cbz", ROOTS) == Path("/lib/b.cbz")
    with pytest.raises(Unauthorized):
        authorize_path("/lib/../../etc", ROOTS)


def test_short_path():
    assert short_path(Path("/very/long/path/folder/file.cbz")) == "folder/file.cbz"


def test_relative_roots_use_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    item = str(Path.cwd() / "lib" / "Cat" / "Issue")

    assert is_path_allowed(item, ["lib"])
    assert is_path_allowed(item, [Path("lib")])
    assert not is_path_allowed(item, ["other"])
    # A relative request path is still refused
    assert not is_path_allowed("lib/Cat/Issue", ["lib"])


def test_empty_root_matches_nothing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert not is_path_allowed(str(Path.cwd() / "x.cbz"), [""])
