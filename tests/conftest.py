import io
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from magz.config import DatabaseConfig, LibraryConfig, MagzConfig, ScannerConfig, ThumbnailConfig
from magz.context import build_context


def image_bytes(color="red", size=(40, 60), fmt="JPEG") -> bytes:
    """Encode a solid-color image."""
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def write_cbz(path: Path, pages: dict) -> Path:
    """Create a zip archive holding ``pages`` (name -> bytes)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in pages.items():
            zf.writestr(name, data)
    return path


def write_pages(directory: Path, names, color="blue") -> Path:
    """Create an image directory with one JPEG per name."""
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_bytes(image_bytes(color=color))
    return directory


@pytest.fixture
def library(tmp_path):
    """Empty library root."""
    lib = tmp_path / "lib"
    lib.mkdir()
    return lib


@pytest.fixture
def make_config(tmp_path, library):
    def _make(**scanner_overrides) -> MagzConfig:
        scanner_opts = {"workers": 2, "thumbnail_workers": 1, "queue_size": 4}
        scanner_opts.update(scanner_overrides)
        return MagzConfig(
            library=LibraryConfig(paths=(library,), name="Test Library"),
            thumbnails=ThumbnailConfig(max_size=64),
            scanner=ScannerConfig(**scanner_opts),
            database=DatabaseConfig(path=tmp_path / "cache.db"),
        )

    return _make


@pytest.fixture
def ctx(make_config):
    """Context over the temp library and a temp cache database."""
    context = build_context(make_config())
    yield context
    context.close()
