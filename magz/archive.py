"""Container handling for Magz.

Provides a unified interface for listing and reading pages from CBZ (Zip)
archives, CBR (Rar) archives and plain image directories, with format
fallback detection for misnamed archives.
"""

from __future__ import annotations

import enum
import os
import re
import zipfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import rarfile
from PIL import Image

from .exceptions import ContainerUnreadable, DecodeFailed, PageNotFound
from .natural import natural_sorted


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".avif", ".gif"}

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".avif": "image/avif",
}


class ContainerKind(str, enum.Enum):
    ZIP = "cbz"
    RAR = "cbr"
    DIRECTORY = "dir"

    @property
    def is_archive(self) -> bool:
        return self is not ContainerKind.DIRECTORY

    @property
    def cover_sentinel(self) -> str:
        """Cover reference stored for archives (cover resolved at scan time only)."""
        return f"({self.value} internal)"


ARCHIVE_EXTENSIONS = {
    ".cbz": ContainerKind.ZIP,
    ".cbr": ContainerKind.RAR,
}

ARCHIVE_COVER_SENTINELS = {kind.cover_sentinel for kind in ARCHIVE_EXTENSIONS.values()}


@dataclass(frozen=True)
class PageData:
    data: bytes
    content_type: str


def base_name(name: str) -> str:
    """Last path component of an archive member or file name."""
    return re.split(r"[\\/]", name)[-1]


def is_page_name(name: str) -> bool:
    """True for visible files with a recognized image extension."""
    base = base_name(name)
    if not base or base.startswith("."):
        return False
    return os.path.splitext(base)[1].lower() in IMAGE_EXTENSIONS


def content_type_for(name: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(name)[1].lower(), "image/jpeg")


def archive_kind(path: Path) -> Optional[ContainerKind]:
    return ARCHIVE_EXTENSIONS.get(path.suffix.lower())


def classify_entry(path: Path, is_dir: bool, filenames: Sequence[str] = ()) -> Optional[ContainerKind]:
    """Classify a walked entry without touching the disk again.

    Directories need their file names (as yielded by os.walk); a directory is a
    container only if it holds at least one page image.
    """
    if is_dir:
        if any(is_page_name(f) for f in filenames):
            return ContainerKind.DIRECTORY
        return None
    return archive_kind(path)


def classify_path(path: Path) -> Optional[ContainerKind]:
    """Classify an arbitrary path on disk. None means ignorable."""
    if path.is_dir():
        try:
            with os.scandir(path) as entries:
                names = [e.name for e in entries if e.is_file()]
        except OSError:
            return None
        return classify_entry(path, True, names)
    if path.is_file():
        return archive_kind(path)
    return None


def select_cover(pages: Sequence[str]) -> Optional[str]:
    """Pick the page that best represents a container.

    Priority: a name containing "cover", then a name starting with "00"/"01",
    then the first page of the (already natural-ordered) sequence.
    """
    for page in pages:
        if "cover" in base_name(page).lower():
            return page
    for page in pages:
        if base_name(page).startswith(("00", "01")):
            return page
    return pages[0] if pages else None


class Container(Protocol):
    def list_pages(self) -> List[str]:
        ...

    def read(self, page_id: str) -> bytes:
        """Raw bytes of a listed page."""
        ...

    def close(self) -> None:
        ...

    def __enter__(self) -> "Container":
        ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        ...


class ZipContainer:
    def __init__(self, path: Path):
        self.zf = zipfile.ZipFile(path, mode="r")

    def list_pages(self) -> List[str]:
        return natural_sorted(
            info.filename
            for info in self.zf.infolist()
            if not info.is_dir() and is_page_name(info.filename)
        )

    def read(self, page_id: str) -> bytes:
        return self.zf.read(page_id)

    def close(self) -> None:
        self.zf.close()

    def __enter__(self) -> "ZipContainer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class RarContainer:
    """Rar archives are read sequentially: a page lookup scans entries in order."""

    def __init__(self, path: Path):
        self.rf = rarfile.RarFile(path, mode="r")

    def list_pages(self) -> List[str]:
        return natural_sorted(
            info.filename
            for info in self.rf.infolist()
            if not info.is_dir() and is_page_name(info.filename)
        )

    def read(self, page_id: str) -> bytes:
        for info in self.rf.infolist():
            if info.filename == page_id:
                return self.rf.read(info)
        raise KeyError(page_id)

    def close(self) -> None:
        self.rf.close()

    def __enter__(self) -> "RarContainer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class DirectoryContainer:
    """Plain image files in a single folder; subdirectories are not pages."""

    def __init__(self, path: Path):
        if not path.is_dir():
            raise NotADirectoryError(f"Not a directory: {path}")
        self.path = path

    def list_pages(self) -> List[str]:
        with os.scandir(self.path) as entries:
            names = [e.name for e in entries if e.is_file() and is_page_name(e.name)]
        return natural_sorted(names)

    def read(self, page_id: str) -> bytes:
        return (self.path / page_id).read_bytes()

    def close(self) -> None:
        pass

    def __enter__(self) -> "DirectoryContainer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


_ARCHIVE_READERS = {
    ContainerKind.ZIP: (ZipContainer, RarContainer),
    ContainerKind.RAR: (RarContainer, ZipContainer),
}


def open_container(path: Path, kind: ContainerKind) -> Container:
    """Open a container of the given kind.

    Archives try the expected format first (cbz→zip, cbr→rar), then the other
    one (handles misnamed files). Raises ContainerUnreadable if nothing opens.
    """
    if kind is ContainerKind.DIRECTORY:
        try:
            return DirectoryContainer(path)
        except OSError as exc:
            raise ContainerUnreadable(f"Cannot open directory {path}: {exc}") from exc

    if not path.is_file():
        raise ContainerUnreadable(f"File not found: {path}")

    primary, fallback = _ARCHIVE_READERS[kind]
    try:
        return primary(path)
    except (zipfile.BadZipFile, rarfile.Error, OSError):
        pass

    try:
        return fallback(path)
    except (zipfile.BadZipFile, rarfile.Error, OSError) as exc:
        raise ContainerUnreadable(f"Cannot open {path.name}: {exc}") from exc


def list_pages(path: Path, kind: ContainerKind) -> List[str]:
    """Natural-ordered page identifiers of a container."""
    with open_container(path, kind) as container:
        try:
            return container.list_pages()
        except (zipfile.BadZipFile, rarfile.Error, OSError) as exc:
            raise ContainerUnreadable(f"Cannot list {path.name}: {exc}") from exc


def read_page(path: Path, kind: ContainerKind, page_id: str) -> PageData:
    """Raw bytes and content type of one page.

    The identifier must appear in the current listing, so non-image members
    and names escaping a directory are reported as PageNotFound.
    """
    with open_container(path, kind) as container:
        try:
            pages = container.list_pages()
            if page_id not in pages:
                raise PageNotFound(f"{page_id} not found in {path.name}")
            data = container.read(page_id)
        except (KeyError, FileNotFoundError) as exc:
            raise PageNotFound(f"{page_id} not found in {path.name}") from exc
        except (zipfile.BadZipFile, rarfile.Error, OSError) as exc:
            raise ContainerUnreadable(f"Cannot read {page_id} from {path.name}: {exc}") from exc
    return PageData(data=data, content_type=content_type_for(page_id))


def decode_image(data: bytes) -> Image.Image:
    """Fully decode image bytes. Raises DecodeFailed."""
    try:
        im = Image.open(BytesIO(data))
        im.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailed(f"Cannot decode image: {exc}") from exc
    return im


def load_page_image(path: Path, kind: ContainerKind, page_id: str) -> Image.Image:
    """Read and fully decode one page. Raises ContainerError subclasses."""
    return decode_image(read_page(path, kind, page_id).data)
