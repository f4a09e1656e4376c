"""Path utilities for Magz.

Catalog paths are absolute. Every caller-supplied location is checked
against the configured library roots before any filesystem access, so read
requests cannot escape the library with ``..`` segments.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePath
from typing import Iterable, Optional, Union

from .exceptions import Unauthorized

PathLike = Union[str, "os.PathLike[str]"]


def normalize(path: PathLike) -> Optional[PurePath]:
    """Lexically normalize an absolute path (folds ``.`` and ``..``).

    Returns None for anything ambiguous: empty, relative, or containing NUL.
    """
    raw = os.fspath(path)
    if not raw or "\x00" in raw:
        return None
    if not os.path.isabs(raw):
        return None
    return PurePath(os.path.normpath(raw))


def is_path_allowed(path: PathLike, roots: Iterable[PathLike]) -> bool:
    """Return True if ``path`` lies inside one of ``roots`` after normalization.

    Example:
        >>> is_path_allowed("/lib/sub/item.cbz", ["/lib"])
        True
        >>> is_path_allowed("/lib/../etc/passwd", ["/lib"])
        False
    """
    candidate = normalize(path)
    if candidate is None:
        return False
    for root in roots:
        raw_root = os.fspath(root)
        # Relative roots are taken from the working directory, as discovery does
        base = normalize(os.path.abspath(raw_root)) if raw_root else None
        if base is not None and candidate.is_relative_to(base):
            return True
    return False


def authorize_path(path: PathLike, roots: Iterable[PathLike]) -> Path:
    """Return the normalized path, or raise Unauthorized."""
    if not is_path_allowed(path, roots):
        raise Unauthorized(f"Path outside library roots: {path}")
    return Path(os.path.normpath(os.fspath(path)))


def short_path(path: Path) -> str:
    """Return abbreviated path showing only parent folder + name.

    Example: /very/long/path/to/folder/file.cbz -> folder/file.cbz
    """
    return f"{path.parent.name}/{path.name}"
