"""File and cache-directory helpers."""

from __future__ import annotations

import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path

_APP_DIR = "vulnscan"
_settings: dict[str, str] = {"cache_dir": ""}


def _user_cache_dir() -> str | None:
    if sys.platform.startswith("win"):
        return os.environ.get("LOCALAPPDATA") or None
    home = os.environ.get("HOME")
    if sys.platform == "darwin":
        return str(Path(home, "Library", "Caches")) if home else None
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return xdg
    return str(Path(home, ".cache")) if home else None


def default_cache_dir() -> str:
    """Return the default cache directory for this tool."""
    base = _user_cache_dir() or tempfile.gettempdir()
    return os.path.join(base, _APP_DIR)


def cache_dir() -> str:
    """Return the cache directory currently in use."""
    return _settings["cache_dir"]


def set_cache_dir(path: str | os.PathLike) -> None:
    """Set the cache directory in use."""
    _settings["cache_dir"] = os.fspath(path)


def copy_file(src: str | os.PathLike, dst: str | os.PathLike) -> int:
    """Copy a regular file and return the number of bytes written."""
    info = os.stat(src)
    if not stat.S_ISREG(info.st_mode):
        raise ValueError(f"{src} is not a regular file")
    with open(src, "rb") as source, open(dst, "wb") as destination:
        shutil.copyfileobj(source, destination)
        return destination.tell()