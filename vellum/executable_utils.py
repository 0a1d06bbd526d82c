"""Executable discovery utilities for Vellum.

Functions:
    find_executable: Locate an executable in dependency ``.bin`` directories or PATH.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterable
from pathlib import Path


def find_executable(name: str, search_dirs: Iterable[Path] = ()) -> str | None:
    """Find an executable in the given directories, then in PATH.

    Directories are searched in order, so a site-local tool shadows the
    framework's copy, and both shadow a global install.

    Args:
        name: Name of the executable to find (e.g., 'sass').
        search_dirs: Directories such as ``node_modules/.bin`` to check first.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('sass', [Path('/my/site/node_modules/.bin')])
        '/my/site/node_modules/.bin/sass'
    """
    for directory in search_dirs:
        local = Path(directory) / name
        if local.exists():
            return str(local)

    return shutil.which(name)
