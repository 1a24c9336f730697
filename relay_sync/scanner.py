"""Directory listing helpers."""

import os
from collections.abc import Iterator
from pathlib import Path


def list_top_level(directory: Path | str) -> list[Path]:
    """
    Return the immediate children of *directory*, files and folders alike.

    Order is whatever the filesystem reports.  Raises OSError
    (FileNotFoundError, NotADirectoryError, PermissionError) when the
    directory is missing or unreadable.
    """
    base = Path(directory)
    with os.scandir(base) as it:
        return [base / entry.name for entry in it]


def iter_files(directory: Path | str) -> Iterator[Path]:
    """Yield every regular file beneath *directory*, depth-first."""
    for child in list_top_level(directory):
        if child.is_dir():
            yield from iter_files(child)
        elif child.is_file():
            yield child
