"""Utility functions for client operations."""

from pathlib import Path
from typing import Tuple


def split_file_name(file_path: Path) -> Tuple[str, str]:
    """
    Split a file name into display name and single-segment extension.

    ``archive.tar.gz`` gives ``("archive.tar", "gz")``; dotfiles and names
    without a dot have an empty extension.
    """
    name = Path(file_path).name
    stem, dot, ext = name.rpartition('.')
    if not dot or not stem:
        return name, ''
    return stem, ext


def percent(done: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return (done / total) * 100
