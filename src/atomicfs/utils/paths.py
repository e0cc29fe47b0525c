"""Path utilities for temp siblings and write set members."""
import os
from pathlib import Path
from typing import Union

from atomicfs.errors import DestinationError

TEMP_FILE_PREFIX = ".tmp-"
WRITE_SET_PREFIX = "write-set-"


def temp_file_prefix(destination: Union[str, Path]) -> str:
    """
    Build the hidden prefix used for a destination's temp sibling.

    Structure: .tmp-<basename><random suffix>

    Args:
        destination: Destination file path

    Returns:
        Prefix to pass to tempfile.mkstemp
    """
    return f"{TEMP_FILE_PREFIX}{os.path.basename(os.fspath(destination))}"


def parent_dir(path: Union[str, Path]) -> str:
    """Return the directory part of path, or "" when there is none."""
    return os.path.dirname(os.fspath(path))


def resolve_member(root: Union[str, Path], name: Union[str, Path]) -> str:
    """
    Join a member name onto a write set root, refusing escapes.

    Args:
        root: Write set staging root
        name: Relative file name inside the set

    Returns:
        Absolute path of the member

    Raises:
        DestinationError: If name is empty, absolute, or leaves the root
    """
    name = os.fspath(name)
    if not name:
        raise DestinationError("file name is empty")
    if os.path.isabs(name):
        raise DestinationError(f"file name must be relative to the write set: {name}")

    normalized = os.path.normpath(name)
    if normalized == os.curdir or normalized == os.pardir or normalized.startswith(os.pardir + os.sep):
        raise DestinationError(f"file name escapes the write set: {name}")

    return os.path.join(os.fspath(root), normalized)
