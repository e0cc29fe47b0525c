"""Atomic write helpers for safe file operations."""
import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Optional, Union

from atomicfs.writer import open_atomic, write_file

logger = logging.getLogger(__name__)


def atomic_write_binary(file_path: Union[str, Path], content: bytes, perm: int = 0o644) -> None:
    """
    Atomically write binary content to a file.

    Missing parent directories are created first.

    Args:
        file_path: Target file path
        content: Binary content to write
        perm: Permission bits of the final file
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    write_file(file_path, content, perm)


def atomic_write_text(
    file_path: Union[str, Path],
    content: str,
    encoding: str = "utf-8",
    perm: int = 0o644,
) -> None:
    """
    Atomically write text content to a file.

    Args:
        file_path: Target file path
        content: Text content to write
        encoding: Text encoding (default: utf-8)
        perm: Permission bits of the final file
    """
    atomic_write_binary(file_path, content.encode(encoding), perm)


def atomic_copy(
    source: Union[str, Path],
    destination: Union[str, Path],
    perm: Optional[int] = None,
) -> None:
    """
    Atomically copy a file to destination.

    Args:
        source: Source file path
        destination: Destination file path
        perm: Permission bits of the copy (default: the source's rwx bits)
    """
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    if perm is None:
        # Special bits (setuid, setgid, sticky) are not copied.
        perm = stat.S_IMODE(os.stat(source).st_mode) & 0o777

    with open(source, "rb") as src, open_atomic(destination, perm) as dst:
        # An empty source still produces an empty copy.
        dst.write(b"")
        shutil.copyfileobj(src, dst)

    logger.debug(f"Copied {source} -> {destination}")
