"""fsync helpers."""
import os
from pathlib import Path
from typing import Union


def fsync_directory(directory: Union[str, Path]) -> None:
    """
    Flush a directory entry to storage so a completed rename survives a crash.

    Platforms without O_DIRECTORY (Windows) cannot open directories for
    syncing; the call is a no-op there.

    Args:
        directory: Directory whose entries should be made durable
    """
    flags = getattr(os, "O_DIRECTORY", None)
    if flags is None:
        return
    fd = os.open(os.fspath(directory) or os.curdir, os.O_RDONLY | flags)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
