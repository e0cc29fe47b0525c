"""Destination checks shared by the atomic writers.

The existing object at a destination is inspected with ``os.lstat`` so that
the check sees the same thing the final rename will replace. Each row of
``DISALLOWED_KINDS`` names one kind of object that must never be replaced by
an atomic write; rows are consulted in order and the first match wins.
Modes that match no row, including kinds this table does not know about,
are accepted.
"""
import logging
import os
import stat
from pathlib import Path
from typing import Callable, NamedTuple, Optional, Union

from atomicfs.config import SymlinkPolicy, load_settings, parse_symlink_policy
from atomicfs.errors import DestinationError
from atomicfs.utils.paths import parent_dir

logger = logging.getLogger(__name__)


class DisallowedKind(NamedTuple):
    """One row of the destination policy table."""
    name: str
    matches: Callable[[int], bool]
    message: str


DISALLOWED_KINDS = (
    DisallowedKind("directory", stat.S_ISDIR, "cannot write to a directory"),
    DisallowedKind("fifo", stat.S_ISFIFO, "cannot write to a named pipe (FIFO)"),
    DisallowedKind("socket", stat.S_ISSOCK, "cannot write to a socket"),
    DisallowedKind("char_device", stat.S_ISCHR, "cannot write to a character device file"),
    DisallowedKind("block_device", stat.S_ISBLK, "cannot write to a block device file"),
    DisallowedKind("setuid", lambda mode: bool(mode & stat.S_ISUID), "cannot write to a setuid file"),
    DisallowedKind("setgid", lambda mode: bool(mode & stat.S_ISGID), "cannot write to a setgid file"),
    DisallowedKind("sticky", lambda mode: bool(mode & stat.S_ISVTX), "cannot write to a sticky bit file"),
)


def validate_mode(mode: int) -> None:
    """
    Check an ``st_mode`` value against the policy table.

    Args:
        mode: Mode bits as returned by os.lstat

    Raises:
        DestinationError: If the mode matches a disallowed kind
    """
    for kind in DISALLOWED_KINDS:
        if kind.matches(mode):
            raise DestinationError(kind.message)


def validate_destination(
    file_path: Union[str, Path],
    symlink_policy: Optional[Union[SymlinkPolicy, str]] = None,
) -> str:
    """
    Validate a destination before opening an atomic writer for it.

    Args:
        file_path: Destination file path
        symlink_policy: How to treat a symlink at the destination
            (default: the configured policy, REPLACE unless overridden)

    Returns:
        The path the writer must target; the link target under FOLLOW,
        otherwise file_path unchanged

    Raises:
        DestinationError: If the path is empty, names a disallowed object,
            or its parent directory does not exist
    """
    file_path = os.fspath(file_path)
    if not file_path:
        raise DestinationError("file name is empty")

    if symlink_policy is None:
        symlink_policy = load_settings().symlink_policy
    symlink_policy = parse_symlink_policy(symlink_policy)

    try:
        st = os.lstat(file_path)
    except FileNotFoundError:
        st = None
    except OSError as e:
        raise DestinationError(f"failed to stat output path: {e}") from e

    if st is not None:
        if stat.S_ISLNK(st.st_mode):
            if symlink_policy is SymlinkPolicy.REJECT:
                raise DestinationError("cannot write to a symbolic link")
            if symlink_policy is SymlinkPolicy.FOLLOW:
                target = os.path.realpath(file_path)
                logger.debug(f"Following symlink {file_path} -> {target}")
                return validate_destination(target, SymlinkPolicy.REJECT)
        else:
            validate_mode(st.st_mode)

    directory = parent_dir(file_path)
    if directory and directory != os.curdir:
        try:
            os.stat(directory)
        except FileNotFoundError as e:
            raise DestinationError(f"invalid file path: {e}") from e

    return file_path
