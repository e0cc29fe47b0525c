"""Multi-file atomic write set.

A write set stages files in a private directory and publishes all of them at
once by renaming that directory to a target path that does not exist yet.
Observers of the target see either nothing or every staged file.
"""
import errno
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

from atomicfs.config import load_settings
from atomicfs.errors import ShortWriteError, WriteSetStateError
from atomicfs.utils.paths import WRITE_SET_PREFIX, resolve_member
from atomicfs.utils.sync import fsync_directory

logger = logging.getLogger(__name__)

DEFAULT_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_TRUNC

_ACCMODE = getattr(os, "O_ACCMODE", os.O_RDONLY | os.O_WRONLY | os.O_RDWR)


def _mode_for_flags(flags: int) -> str:
    access = flags & _ACCMODE
    if access == os.O_RDONLY:
        raise ValueError("flags must open the file for writing")
    if flags & os.O_APPEND:
        return "a+b" if access == os.O_RDWR else "ab"
    return "r+b" if access == os.O_RDWR else "wb"


class SyncedFile:
    """File handle inside a write set that fsyncs itself before closing."""

    def __init__(self, path: str, flags: int = DEFAULT_FLAGS, perm: int = 0o644):
        mode = _mode_for_flags(flags)
        fd = os.open(path, flags, perm)
        try:
            self._file = os.fdopen(fd, mode, buffering=0)
        except BaseException:
            os.close(fd)
            raise
        self.path = path

    @property
    def closed(self) -> bool:
        return self._file.closed

    def writable(self) -> bool:
        return True

    def fileno(self) -> int:
        return self._file.fileno()

    def tell(self) -> int:
        return self._file.tell()

    def flush(self) -> None:
        pass

    def write(self, data) -> int:
        view = memoryview(data).cast("B")
        total = 0
        while total < len(view):
            n = self._file.write(view[total:])
            if not n:
                raise ShortWriteError(total, len(view))
            total += n
        return total

    def writelines(self, lines) -> None:
        for line in lines:
            self.write(line)

    def close(self) -> None:
        """Sync and close; a sync error wins over a close error."""
        if self._file.closed:
            return
        try:
            os.fsync(self._file.fileno())
        except OSError:
            try:
                self._file.close()
            except OSError as e:
                logger.debug(f"Ignoring close error after failed sync of {self.path}: {e}")
            raise
        self._file.close()

    def __enter__(self) -> "SyncedFile":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class AtomicWriteSet:
    """
    Staging directory whose files become visible together on commit.

    The target passed to commit() must not exist and its parent must. After
    commit() or cancel() the set is spent; only cancel() may be called again.
    """

    def __init__(self, tmp_dir: Optional[Union[str, Path]] = None, *, sync_dir: Optional[bool] = None):
        if tmp_dir is None or sync_dir is None:
            settings = load_settings()
            if tmp_dir is None:
                tmp_dir = settings.tmp_dir
            if sync_dir is None:
                sync_dir = settings.sync_dir
        self._sync_dir = sync_dir
        self._root = tempfile.mkdtemp(prefix=WRITE_SET_PREFIX, dir=tmp_dir)
        self._committed = False
        self._cancelled = False
        logger.debug(f"Created write set at {self._root}")

    @property
    def location(self) -> str:
        """Current staging directory. For diagnostics only."""
        return self._root

    def _check_active(self) -> None:
        if self._committed:
            raise WriteSetStateError(f"write set {self._root} was already committed")
        if self._cancelled:
            raise WriteSetStateError(f"write set {self._root} was cancelled")

    def open_file(self, name: Union[str, Path], flags: int = DEFAULT_FLAGS, perm: int = 0o644) -> SyncedFile:
        """
        Open a file inside the set for writing.

        The returned handle fsyncs before it closes; close it before
        calling commit().

        Args:
            name: File name relative to the set
            flags: os.open flags (default: write, create, truncate)
            perm: Mode for a newly created file (subject to umask)

        Returns:
            SyncedFile handle
        """
        self._check_active()
        return SyncedFile(resolve_member(self._root, name), flags, perm)

    def write_file(self, name: Union[str, Path], data: bytes, perm: int = 0o644) -> None:
        """
        Write a whole file into the set and sync it.

        Args:
            name: File name relative to the set
            data: File content
            perm: Mode for a newly created file (subject to umask)
        """
        f = self.open_file(name, DEFAULT_FLAGS, perm)
        try:
            f.write(data)
        except BaseException:
            try:
                f.close()
            except OSError as e:
                logger.debug(f"Ignoring close error after failed write of {f.path}: {e}")
            raise
        f.close()

    def makedirs(self, name: Union[str, Path], mode: int = 0o755) -> str:
        """Create a subdirectory (and parents) inside the set."""
        self._check_active()
        path = resolve_member(self._root, name)
        os.makedirs(path, mode, exist_ok=True)
        return path

    def cancel(self, raise_errors: bool = True) -> None:
        """
        Remove the staging directory and everything in it.

        Args:
            raise_errors: If False, removal failures are logged instead of
                raised. Used while another exception is already propagating.
        """
        if self._committed:
            return
        self._cancelled = True
        try:
            shutil.rmtree(self._root)
        except FileNotFoundError:
            pass
        except OSError as e:
            if raise_errors:
                raise
            logger.warning(f"Failed to remove write set {self._root}: {e}")
            return
        logger.debug(f"Cancelled write set {self._root}")

    def commit(self, target: Union[str, Path]) -> None:
        """
        Publish every staged file by renaming the set onto target.

        Args:
            target: New directory path; must not exist, its parent must

        Raises:
            FileExistsError: If target already exists
            OSError: If the rename fails (missing parent, other volume, ...)
        """
        self._check_active()
        target = os.fspath(target)
        # rename(2) silently replaces an empty directory.
        if os.path.lexists(target):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), target)

        os.rename(self._root, target)
        self._committed = True
        logger.debug(f"Committed write set {self._root} -> {target}")

        if self._sync_dir:
            parent = os.path.dirname(os.path.abspath(target))
            # Runs after the rename; failures are logged, never raised.
            try:
                fsync_directory(parent)
            except OSError as e:
                logger.warning(f"Failed to sync directory {parent} after committing {target}: {e}")

    def __str__(self) -> str:
        return self._root

    def __repr__(self) -> str:
        return f"<AtomicWriteSet {self._root!r}>"

    def __enter__(self) -> "AtomicWriteSet":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.cancel(raise_errors=exc_type is None)


def open_write_set(tmp_dir: Optional[Union[str, Path]] = None, **kwargs) -> AtomicWriteSet:
    """
    Create a write set staged under tmp_dir.

    Args:
        tmp_dir: Parent for the staging directory (default: ATOMICFS_TMPDIR,
            then the system temp directory). Use a directory on the same
            volume as the eventual commit target.
        **kwargs: Passed to AtomicWriteSet

    Returns:
        A new AtomicWriteSet

    Raises:
        OSError: If the staging directory cannot be created
    """
    return AtomicWriteSet(tmp_dir, **kwargs)
