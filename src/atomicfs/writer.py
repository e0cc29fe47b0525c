"""Single-file atomic writer.

Bytes go to a hidden temp file next to the destination. Closing the writer
syncs the temp file, applies the requested permission bits and renames it
over the destination, so readers only ever see the old or the new content.
The process umask is not applied to the final file.

A writer is meant for one owner: open, write sequentially, close once.
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Union

from atomicfs.config import SymlinkPolicy, load_settings
from atomicfs.errors import ShortWriteError
from atomicfs.utils.paths import temp_file_prefix
from atomicfs.utils.sync import fsync_directory
from atomicfs.validation import validate_destination

logger = logging.getLogger(__name__)


class AtomicFileWriter:
    """
    Write-only file object that replaces its destination on close.

    Use it as a context manager: leaving the block normally commits the
    content, leaving it through an exception discards it.

        with open_atomic("config.json", 0o600) as f:
            f.write(payload)
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        perm: int = 0o644,
        *,
        symlink_policy: Optional[Union[SymlinkPolicy, str]] = None,
        sync_dir: Optional[bool] = None,
    ):
        if symlink_policy is None or sync_dir is None:
            settings = load_settings()
            if symlink_policy is None:
                symlink_policy = settings.symlink_policy
            if sync_dir is None:
                sync_dir = settings.sync_dir
        target = validate_destination(file_path, symlink_policy)

        self._path = os.path.abspath(target)
        self._perm = perm
        self._sync_dir = sync_dir
        self._written = False
        self._write_error: Optional[BaseException] = None
        self._closed = False

        fd, self._temp_path = tempfile.mkstemp(
            prefix=temp_file_prefix(target),
            dir=os.path.dirname(self._path),
        )
        self._file = os.fdopen(fd, "wb", buffering=0)
        logger.debug(f"Opened temp file {self._temp_path} for {self._path}")

    @property
    def name(self) -> str:
        """Absolute destination path."""
        return self._path

    @property
    def temp_path(self) -> str:
        return self._temp_path

    @property
    def closed(self) -> bool:
        return self._closed

    def writable(self) -> bool:
        return True

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed atomic writer")

    def write(self, data) -> int:
        """
        Append bytes to the pending content.

        The first failure (an OSError from the OS, or a write that stops
        making progress) is remembered and blocks the rename on close.

        Args:
            data: Bytes-like object

        Returns:
            Number of bytes written, always len(data) on success

        Raises:
            ShortWriteError: If the file stopped accepting bytes
            OSError: If the underlying write failed
        """
        self._check_open()
        view = memoryview(data).cast("B")
        self._written = True

        total = 0
        try:
            while total < len(view):
                n = self._file.write(view[total:])
                if not n:
                    raise ShortWriteError(total, len(view))
                total += n
        except BaseException as e:
            if self._write_error is None:
                self._write_error = e
            raise
        return total

    def writelines(self, lines: Iterable[bytes]) -> None:
        for line in lines:
            self.write(line)

    def tell(self) -> int:
        self._check_open()
        return self._file.tell()

    def flush(self) -> None:
        # Unbuffered; durability is handled by close().
        pass

    def close(self) -> None:
        """
        Commit the pending content to the destination.

        Steps, in order: fsync the temp file, close it, chmod it to the
        requested mode, and rename it over the destination when at least one
        write happened and none failed. The temp file is removed on every
        path. A cleanup failure is raised only when nothing failed before it.

        Calling close() again is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        self._finish(self._commit)

    def cancel(self, raise_errors: bool = True) -> None:
        """
        Discard the pending content, leaving the destination untouched.

        Args:
            raise_errors: If False, failures to close or remove the temp file
                are logged instead of raised. Used while another exception
                is already propagating.
        """
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Cancelled atomic write to {self._path}")
        try:
            self._finish(self._file.close)
        except OSError as e:
            if raise_errors:
                raise
            logger.warning(f"Failed to discard atomic write to {self._path}: {e}")

    def _finish(self, step) -> None:
        try:
            step()
        except BaseException:
            self._remove_temp(raise_errors=False)
            raise
        self._remove_temp(raise_errors=True)

    def _commit(self) -> None:
        try:
            os.fsync(self._file.fileno())
        except OSError:
            try:
                self._file.close()
            except OSError as e:
                logger.debug(f"Ignoring close error after failed sync of {self._temp_path}: {e}")
            raise
        self._file.close()

        os.chmod(self._temp_path, self._perm)

        if self._write_error is not None:
            logger.warning(f"Not replacing {self._path}: write failed ({self._write_error!r})")
            return
        if not self._written:
            logger.debug(f"Nothing written for {self._path}, leaving it unchanged")
            return

        os.replace(self._temp_path, self._path)
        if self._sync_dir:
            _sync_parent(self._path)
        logger.debug(f"Replaced {self._path}")

    def _remove_temp(self, raise_errors: bool) -> None:
        try:
            os.remove(self._temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            if raise_errors:
                raise
            logger.warning(f"Failed to remove temp file {self._temp_path}: {e}")

    def __enter__(self) -> "AtomicFileWriter":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if exc_type is None:
            self.close()
        else:
            self.cancel(raise_errors=False)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<AtomicFileWriter {self._path!r} ({state})>"


def _sync_parent(path: str) -> None:
    # Runs after the rename; failures are logged, never raised.
    directory = os.path.dirname(path)
    try:
        fsync_directory(directory)
    except OSError as e:
        logger.warning(f"Failed to sync directory {directory} after replacing {path}: {e}")


def open_atomic(
    file_path: Union[str, Path],
    perm: int = 0o644,
    *,
    symlink_policy: Optional[Union[SymlinkPolicy, str]] = None,
    sync_dir: Optional[bool] = None,
) -> AtomicFileWriter:
    """
    Open an atomic writer for file_path.

    Args:
        file_path: Destination file path; its parent directory must exist
        perm: Exact permission bits of the final file (umask is ignored)
        symlink_policy: Handling of a symlink at the destination
            (default: configured policy)
        sync_dir: fsync the destination directory after the rename
            (default: configured value)

    Returns:
        An open AtomicFileWriter

    Raises:
        DestinationError: If the destination cannot be written atomically
        OSError: If the temp file cannot be created
    """
    return AtomicFileWriter(file_path, perm, symlink_policy=symlink_policy, sync_dir=sync_dir)


def write_file(
    file_path: Union[str, Path],
    data: bytes,
    perm: int = 0o644,
    **kwargs,
) -> None:
    """
    Atomically replace file_path with data.

    Args:
        file_path: Destination file path
        data: Complete new content
        perm: Exact permission bits of the final file
        **kwargs: Passed to open_atomic

    Raises:
        OSError: The write error, the short write, or the close error,
            in that order of precedence
    """
    writer = open_atomic(file_path, perm, **kwargs)
    try:
        writer.write(data)
    except BaseException:
        writer.cancel(raise_errors=False)
        raise
    writer.close()
