"""Exceptions raised by atomicfs.

Filesystem failures (create, fsync, chmod, rename, remove) surface as the
native ``OSError`` subclasses; the classes here cover the conditions the OS
does not report on its own.
"""


class AtomicFSError(Exception):
    """Base class for atomicfs errors."""


class DestinationError(AtomicFSError, ValueError):
    """The destination path cannot be written atomically."""


class ShortWriteError(AtomicFSError, OSError):
    """Fewer bytes were accepted than were requested."""

    def __init__(self, written: int, expected: int):
        super().__init__(f"short write: {written} of {expected} bytes")
        self.written = written
        self.expected = expected


class WriteSetStateError(AtomicFSError, RuntimeError):
    """The write set was already committed or cancelled."""
