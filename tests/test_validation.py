"""Tests for atomicfs.validation module."""
import os
import socket
import stat

import pytest

from atomicfs.config import SymlinkPolicy
from atomicfs.errors import DestinationError
from atomicfs.validation import DISALLOWED_KINDS, validate_destination, validate_mode


class TestValidateMode:
    """Test cases for the destination policy table."""

    @pytest.mark.parametrize(
        "mode, message",
        [
            (stat.S_IFDIR | 0o755, "directory"),
            (stat.S_IFIFO | 0o644, "named pipe"),
            (stat.S_IFSOCK | 0o755, "socket"),
            (stat.S_IFCHR | 0o666, "character device"),
            (stat.S_IFBLK | 0o660, "block device"),
            (stat.S_IFREG | stat.S_ISUID | 0o755, "setuid"),
            (stat.S_IFREG | stat.S_ISGID | 0o755, "setgid"),
            (stat.S_IFREG | stat.S_ISVTX | 0o644, "sticky"),
        ],
    )
    def test_rejects_disallowed_kinds(self, mode, message):
        """Test that every disallowed kind is rejected with its own message."""
        with pytest.raises(DestinationError, match=message):
            validate_mode(mode)

    @pytest.mark.parametrize("mode", [stat.S_IFREG | 0o644, stat.S_IFREG | 0o600, stat.S_IFREG | 0o777])
    def test_accepts_regular_files(self, mode):
        """Test that plain regular files pass."""
        validate_mode(mode)

    def test_accepts_unknown_kind(self):
        """Test that a file type the table does not know is accepted."""
        validate_mode(0o160000 | 0o644)

    def test_accepts_symlink_mode(self):
        """Test that the table itself does not reject symlinks."""
        validate_mode(stat.S_IFLNK | 0o777)

    def test_table_order(self):
        """Test that file kinds are checked before permission bits."""
        names = [kind.name for kind in DISALLOWED_KINDS]
        assert names.index("directory") < names.index("sticky")

        # A sticky directory reports as a directory.
        with pytest.raises(DestinationError, match="directory"):
            validate_mode(stat.S_IFDIR | stat.S_ISVTX | 0o777)


class TestValidateDestination:
    """Test cases for validate_destination function."""

    def test_empty_path(self):
        """Test that an empty path is rejected."""
        with pytest.raises(DestinationError, match="empty"):
            validate_destination("")

    def test_missing_file_with_existing_parent(self, tmp_path):
        """Test that a new file in an existing directory is accepted."""
        output_path = tmp_path / "new.txt"

        assert validate_destination(output_path) == str(output_path)
        assert not output_path.exists()

    def test_missing_parent(self, tmp_path):
        """Test that a file in a missing directory is rejected."""
        with pytest.raises(DestinationError, match="invalid file path"):
            validate_destination(tmp_path / "missing" / "new.txt")

    def test_bare_file_name(self, tmp_path, monkeypatch):
        """Test that a name without a directory part is checked against cwd."""
        monkeypatch.chdir(tmp_path)

        assert validate_destination("new.txt") == "new.txt"

    def test_existing_regular_file(self, tmp_path):
        """Test that an existing regular file is accepted."""
        output_path = tmp_path / "existing.txt"
        output_path.write_bytes(b"content")

        validate_destination(output_path)

        assert output_path.read_bytes() == b"content"

    def test_existing_directory(self, tmp_path):
        """Test that a directory is rejected."""
        with pytest.raises(DestinationError, match="directory"):
            validate_destination(tmp_path)

    def test_existing_fifo(self, tmp_path):
        """Test that a named pipe is rejected."""
        fifo = tmp_path / "pipe"
        os.mkfifo(fifo)

        with pytest.raises(DestinationError, match="named pipe"):
            validate_destination(fifo)

    def test_existing_socket(self, tmp_path):
        """Test that a unix socket is rejected."""
        sock_path = tmp_path / "s.sock"
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(str(sock_path))
            with pytest.raises(DestinationError, match="socket"):
                validate_destination(sock_path)
        finally:
            sock.close()

    @pytest.mark.skipif(not os.path.exists("/dev/null"), reason="requires /dev/null")
    def test_character_device(self):
        """Test that a character device is rejected."""
        with pytest.raises(DestinationError, match="character device"):
            validate_destination("/dev/null")

    def test_setuid_file(self, tmp_path):
        """Test that a setuid file is rejected."""
        output_path = tmp_path / "tool"
        output_path.write_bytes(b"#!/bin/sh\n")
        os.chmod(output_path, 0o4755)

        with pytest.raises(DestinationError, match="setuid"):
            validate_destination(output_path)

    def test_symlink_replace_policy(self, tmp_path):
        """Test that REPLACE returns the link path itself."""
        link = tmp_path / "link"
        link.symlink_to(tmp_path / "target")

        assert validate_destination(link, SymlinkPolicy.REPLACE) == str(link)

    def test_symlink_follow_policy(self, tmp_path):
        """Test that FOLLOW returns the resolved target."""
        target = tmp_path / "target"
        target.write_bytes(b"content")
        link = tmp_path / "link"
        link.symlink_to(target)

        assert validate_destination(link, "follow") == os.path.realpath(target)

    def test_symlink_follow_checks_target(self, tmp_path):
        """Test that FOLLOW applies the policy table to the target."""
        target = tmp_path / "subdir"
        target.mkdir()
        link = tmp_path / "link"
        link.symlink_to(target)

        with pytest.raises(DestinationError, match="directory"):
            validate_destination(link, SymlinkPolicy.FOLLOW)

    def test_symlink_reject_policy(self, tmp_path):
        """Test that REJECT refuses a symlink."""
        link = tmp_path / "link"
        link.symlink_to(tmp_path / "target")

        with pytest.raises(DestinationError, match="symbolic link"):
            validate_destination(link, SymlinkPolicy.REJECT)

    def test_unknown_policy(self, tmp_path):
        """Test that an unknown policy name is a ValueError."""
        with pytest.raises(ValueError, match="unknown symlink policy"):
            validate_destination(tmp_path / "x", "sometimes")
