"""Environment-driven defaults for atomicfs."""
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class SymlinkPolicy(str, Enum):
    """What to do when the destination is a symbolic link.

    REPLACE renames over the link itself, FOLLOW writes to the file the link
    points at, REJECT refuses the destination.
    """

    REPLACE = "replace"
    FOLLOW = "follow"
    REJECT = "reject"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration.

    Attributes:
        tmp_dir: Default parent directory for write set staging roots
            (None means the system temporary directory)
        symlink_policy: Default handling of symlinked destinations
        sync_dir: If True, fsync the parent directory after each rename
    """

    tmp_dir: Optional[str] = None
    symlink_policy: SymlinkPolicy = SymlinkPolicy.REPLACE
    sync_dir: bool = False


def _get_env(variable_name: str, default: Optional[str]) -> Optional[str]:
    """Get a value from the environment or use default."""
    value = os.environ.get(variable_name)
    if value is None:
        return default
    return value.strip()


def _parse_bool(variable_name: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"{variable_name}: expected a boolean, got {value!r}")


def parse_symlink_policy(value) -> SymlinkPolicy:
    """
    Coerce a policy name or member to a SymlinkPolicy.

    Args:
        value: SymlinkPolicy member or its case-insensitive name

    Returns:
        The matching SymlinkPolicy

    Raises:
        ValueError: If the name is not a known policy
    """
    if isinstance(value, SymlinkPolicy):
        return value
    try:
        return SymlinkPolicy(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(p.value for p in SymlinkPolicy)
        raise ValueError(f"unknown symlink policy {value!r} (expected one of: {choices})") from None


def load_settings() -> Settings:
    """
    Build Settings from ATOMICFS_* environment variables.

    Recognised variables:
        ATOMICFS_TMPDIR: staging root for write sets
        ATOMICFS_SYMLINK_POLICY: replace, follow or reject
        ATOMICFS_SYNC_DIR: boolean, fsync directories after renames

    Returns:
        Settings with defaults filled in for unset variables
    """
    tmp_dir = _get_env("ATOMICFS_TMPDIR", None) or None
    policy = parse_symlink_policy(_get_env("ATOMICFS_SYMLINK_POLICY", SymlinkPolicy.REPLACE.value))
    sync_dir = _parse_bool("ATOMICFS_SYNC_DIR", _get_env("ATOMICFS_SYNC_DIR", "0"))

    settings = Settings(tmp_dir=tmp_dir, symlink_policy=policy, sync_dir=sync_dir)
    logger.debug(f"Loaded settings: {settings}")
    return settings
