"""Shared fixtures for atomicfs tests."""
import os

import pytest


@pytest.fixture(autouse=True)
def clean_atomicfs_env(monkeypatch):
    """Keep ATOMICFS_* settings from the outer environment out of tests."""
    for name in list(os.environ):
        if name.startswith("ATOMICFS_"):
            monkeypatch.delenv(name)


@pytest.fixture
def umask():
    """Set a restrictive umask for the duration of a test."""
    previous = os.umask(0o077)
    yield 0o077
    os.umask(previous)
