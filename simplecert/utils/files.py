"""File operations utilities for simplecert."""

import logging
import os
import stat
import tempfile
from typing import Union

logger = logging.getLogger(__name__)


def ensure_directory(path: str, mode: int) -> str:
    """
    Create ``path`` (and parents) if missing.

    Args:
        path: Directory path
        mode: Permission mode for the directory (e.g., 0o700)

    Returns:
        str: The directory path
    """
    if not os.path.isdir(path):
        os.makedirs(path, mode=mode, exist_ok=True)
        os.chmod(path, mode)
        logger.info("Created directory %s with permissions %s", path, oct(mode))
    return path


def file_mode(dir_mode: int, private: bool = False) -> int:
    """
    Derive a file permission mode from a directory mode.

    Execute bits are dropped; private files keep the owner bits only.
    """
    mode = dir_mode & ~(stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    if private:
        mode &= stat.S_IRWXU
    return mode | stat.S_IRUSR | stat.S_IWUSR


def atomic_write(path: str, content: Union[str, bytes], mode: int = 0o600) -> None:
    """
    Atomically write ``content`` to ``path``.

    The data goes to a temporary file in the same directory which is
    fsync'ed and then renamed over ``path``; readers see either the old or
    the new file, never a partial one.

    Args:
        path: Destination path
        content: Text or bytes to write
        mode: Permission mode for the final file
    """
    if isinstance(content, str):
        content = content.encode("utf-8")

    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    _fsync_directory(directory)


def _fsync_directory(directory: str) -> None:
    """Flush a rename to disk where the platform allows opening directories."""
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def read_bytes(path: str) -> bytes:
    """Read a whole file as bytes."""
    with open(path, "rb") as f:
        return f.read()
