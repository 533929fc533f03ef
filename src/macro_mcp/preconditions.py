"""
Pre-flight checks run before any automation host is launched.

The lock check opens the document with share mode 0 and releases it at once.
If another process (usually Office itself) holds the file, the open fails and
the run stops with FileLocked. The check is best-effort: the file can still be
opened elsewhere between the check and the host's own open.
"""

import sys
from pathlib import Path

from .errors import DocumentNotFound, FileLocked
from .logging_config import get_logger

logger = get_logger(__name__)


def _open_exclusive(path: str):
    """Open path for exclusive read/write access and return the handle.

    Raises:
        PermissionError: If the file cannot be opened exclusively
        RuntimeError: If not running on Windows
    """
    if sys.platform != "win32":
        raise RuntimeError("Exclusive file probing is only available on Windows")

    import pywintypes
    import win32con
    import win32file

    try:
        return win32file.CreateFile(
            path,
            win32con.GENERIC_READ | win32con.GENERIC_WRITE,
            0,  # no sharing
            None,
            win32con.OPEN_EXISTING,
            win32con.FILE_ATTRIBUTE_NORMAL,
            None,
        )
    except pywintypes.error as e:
        raise PermissionError(e.winerror, e.strerror, path) from e


def ensure_not_locked(path: str) -> None:
    """
    Verify that no other process holds the document open.

    Args:
        path: Absolute path of the document

    Raises:
        DocumentNotFound: If the file does not exist
        FileLocked: If exclusive access is unavailable
    """
    if not Path(path).is_file():
        raise DocumentNotFound(path)

    try:
        handle = _open_exclusive(path)
    except PermissionError as e:
        logger.warning("file_locked", path=path, error=str(e))
        raise FileLocked(path, str(e.strerror or e)) from e

    handle.Close()
    logger.debug("file_lock_check_passed", path=path)
